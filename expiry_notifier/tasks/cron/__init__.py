from .expired_sweep import expired_sweep_task
from .expiring_soon_sweep import expiring_soon_sweep_task

__all__ = [
    "expired_sweep_task",
    "expiring_soon_sweep_task",
]
