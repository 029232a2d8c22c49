from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "expired_sweep_task",
    "expiring_soon_sweep_task",
]
