from .sweep_service import SweepService, SweepType
from .factory import build_sweep_service, sweep_plan

__all__ = [
    "SweepService",
    "SweepType",
    "build_sweep_service",
    "sweep_plan",
]
