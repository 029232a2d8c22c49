import asyncio

from expiry_notifier.celery import celery
from expiry_notifier.services.notifications import SweepType
from expiry_notifier.tasks.cron.sweep_runner import run_sweep_tick
from expiry_notifier.utils.context import new_request_id


@celery.task(bind=True)
def expiring_soon_sweep_task(self, request_id: str):
    """
    Notify owners of extinguishers expiring within the lookahead window.

    Runs every 5 minutes by default (EXPIRING_SOON_SWEEP_CADENCE) and
    includes everything whose expiry is at or before now plus
    EXPIRING_SOON_WINDOW_MINUTES, so already-expired extinguishers are
    covered too. Delivers through EXPIRING_SOON_SWEEP_CHANNELS, email by
    default.

    Args:
        request_id: Request ID prefix from the beat schedule
    """
    return asyncio.run(
        run_sweep_tick(new_request_id(request_id), SweepType.EXPIRING_SOON)
    )
