import asyncio

from expiry_notifier.celery import celery
from expiry_notifier.services.notifications import SweepType
from expiry_notifier.tasks.cron.sweep_runner import run_sweep_tick
from expiry_notifier.utils.context import new_request_id


@celery.task(bind=True)
def expired_sweep_task(self, request_id: str):
    """
    Notify owners of extinguishers that are already past their expiry.

    Runs hourly by default (EXPIRED_SWEEP_CADENCE) and delivers through
    EXPIRED_SWEEP_CHANNELS, push by default. Each extinguisher is notified
    once per expiry value per device token.

    Args:
        request_id: Request ID prefix from the beat schedule
    """
    return asyncio.run(run_sweep_tick(new_request_id(request_id), SweepType.EXPIRED))
