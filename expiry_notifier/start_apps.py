"""
Startup script for the Celery worker and Celery beat
Validates configuration, checks Redis, then manages both processes
"""

import multiprocessing
import subprocess
import sys
import time
import signal
from pathlib import Path

import redis

from expiry_notifier.config.settings import settings
from expiry_notifier.db.db import create_tables
from expiry_notifier.db.firebase import get_firebase_app
from expiry_notifier.db.models import NotificationChannel
from expiry_notifier.services.notifications import SweepType, sweep_plan
from expiry_notifier.services.notifications.factory import validate_store_settings
from expiry_notifier.utils.cadence import parse_cadence
from expiry_notifier.utils.errors import ConfigurationError
from expiry_notifier.utils.logging import get_logger

logger = get_logger()

PROJECT_ROOT = Path(__file__).parent.parent


def setup_signal_handlers():
    """Setup signal handlers for graceful shutdown"""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def validate_configuration():
    """
    Fail fast on settings the sweeps cannot run with.

    Raises:
        ConfigurationError: A cadence, channel list, window, store backend or
            display time zone is invalid, or Firebase credentials are missing
            while push or Firestore is in use
    """
    parse_cadence(settings.EXPIRED_SWEEP_CADENCE)
    parse_cadence(settings.EXPIRING_SOON_SWEEP_CADENCE)
    validate_store_settings(settings)

    needs_firebase = settings.STORE_BACKEND == "firestore"
    for sweep_type in SweepType:
        channels, _ = sweep_plan(settings, sweep_type)
        if not channels:
            logger.warning(f"{sweep_type.value} has no channels and will only scan")
        if NotificationChannel.PUSH in channels:
            needs_firebase = True

    if needs_firebase:
        get_firebase_app()


def _run_celery(name: str, celery_args):
    try:
        logger.info(f"Starting Celery {name} process")
        subprocess.run(
            [sys.executable, "-m", "celery", "-A", "expiry_notifier.celery", *celery_args],
            check=True,
            cwd=str(PROJECT_ROOT),
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"Celery {name} failed with return code {e.returncode}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info(f"Celery {name} interrupted by user")


def run_celery_worker():
    _run_celery("worker", ["worker", "--loglevel=info", "--pool=solo"])


def run_celery_beat():
    _run_celery("beat", ["beat", "--loglevel=info"])


def check_redis_connection() -> bool:
    """Check if Redis server is accessible"""
    try:
        r = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD or None,
            socket_connect_timeout=5,
        )
        r.ping()
        logger.info("Redis connection successful")
        return True
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")
        logger.error("Please ensure Redis server is running")
        return False


def monitor_processes(processes):
    """Monitor running processes and handle failures"""
    logger.info("Starting process monitoring")

    while True:
        for process in processes:
            if not process.is_alive():
                logger.error(
                    f"{process.name} process died unexpectedly with exit code: {process.exitcode}"
                )
                terminate_processes(processes)
                sys.exit(1)

        time.sleep(1)


def terminate_processes(processes):
    """Gracefully terminate all processes"""
    logger.info("Initiating graceful shutdown of all services")

    for process in processes:
        if process.is_alive():
            logger.info(f"Terminating {process.name} process")
            process.terminate()

    for process in processes:
        process.join(timeout=10)
        if process.is_alive():
            logger.warning(f"{process.name} did not terminate gracefully, force killing")
            process.kill()
            process.join()
        else:
            logger.info(f"{process.name} terminated successfully")


def main():
    """Validate settings, then start and supervise the worker and beat"""
    multiprocessing.freeze_support()
    setup_signal_handlers()

    logger.info("=" * 60)
    logger.info("Starting expiry notifier (Celery worker + beat)")
    logger.info("=" * 60)

    try:
        validate_configuration()
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e.message}")
        sys.exit(1)

    if not check_redis_connection():
        logger.error("Cannot start services without Redis connection")
        sys.exit(1)

    # Notification markers always live in the SQL database
    create_tables()

    processes = []

    try:
        for name, target in (("Worker", run_celery_worker), ("Beat", run_celery_beat)):
            process = multiprocessing.Process(target=target, name=name, daemon=False)
            process.start()
            processes.append(process)

        logger.info("Worker and beat started")
        monitor_processes(processes)

    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    finally:
        terminate_processes(processes)
        logger.info("All services stopped successfully")


if __name__ == "__main__":
    main()
