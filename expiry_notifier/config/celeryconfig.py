from expiry_notifier.utils.cadence import parse_cadence
from .settings import settings

# Basic Celery Configuration
broker_url = settings.redis_url
result_backend = settings.redis_url

# Task Discovery
include = ["expiry_notifier.tasks"]

# Timezone Configuration
timezone = "UTC"
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 30 * 60  # 30 minutes
task_soft_time_limit = 25 * 60  # 25 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Redeliver ticks lost with their worker
task_acks_late = True
task_reject_on_worker_lost = True

# Cadence strings are validated here, so a bad value stops beat at startup
beat_schedule = {
    # Hourly by default: everything already past its expiry
    "expired-sweep": {
        "task": "expiry_notifier.tasks.cron.expired_sweep.expired_sweep_task",
        "schedule": parse_cadence(settings.EXPIRED_SWEEP_CADENCE),
        "args": ("expired_sweep_cron",),
    },
    # Every 5 minutes by default: expiring within the lookahead window
    "expiring-soon-sweep": {
        "task": "expiry_notifier.tasks.cron.expiring_soon_sweep.expiring_soon_sweep_task",
        "schedule": parse_cadence(settings.EXPIRING_SOON_SWEEP_CADENCE),
        "args": ("expiring_soon_sweep_cron",),
    },
}

# Default Queue
task_default_queue = "expiry_notifier"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
