from celery import Celery

# Create Celery app
celery = Celery("expiry_notifier")

# Load configuration from expiry_notifier.config.celeryconfig module
celery.config_from_object("expiry_notifier.config.celeryconfig")
