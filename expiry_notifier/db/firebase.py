from functools import lru_cache
from pathlib import Path

import firebase_admin
from firebase_admin import credentials, firestore

from expiry_notifier.config.settings import settings
from expiry_notifier.utils.errors import ConfigurationError
from expiry_notifier.utils.logging import get_logger

logger = get_logger()

FIREBASE_APP_NAME = "expiry-notifier"


@lru_cache(maxsize=1)
def get_firebase_app() -> firebase_admin.App:
    """
    Initialize the Firebase Admin SDK once per process.

    Uses the service-account JSON at FIREBASE_CREDENTIALS_PATH, or application
    default credentials when FIREBASE_USE_DEFAULT_CREDENTIALS is set.

    Raises:
        ConfigurationError: No usable credentials are configured
    """
    if settings.FIREBASE_CREDENTIALS_PATH:
        credentials_path = Path(settings.FIREBASE_CREDENTIALS_PATH)
        if not credentials_path.is_file():
            raise ConfigurationError(
                f"Firebase credentials file not found: {credentials_path}"
            )
        try:
            cred = credentials.Certificate(str(credentials_path))
        except (ValueError, OSError) as e:
            raise ConfigurationError(f"Invalid Firebase credentials: {e}")
    elif settings.FIREBASE_USE_DEFAULT_CREDENTIALS:
        cred = credentials.ApplicationDefault()
    else:
        raise ConfigurationError(
            "Firebase credentials missing: set FIREBASE_CREDENTIALS_PATH "
            "or FIREBASE_USE_DEFAULT_CREDENTIALS"
        )

    options = (
        {"projectId": settings.FIREBASE_PROJECT_ID}
        if settings.FIREBASE_PROJECT_ID
        else None
    )
    app = firebase_admin.initialize_app(cred, options, name=FIREBASE_APP_NAME)
    logger.info("Initialized Firebase app", app_name=FIREBASE_APP_NAME)
    return app


def get_firestore_client():
    return firestore.client(app=get_firebase_app())
