from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "expiry-notifier"
    LOG_LEVEL: str = "INFO"
    LOGGING_CONFIG_PATH: str = "logging_config.json"

    # Record store
    """Either "sql" (SQLAlchemy, DATABASE_URL) or "firestore" (firebase-admin)."""
    STORE_BACKEND: str = "sql"
    DATABASE_URL: str = "sqlite:///./expiry_notifier.db"
    FIRESTORE_ASSET_COLLECTION: str = "fire"
    FIRESTORE_USER_COLLECTION: str = "users"
    FIRESTORE_MAIL_COLLECTION: str = "mail"

    # Firebase (push delivery and Firestore)
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None
    FIREBASE_USE_DEFAULT_CREDENTIALS: bool = False
    FIREBASE_PROJECT_ID: Optional[str] = None

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Sweeps
    EXPIRED_SWEEP_CADENCE: str = "every 1 hours"
    EXPIRING_SOON_SWEEP_CADENCE: str = "every 5 minutes"
    EXPIRING_SOON_WINDOW_MINUTES: int = 5
    EXPIRED_SWEEP_CHANNELS: Union[str, List[str]] = "push"
    EXPIRING_SOON_SWEEP_CHANNELS: Union[str, List[str]] = "email"
    SWEEP_MAX_WORKERS: int = 4
    SWEEP_LOCK_ENABLED: bool = True
    SWEEP_LOCK_TIMEOUT_SECONDS: int = 25 * 60
    PUSH_BATCH_SIZE: int = 500

    # Message content
    DEFAULT_ASSET_NAME: str = "Unnamed"
    DEFAULT_SALUTATION: str = "User"
    DISPLAY_TIMEZONE: str = "UTC"

    @field_validator("EXPIRED_SWEEP_CHANNELS", "EXPIRING_SOON_SWEEP_CHANNELS", mode="before")
    def assemble_channels(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip().lower() for i in v.split(",") if i.strip()]
        return v

    @property
    def redis_url(self) -> str:
        return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
