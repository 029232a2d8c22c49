from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from expiry_notifier.config.settings import settings


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets the connect args needed for worker threads."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )

    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine(settings.DATABASE_URL)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    """Process-wide session factory for the configured DATABASE_URL, built on first use."""
    return create_session_factory(get_engine())

