from .models import Base
from .session import get_engine

from expiry_notifier.utils.logging import get_logger

logger = get_logger()


def create_tables():
    """Create notifier tables; existing tables are left untouched."""
    Base.metadata.create_all(get_engine())
    logger.info("Created all tables.")


if __name__ == "__main__":
    create_tables()
