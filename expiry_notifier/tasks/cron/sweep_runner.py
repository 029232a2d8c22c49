from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from expiry_notifier.config.settings import settings
from expiry_notifier.services.notifications import (
    SweepType,
    build_sweep_service,
    sweep_plan,
)
from expiry_notifier.utils.context import set_request_id
from expiry_notifier.utils.errors import ConfigurationError, RepositoryUnavailable
from expiry_notifier.utils.logging import get_logger


async def run_sweep_tick(
    request_id: str,
    sweep_type: SweepType,
    session_factory: Optional[sessionmaker] = None,
) -> Dict[str, Any]:
    """
    Body shared by the sweep cron tasks.

    Failures are logged and reported in the returned dict rather than raised;
    the next beat tick is the retry.
    """
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    try:
        channels, lookahead = sweep_plan(settings, sweep_type)
        service = build_sweep_service(settings, channels, session_factory)
        result = await service.run(sweep_type, channels, lookahead)

        return {
            "success": True,
            **result.model_dump(mode="json"),
            "request_id": request_id,
        }

    except RepositoryUnavailable as e:
        logger.error(
            "Record repository unavailable, sweep aborted",
            sweep=sweep_type.value,
            error=e.message,
        )
        return {
            "success": False,
            "error": e.message,
            "error_code": e.error_code,
            "request_id": request_id,
        }

    except ConfigurationError as e:
        logger.critical(
            "Sweep misconfigured", sweep=sweep_type.value, error=e.message
        )
        return {
            "success": False,
            "error": e.message,
            "error_code": e.error_code,
            "request_id": request_id,
        }

    except Exception as e:
        logger.exception(f"{sweep_type.value} task exception: {str(e)}")
        return {"success": False, "error": str(e), "request_id": request_id}
