import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the request ID of the sweep currently running in this context."""
    return request_id_context.get()


def set_request_id(request_id: str) -> None:
    request_id_context.set(request_id)


def new_request_id(prefix: str) -> str:
    """Build a request ID for a sweep tick, e.g. ``expired_sweep-3f2a9c1b``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
