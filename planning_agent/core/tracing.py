"""Request-scoped tracing context.

contextvars storage for the request ID and W3C traceparent so that log
lines emitted deep inside a planning run can be correlated with the
inbound HTTP request.
"""

import uuid
from contextvars import ContextVar
from typing import Any

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
trace_parent_ctx: ContextVar[str | None] = ContextVar("trace_parent", default=None)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return request_id_ctx.get()


def set_request_id(value: str | None) -> None:
    """Set the request ID in context, generating one when absent."""
    if value is None:
        value = str(uuid.uuid4())
    request_id_ctx.set(value)


def get_trace_parent() -> str | None:
    return trace_parent_ctx.get()


def set_trace_parent(value: str | None) -> None:
    trace_parent_ctx.set(value or None)


def clear_tracing_context() -> None:
    """Clear request-scoped tracing context after request completion."""
    request_id_ctx.set(None)
    trace_parent_ctx.set(None)


def bind_contextvars_to_logging() -> dict[str, Any]:
    """Get all tracing contextvars as a dict for structlog binding.

    Usage:
        logger = structlog.get_logger(__name__).bind(**bind_contextvars_to_logging())
    """
    context: dict[str, Any] = {}
    if rid := request_id_ctx.get():
        context["request_id"] = rid
    if tp := trace_parent_ctx.get():
        context["trace_parent"] = tp
    return context
