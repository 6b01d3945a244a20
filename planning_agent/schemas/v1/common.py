"""Common schemas: enums and error responses."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class EntryPoint(StrEnum):
    USER_ASSIST = "user_assist"
    GUARDIAN_ASSIST = "guardian_assist"
    ADMIN_TRIGGER = "admin_trigger"


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"


class TraceStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SuggestionStatus(StrEnum):
    PENDING = "pending"
    APPLIED = "applied"
    REJECTED = "rejected"


class ErrorResponse(BaseModel):
    detail: str
    errors: dict[str, Any] | None = None
