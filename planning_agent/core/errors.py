"""Planning agent error hierarchy.

Policy and safety rejections are ordinary pipeline outcomes and are
never raised; everything here is fatal to the operation that raised it.
"""

from typing import Any


class PlanningAgentError(Exception):
    """Base exception for planning agent errors."""

    code = "PLANNING_INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(PlanningAgentError):
    """Invalid request parameters or malformed domain record."""

    code = "PLANNING_INVALID_REQUEST"
    status_code = 400


class NotFoundError(PlanningAgentError):
    """Resource not found."""

    code = "PLANNING_NOT_FOUND"
    status_code = 404


class DependencyError(PlanningAgentError):
    """External dependency failure."""

    code = "PLANNING_DEPENDENCY_FAILURE"
    status_code = 502


class InternalError(PlanningAgentError):
    """Internal server error."""

    code = "PLANNING_INTERNAL_ERROR"
    status_code = 500


class StageExecutionError(PlanningAgentError):
    """A pipeline stage raised; the run it belonged to is marked failed."""

    code = "PLANNING_STAGE_EXECUTION_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        stage_name: str,
        run_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        base_details: dict[str, Any] = {"stage_name": stage_name}
        if run_id:
            base_details["run_id"] = run_id
        super().__init__(message, details={**base_details, **(details or {})})
        self.stage_name = stage_name
        self.run_id = run_id


class StageContractError(PlanningAgentError):
    """A stage returned a context that breaks the stage contract.

    Raised when an analysis stage drops or rewrites earlier suggestions,
    when the guardrail introduces suggestions it was not given, or when a
    running aggregate (confidence, impact score) goes down.
    """

    code = "PLANNING_STAGE_CONTRACT_VIOLATION"
    status_code = 500

    def __init__(
        self,
        message: str,
        stage_name: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details={**(details or {}), "stage_name": stage_name})
        self.stage_name = stage_name


class PersistenceError(PlanningAgentError):
    """Writing run, trace or suggestion records failed."""

    code = "PLANNING_PERSISTENCE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        run_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        base_details: dict[str, Any] = {"run_id": run_id} if run_id else {}
        super().__init__(message, details={**base_details, **(details or {})})
        self.run_id = run_id


ERROR_STATUS_MAP: dict[type[PlanningAgentError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    DependencyError: 502,
    InternalError: 500,
    StageExecutionError: 500,
    StageContractError: 500,
    PersistenceError: 500,
}


def get_status_code(error: PlanningAgentError) -> int:
    """Get HTTP status code for error."""
    return ERROR_STATUS_MAP.get(type(error), error.status_code)
