"""Base stage interface for the planning pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext


class StageRole(StrEnum):
    ANALYSIS = "analysis"
    GUARDRAIL = "guardrail"
    REASONING = "reasoning"
    IMPACT = "impact"


class BaseStage(ABC):
    """Abstract base class for all pipeline stages.

    Contract:
    - MUST NOT mutate the input context
    - MUST return a new context built with update_context()
    - MUST be deterministic (same input -> same output)
    - MUST NOT read or write anything outside the given context
    - MUST NOT lower context.confidence or context.impact_score
    - analysis stages MUST only append suggestions
    - the guardrail MAY only remove suggestions (moving them to blocked)
    """

    role: StageRole = StageRole.ANALYSIS

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage identifier recorded on NodeTrace rows and metrics."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    def execute(self, context: PlanningContext) -> PlanningContext:
        """Run the stage and return the updated context."""
        ...
