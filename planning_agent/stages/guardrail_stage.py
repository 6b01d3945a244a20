"""Guardrail stage - filter candidate suggestions through policy and safety rules."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from planning_agent.agent.state import ContextStatus, update_context
from planning_agent.agent.suggestions import BlockedSuggestion
from planning_agent.stages._core.guardrail_rules import validate
from planning_agent.stages.base import BaseStage, StageRole

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext
    from planning_agent.agent.suggestions import Suggestion


class GuardrailStage(BaseStage):
    """Accept, annotate or reject every candidate suggestion.

    Rejected candidates move to ``context.blocked`` with their reason and
    violation tag. When there were candidates and none survives, the
    context is marked blocked so the orchestrator can stop early.
    """

    role = StageRole.GUARDRAIL

    @property
    def name(self) -> str:
        return "guardrail"

    @property
    def description(self) -> str:
        return "Validate suggestions against active policies and fixed safety rules"

    def execute(self, context: PlanningContext) -> PlanningContext:
        accepted: list[Suggestion] = []
        blocked: list[BlockedSuggestion] = []
        for suggestion in context.suggestions:
            decision = validate(suggestion, context)
            if decision.allowed:
                accepted.append(
                    dataclasses.replace(
                        suggestion,
                        policy_hints=suggestion.policy_hints + decision.hints,
                        risk_level=decision.risk_level,
                    )
                )
            else:
                blocked.append(
                    BlockedSuggestion(
                        suggestion=dataclasses.replace(suggestion, risk_level=decision.risk_level),
                        reason=decision.reason or "rejected",
                        violation_type=decision.violation_type or "policy",
                        policy_violation=decision.policy_violation or "",
                    )
                )

        status = context.status
        if context.suggestions and not accepted:
            status = ContextStatus.BLOCKED

        return update_context(
            context,
            suggestions=tuple(accepted),
            blocked=context.blocked + tuple(blocked),
            status=status,
        )
