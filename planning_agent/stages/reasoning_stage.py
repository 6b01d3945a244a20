"""Reasoning stage - rescore, explain and order accepted suggestions."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from planning_agent.agent.state import update_context
from planning_agent.stages._core.reasoning_logic import (
    build_rationale,
    compute_confidence,
    context_clause,
    priority_key,
)
from planning_agent.stages.base import BaseStage, StageRole

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext


class ReasoningStage(BaseStage):
    role = StageRole.REASONING

    @property
    def name(self) -> str:
        return "reasoning"

    @property
    def description(self) -> str:
        return "Recompute confidence, write rationales and order suggestions by priority"

    def execute(self, context: PlanningContext) -> PlanningContext:
        if not context.suggestions:
            return context

        rescored = []
        for suggestion in context.suggestions:
            confidence = compute_confidence(suggestion, context)
            rescored.append(
                dataclasses.replace(
                    suggestion,
                    confidence=confidence,
                    reasoning=build_rationale(
                        suggestion.reasoning,
                        context_clause(suggestion, context),
                        confidence,
                    ),
                )
            )

        ordered = tuple(s for _, s in sorted(enumerate(rescored), key=priority_key))
        average = round(sum(s.confidence for s in ordered) / len(ordered))
        return update_context(
            context,
            suggestions=ordered,
            confidence=max(context.confidence, average),
        )
