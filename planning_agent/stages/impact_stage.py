"""Impact stage - quantify each accepted suggestion and the run as a whole."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from planning_agent.agent.state import update_context
from planning_agent.stages._core.impact_logic import (
    aggregate_score,
    compute_kpis,
    project_suggestion,
)
from planning_agent.stages.base import BaseStage, StageRole

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext


class ImpactStage(BaseStage):
    """Attach projections and summaries, derive KPIs and the aggregate impact score."""

    role = StageRole.IMPACT

    @property
    def name(self) -> str:
        return "impact"

    @property
    def description(self) -> str:
        return "Project before/after impact and KPIs for accepted suggestions"

    def execute(self, context: PlanningContext) -> PlanningContext:
        if not context.suggestions:
            return context

        impacts = [project_suggestion(s, context) for s in context.suggestions]
        enriched = tuple(
            dataclasses.replace(
                suggestion,
                impact={**suggestion.impact, "projection": impact.to_dict()},
            )
            for suggestion, impact in zip(context.suggestions, impacts, strict=True)
        )
        return update_context(
            context,
            suggestions=enriched,
            kpis=compute_kpis(context, context.suggestions, impacts),
            impact_score=max(context.impact_score, aggregate_score(impacts)),
        )
