"""Budget analysis stage - flags categories that drift from plan."""

from __future__ import annotations

from typing import TYPE_CHECKING

from planning_agent.agent.state import append_suggestions
from planning_agent.agent.suggestions import (
    BudgetReallocation,
    Suggestion,
    SuggestionKind,
    clip_reasoning,
)
from planning_agent.core.config import PlanningConfig
from planning_agent.stages.base import BaseStage

if TYPE_CHECKING:
    from planning_agent.agent.state import BudgetCategory, PlanningContext

STAGE_CONFIDENCE = 85
SUGGESTION_CONFIDENCE = 80


class BudgetStage(BaseStage):
    """Propose reductions for over-budget and reallocation for under-budget categories."""

    @property
    def name(self) -> str:
        return "budget_analysis"

    @property
    def description(self) -> str:
        return "Compare actual spending with the plan per budget category"

    def __init__(self, config: PlanningConfig) -> None:
        self._config = config

    def execute(self, context: PlanningContext) -> PlanningContext:
        if context.budget is None:
            return context
        candidates = [
            suggestion
            for category in context.budget.categories
            if (suggestion := self._evaluate(category, context.net_flow)) is not None
        ]
        return append_suggestions(context, candidates, STAGE_CONFIDENCE)

    def _evaluate(self, category: BudgetCategory, net_flow: float) -> Suggestion | None:
        if category.planned <= 0:
            return None
        variance = category.variance
        if abs(variance) / category.planned <= self._config.budget_variance_threshold:
            return None

        amount = round(abs(variance) * self._config.budget_adjustment_factor, 2)
        percent = abs(variance) / category.planned * 100
        if variance > 0:
            payload = BudgetReallocation(
                category=category.name,
                direction="reduce",
                planned=category.planned,
                actual=category.actual,
                variance=variance,
                amount=amount,
                proposed_amount=round(category.actual - amount, 2),
            )
            reasoning = (
                f"{category.name} is {percent:.0f}% over budget; "
                f"cut spending by {amount:,.0f} kr to move back toward the plan."
            )
            impact = {
                "before": {"category_spend": category.actual, "net_flow": net_flow},
                "after": {"category_spend": payload.proposed_amount, "net_flow": net_flow + amount},
            }
        else:
            payload = BudgetReallocation(
                category=category.name,
                direction="reallocate",
                planned=category.planned,
                actual=category.actual,
                variance=variance,
                amount=amount,
                proposed_amount=round(category.planned - amount, 2),
            )
            reasoning = (
                f"{category.name} is {percent:.0f}% under budget; "
                f"{amount:,.0f} kr of its allocation can be moved elsewhere."
            )
            impact = {
                "before": {"category_planned": category.planned, "net_flow": net_flow},
                "after": {"category_planned": payload.proposed_amount, "net_flow": net_flow + amount},
            }

        return Suggestion(
            kind=SuggestionKind.BUDGET_REALLOCATE,
            reasoning=clip_reasoning(reasoning),
            confidence=SUGGESTION_CONFIDENCE,
            target=payload,
            impact=impact,
            source_stage=self.name,
        )
