"""Goal analysis stage - savings goal priorities under the current cash flow."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import TYPE_CHECKING

from planning_agent.agent.state import append_suggestions
from planning_agent.agent.suggestions import (
    EmergencyGoal,
    GoalConsolidation,
    GoalPause,
    GoalPrioritization,
    Suggestion,
    SuggestionKind,
    clip_reasoning,
)
from planning_agent.core.config import PlanningConfig
from planning_agent.stages.base import BaseStage
from planning_agent.utils.clock import months_until

if TYPE_CHECKING:
    from planning_agent.agent.state import Goal, PlanningContext

STAGE_CONFIDENCE = 80
EMERGENCY_GOAL_NAME = "Emergency fund"


class GoalStage(BaseStage):
    """Prioritize near-term goals, pause optional ones under deficit, seed an emergency fund."""

    @property
    def name(self) -> str:
        return "goal_analysis"

    @property
    def description(self) -> str:
        return "Rebalance savings goals against monthly cash flow"

    def __init__(self, config: PlanningConfig) -> None:
        self._config = config

    def execute(self, context: PlanningContext) -> PlanningContext:
        if context.cashflow is None:
            return context

        net = context.net_flow
        candidates: list[Suggestion] = []
        if net > 0:
            prioritized = self._prioritize(context)
            if prioritized is not None:
                candidates.append(prioritized)
        elif net < 0:
            paused = self._pause(context)
            if paused is not None:
                candidates.append(paused)

        candidates.extend(self._consolidate(context))

        if context.emergency_goal is None and net > self._config.emergency_goal_min_net_flow:
            emergency = self._create_emergency(context)
            if emergency is not None:
                candidates.append(emergency)

        return append_suggestions(context, candidates, STAGE_CONFIDENCE)

    def _urgent_goals(self, context: PlanningContext) -> list[tuple[Goal, float]]:
        urgent = []
        for goal in context.goals:
            if goal.target_date is None or goal.is_funded:
                continue
            months = months_until(goal.target_date, context.now)
            if months <= self._config.urgent_goal_months:
                urgent.append((goal, max(0.0, months)))
        return urgent

    def _prioritize(self, context: PlanningContext) -> Suggestion | None:
        urgent = self._urgent_goals(context)
        if not urgent:
            return None
        goal, months = min(urgent, key=lambda pair: pair[1])
        allocation = round(
            min(
                context.net_flow * self._config.goal_allocation_fraction,
                self._config.max_goal_allocation,
                goal.remaining,
            ),
            2,
        )
        reasoning = (
            f"{goal.name} is due in {months:.0f} months with {goal.remaining:,.0f} kr left; "
            f"direct {allocation:,.0f} kr/month there before longer-horizon goals."
        )
        return Suggestion(
            kind=SuggestionKind.GOAL_PRIORITIZE,
            reasoning=clip_reasoning(reasoning),
            confidence=80,
            target=GoalPrioritization(
                goal_id=goal.goal_id,
                name=goal.name,
                months_remaining=round(months, 1),
                remaining_amount=round(goal.remaining, 2),
                monthly_allocation=allocation,
            ),
            impact={
                "before": {
                    "net_flow": context.net_flow,
                    "monthly_contribution": goal.monthly_contribution,
                },
                "after": {
                    "net_flow": context.net_flow - allocation,
                    "monthly_contribution": goal.monthly_contribution + allocation,
                },
            },
            source_stage=self.name,
        )

    def _pause(self, context: PlanningContext) -> Suggestion | None:
        pausable = [
            goal
            for goal in context.goals
            if goal.priority.upper() != "HIGH" and not goal.is_emergency_fund
        ]
        if not pausable:
            return None
        relief = round(sum(goal.monthly_contribution for goal in pausable), 2)
        deficit = -context.net_flow
        names = ", ".join(goal.name for goal in pausable)
        reasoning = (
            f"Cash flow is {deficit:,.0f} kr short each month; pausing {names} "
            f"frees {relief:,.0f} kr/month until the budget recovers."
        )
        return Suggestion(
            kind=SuggestionKind.GOAL_PAUSE,
            reasoning=clip_reasoning(reasoning),
            confidence=75,
            target=GoalPause(
                goal_ids=tuple(goal.goal_id for goal in pausable),
                goal_names=tuple(goal.name for goal in pausable),
                monthly_relief=relief,
                deficit=round(deficit, 2),
            ),
            impact={
                "before": {"net_flow": context.net_flow, "active_goals": len(context.goals)},
                "after": {
                    "net_flow": context.net_flow + relief,
                    "active_goals": len(context.goals) - len(pausable),
                },
            },
            source_stage=self.name,
        )

    def _consolidate(self, context: PlanningContext) -> list[Suggestion]:
        if len(context.goals) <= self._config.goal_consolidation_min_goals:
            return []
        by_category: dict[str, list[Goal]] = defaultdict(list)
        for goal in context.goals:
            if goal.category and not goal.is_emergency_fund:
                by_category[goal.category].append(goal)

        out = []
        for category in sorted(by_category):
            group = by_category[category]
            if len(group) < 2:
                continue
            reasoning = (
                f"{len(group)} separate {category} goals split your savings; "
                f"combining them into one makes progress easier to track."
            )
            out.append(
                Suggestion(
                    kind=SuggestionKind.GOAL_CONSOLIDATE,
                    reasoning=clip_reasoning(reasoning),
                    confidence=60,
                    target=GoalConsolidation(
                        category=category,
                        goal_ids=tuple(goal.goal_id for goal in group),
                        combined_target=round(sum(g.target_amount for g in group), 2),
                        combined_current=round(sum(g.current_amount for g in group), 2),
                    ),
                    impact={
                        "before": {"net_flow": context.net_flow, "goal_count": len(group)},
                        "after": {"net_flow": context.net_flow, "goal_count": 1},
                    },
                    source_stage=self.name,
                )
            )
        return out

    def _create_emergency(self, context: PlanningContext) -> Suggestion | None:
        net = context.net_flow
        target = round(
            min(net * self._config.emergency_goal_months, self._config.emergency_goal_cap), 2
        )
        monthly = round(
            min(net * self._config.extra_payment_fraction, self._config.max_extra_payment), 2
        )
        if monthly <= 0:
            return None
        months = math.ceil(target / monthly)
        reasoning = (
            f"No emergency fund exists; saving {monthly:,.0f} kr/month builds a "
            f"{target:,.0f} kr buffer in {months} months."
        )
        return Suggestion(
            kind=SuggestionKind.GOAL_CREATE_EMERGENCY,
            reasoning=clip_reasoning(reasoning),
            confidence=85,
            target=EmergencyGoal(
                name=EMERGENCY_GOAL_NAME,
                target_amount=target,
                monthly_contribution=monthly,
                months_to_target=months,
            ),
            impact={
                "before": {"net_flow": net, "emergency_fund": 0.0},
                "after": {"net_flow": net - monthly, "emergency_fund": target},
            },
            source_stage=self.name,
        )
