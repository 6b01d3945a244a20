"""Impact core - PURE functions for projections, KPIs and the aggregate score.

This module contains ZERO database access. Every number is re-derived from
the suggestion's own payload and before/after projection so the result does
not depend on how the analysis stage computed it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from planning_agent.agent.suggestions import (
    BillDeferral,
    DebtConsolidation,
    DebtPlan,
    EmergencyFundPlan,
    EmergencyGoal,
    GoalPause,
    PartialPayment,
    Suggestion,
    SuggestionKind,
)

if TYPE_CHECKING:
    from planning_agent.agent.state import Goal, PlanningContext


class HealthTier(StrEnum):
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


class ReadinessTier(StrEnum):
    NONE = "none"
    INSUFFICIENT = "insufficient"
    ADEQUATE = "adequate"
    EXCELLENT = "excellent"


RISK_REDUCTION_BY_KIND: dict[SuggestionKind, str] = {
    SuggestionKind.BILL_PRIORITIZE: "high",
    SuggestionKind.DEBT_EMERGENCY_FUND: "high",
    SuggestionKind.GOAL_CREATE_EMERGENCY: "high",
    SuggestionKind.BILL_DEFER: "medium",
    SuggestionKind.BILL_PARTIAL_PAY: "medium",
    SuggestionKind.DEBT_REPLAN: "medium",
    SuggestionKind.DEBT_CONSOLIDATE: "medium",
}
RISK_BONUS: dict[str, float] = {"high": 15.0, "medium": 10.0, "low": 5.0}

CASH_FLOW_POINTS_CAP = 20.0
INTEREST_POINTS_CAP = 15.0
TIME_POINTS_CAP = 10.0


@dataclass(frozen=True, slots=True)
class SuggestionImpact:
    cash_flow_before: float
    cash_flow_after: float
    interest_saved: float
    time_saved_months: int
    immediate_relief: float
    risk_reduction: str

    @property
    def cash_flow_improvement(self) -> float:
        return self.cash_flow_after - self.cash_flow_before

    def summary(self) -> str:
        parts = []
        if self.cash_flow_improvement:
            parts.append(f"cash flow {self.cash_flow_improvement:+,.0f} kr/month")
        if self.interest_saved:
            parts.append(f"{self.interest_saved:,.0f} kr interest saved")
        if self.time_saved_months:
            parts.append(f"debt-free {self.time_saved_months} months sooner")
        if self.immediate_relief:
            parts.append(f"{self.immediate_relief:,.0f} kr immediate relief")
        if not parts:
            return "No quantifiable impact"
        text = ", ".join(parts)
        return text[0].upper() + text[1:]

    def score(self) -> float:
        """Capped contribution of this suggestion to the aggregate impact score."""
        return (
            min(max(self.cash_flow_improvement, 0.0) / 1000, CASH_FLOW_POINTS_CAP)
            + min(max(self.interest_saved, 0.0) / 10000, INTEREST_POINTS_CAP)
            + min(self.time_saved_months / 12, TIME_POINTS_CAP)
            + RISK_BONUS.get(self.risk_reduction, 0.0)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cash_flow": {
                "before": round(self.cash_flow_before, 2),
                "after": round(self.cash_flow_after, 2),
                "improvement": round(self.cash_flow_improvement, 2),
            },
            "interest_saved": round(self.interest_saved, 2),
            "time_saved_months": self.time_saved_months,
            "immediate_relief": round(self.immediate_relief, 2),
            "risk_reduction": self.risk_reduction,
            "summary": self.summary(),
        }


def cash_flow_health(net_flow: float, income: float) -> HealthTier:
    if income <= 0:
        return HealthTier.POOR
    ratio = net_flow / income
    if ratio >= 0.2:
        return HealthTier.EXCELLENT
    if ratio >= 0.1:
        return HealthTier.GOOD
    if ratio >= 0:
        return HealthTier.FAIR
    return HealthTier.POOR


def debt_to_income(total_debt: float, monthly_income: float) -> float:
    """Debt as a percentage of annual income; 0 when there is no income to compare."""
    if monthly_income <= 0:
        return 0.0
    return round(total_debt / (monthly_income * 12) * 100, 1)


def readiness_tier(current: float, target: float) -> ReadinessTier:
    if target <= 0:
        return ReadinessTier.NONE
    if current >= target:
        return ReadinessTier.EXCELLENT
    ratio = current / target
    if ratio >= 0.75:
        return ReadinessTier.ADEQUATE
    if ratio >= 0.25:
        return ReadinessTier.INSUFFICIENT
    return ReadinessTier.NONE


def emergency_readiness(goal: Goal | None) -> ReadinessTier:
    if goal is None:
        return ReadinessTier.NONE
    return readiness_tier(goal.current_amount, goal.target_amount)


def project_suggestion(suggestion: Suggestion, context: PlanningContext) -> SuggestionImpact:
    """Derive the quantitative projection for one suggestion."""
    before = suggestion.impact.get("before", {})
    after = suggestion.impact.get("after", {})
    net_before = float(before.get("net_flow", context.net_flow))
    net_after = float(after.get("net_flow", net_before))

    target = suggestion.target
    interest_saved = 0.0
    time_saved = 0
    relief = 0.0
    if isinstance(target, DebtPlan):
        interest_saved = target.interest_saved
        time_saved = max(0, target.minimum_only_months - target.months_to_payoff)
    elif isinstance(target, DebtConsolidation):
        interest_saved = target.potential_savings
    elif isinstance(target, BillDeferral):
        relief = target.total_deferred
    elif isinstance(target, PartialPayment):
        relief = target.deferred_amount
    elif isinstance(target, GoalPause):
        relief = target.monthly_relief

    return SuggestionImpact(
        cash_flow_before=net_before,
        cash_flow_after=net_after,
        interest_saved=interest_saved,
        time_saved_months=time_saved,
        immediate_relief=relief,
        risk_reduction=RISK_REDUCTION_BY_KIND.get(suggestion.kind, "low"),
    )


def aggregate_score(impacts: Iterable[SuggestionImpact]) -> float:
    """Average of the capped per-suggestion contributions, rounded to a whole point."""
    impacts = list(impacts)
    if not impacts:
        return 0.0
    return float(round(sum(impact.score() for impact in impacts) / len(impacts)))


def compute_kpis(
    context: PlanningContext,
    suggestions: Iterable[Suggestion],
    impacts: Iterable[SuggestionImpact],
) -> dict[str, dict[str, Any]]:
    """Before/after KPI pairs assuming every accepted suggestion is applied.

    Debt is projected one year ahead at the planned extra payment; the
    emergency fund one year ahead at the proposed monthly contribution.
    """
    income = context.monthly_income
    net_before = context.net_flow
    net_after = net_before + sum(impact.cash_flow_improvement for impact in impacts)

    debt_before = context.total_debt
    debt_after = debt_before
    fund = context.emergency_goal
    fund_current = fund.current_amount if fund else 0.0
    fund_target = fund.target_amount if fund else 0.0
    fund_after = fund_current

    for suggestion in suggestions:
        target = suggestion.target
        if isinstance(target, DebtPlan):
            debt_after = max(0.0, debt_after - target.extra_payment * 12)
        elif isinstance(target, EmergencyGoal):
            fund_target = max(fund_target, target.target_amount)
            fund_after += target.monthly_contribution * 12
        elif isinstance(target, EmergencyFundPlan):
            fund_target = max(fund_target, target.fund_amount)
            fund_after += target.monthly_contribution * 12

    return {
        "cash_flow_health": {
            "before": cash_flow_health(net_before, income).value,
            "after": cash_flow_health(net_after, income).value,
        },
        "debt_to_income": {
            "before": debt_to_income(debt_before, income),
            "after": debt_to_income(debt_after, income),
        },
        "emergency_fund_readiness": {
            "before": readiness_tier(fund_current, fund.target_amount if fund else 0.0).value,
            "after": readiness_tier(min(fund_after, fund_target), fund_target).value,
        },
    }
