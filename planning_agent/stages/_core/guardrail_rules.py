"""Guardrail core - PURE policy and safety rule evaluation.

This module contains ZERO database access.

Policy rules are data-driven: each active Policy names a rule and its
thresholds. Safety rules are fixed and cannot be configured away. For a
single suggestion, policies are evaluated first, in order, then safety
rules; the first rejecting rule ends evaluation. Non-rejecting rules may
add hints and raise the risk level; the final risk is the most severe
level seen (max-severity wins).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from planning_agent.agent.state import mentions_essential_utility
from planning_agent.agent.suggestions import (
    BillDeferral,
    BudgetReallocation,
    DebtConsolidation,
    GoalPause,
    PartialPayment,
    RiskLevel,
    Suggestion,
    SuggestionKind,
    max_risk,
)
from planning_agent.stages._core.impact_logic import ReadinessTier, emergency_readiness

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext, Policy

POLICY_VIOLATION = "policy"
SAFETY_VIOLATION = "safety"


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    allowed: bool = True
    reason: str | None = None
    risk_level: RiskLevel | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class GuardrailDecision:
    allowed: bool
    risk_level: RiskLevel
    hints: tuple[str, ...] = ()
    reason: str | None = None
    violation_type: str | None = None
    policy_violation: str | None = None


Rule = Callable[[Suggestion, "PlanningContext", Mapping[str, Any]], RuleOutcome | None]


def _reject(reason: str) -> RuleOutcome:
    return RuleOutcome(allowed=False, reason=reason, risk_level=RiskLevel.HIGH)


# ---------------------------------------------------------------------------
# Policy rules
# ---------------------------------------------------------------------------


def _max_budget_cut(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, BudgetReallocation) or target.direction != "reduce":
        return None
    limit = float(params.get("limit", 5000))
    if target.amount > limit:
        return _reject(f"Budget cut of {target.amount:,.0f} kr exceeds the {limit:,.0f} kr limit")
    return None


def _min_partial_payment(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, PartialPayment):
        return None
    floor = float(params.get("floor", 1000))
    if target.pay_now < floor:
        return _reject(
            f"Partial payment of {target.pay_now:,.0f} kr is below the {floor:,.0f} kr minimum"
        )
    return None


def _max_consolidation_amount(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, DebtConsolidation):
        return None
    limit = float(params.get("limit", 200000))
    if target.total_principal > limit:
        return _reject(
            f"Consolidating {target.total_principal:,.0f} kr exceeds the {limit:,.0f} kr limit"
        )
    return None


def _forbid_emergency_goal_pause(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, GoalPause):
        return None
    for goal_id in target.goal_ids:
        goal = context.find_goal(goal_id)
        if goal is not None and goal.is_emergency_fund:
            return _reject(f"Emergency fund goal {goal.name} may not be paused")
    return None


def _deficit_risk_warning(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, BillDeferral):
        return None
    threshold = float(params.get("threshold", 10000))
    if target.deficit <= threshold:
        return None
    return RuleOutcome(
        risk_level=RiskLevel(params.get("risk_level", RiskLevel.HIGH)),
        hint=f"Deficit above {threshold:,.0f} kr: deferral only postpones the shortfall",
    )


POLICY_RULES: dict[str, Rule] = {
    "max_budget_cut": _max_budget_cut,
    "min_partial_payment": _min_partial_payment,
    "max_consolidation_amount": _max_consolidation_amount,
    "forbid_emergency_goal_pause": _forbid_emergency_goal_pause,
    "deficit_risk_warning": _deficit_risk_warning,
}

# Policy documents that carry only a name resolve to these rules and defaults.
NAMED_POLICIES: dict[str, tuple[str, dict[str, Any]]] = {
    "No Large Budget Cuts": ("max_budget_cut", {"limit": 5000}),
    "Maximum Partial Payments": ("min_partial_payment", {"floor": 1000}),
    "Debt Consolidation Limits": ("max_consolidation_amount", {"limit": 200000}),
    "Emergency Fund Priority": ("forbid_emergency_goal_pause", {}),
    "High Risk Warning": ("deficit_risk_warning", {"threshold": 10000, "risk_level": "high"}),
}


def resolve_policy(policy: Policy) -> tuple[Rule | None, dict[str, Any]]:
    """Find the rule implementation and effective parameters for a policy."""
    rule_name = policy.rule
    defaults: dict[str, Any] = {}
    if policy.name in NAMED_POLICIES:
        named_rule, defaults = NAMED_POLICIES[policy.name]
        rule_name = rule_name or named_rule
    return POLICY_RULES.get(rule_name), {**defaults, **dict(policy.params)}


# ---------------------------------------------------------------------------
# Safety rules
# ---------------------------------------------------------------------------


def _budget_cut_within_deficit(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, BudgetReallocation) or target.direction != "reduce":
        return None
    net = context.net_flow
    if net < 0 and target.amount > abs(net) * 0.5:
        return _reject(
            f"Budget cut of {target.amount:,.0f} kr exceeds half of the "
            f"{abs(net):,.0f} kr monthly deficit"
        )
    return None


def _consolidation_payment_increase(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, DebtConsolidation):
        return None
    if target.proposed_monthly_payment > target.current_monthly_payment * 1.2:
        return _reject(
            f"Consolidated payment of {target.proposed_monthly_payment:,.0f} kr is more than "
            f"20% above the current {target.current_monthly_payment:,.0f} kr"
        )
    return None


def _essential_utility_deferral(suggestion, context, params) -> RuleOutcome | None:
    target = suggestion.target
    if not isinstance(target, BillDeferral):
        return None
    for deferred in target.bills:
        bill = context.find_bill(deferred.bill_id)
        essential = bill.is_essential_utility if bill else mentions_essential_utility(deferred.title)
        if essential:
            return _reject(f"{deferred.title} is an essential utility and cannot be deferred")
    return None


def _goal_pause_without_buffer(suggestion, context, params) -> RuleOutcome | None:
    if not isinstance(suggestion.target, GoalPause):
        return None
    if emergency_readiness(context.emergency_goal) in (
        ReadinessTier.ADEQUATE,
        ReadinessTier.EXCELLENT,
    ):
        return None
    return RuleOutcome(
        risk_level=RiskLevel.MEDIUM,
        hint="No adequate emergency fund: keep at least a small monthly saving",
    )


def _debt_to_income_ceiling(suggestion, context, params) -> RuleOutcome | None:
    if suggestion.kind != SuggestionKind.DEBT_REPLAN:
        return None
    income = context.monthly_income
    if context.total_debt <= income * 12:
        return None
    return RuleOutcome(
        risk_level=RiskLevel.HIGH,
        hint="Total debt exceeds a year of income: consider professional debt counselling",
    )


SAFETY_RULES: tuple[tuple[str, Rule], ...] = (
    ("budget_cut_within_deficit", _budget_cut_within_deficit),
    ("consolidation_payment_increase", _consolidation_payment_increase),
    ("essential_utility_deferral", _essential_utility_deferral),
    ("goal_pause_without_buffer", _goal_pause_without_buffer),
    ("debt_to_income_ceiling", _debt_to_income_ceiling),
)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def validate(suggestion: Suggestion, context: PlanningContext) -> GuardrailDecision:
    """Apply policy rules, then safety rules, to one candidate suggestion."""
    hints: list[str] = []
    risk = suggestion.risk_level

    evaluations: list[tuple[str, str, Rule, Mapping[str, Any]]] = []
    for policy in context.policies:
        rule, params = resolve_policy(policy)
        if rule is not None:
            evaluations.append((POLICY_VIOLATION, policy.name, rule, params))
    for rule_name, rule in SAFETY_RULES:
        evaluations.append((SAFETY_VIOLATION, rule_name, rule, {}))

    for violation_type, label, rule, params in evaluations:
        outcome = rule(suggestion, context, params)
        if outcome is None:
            continue
        risk = max_risk(risk, outcome.risk_level)
        if outcome.hint:
            hints.append(outcome.hint)
        if not outcome.allowed:
            return GuardrailDecision(
                allowed=False,
                risk_level=risk,
                hints=tuple(hints),
                reason=outcome.reason,
                violation_type=violation_type,
                policy_violation=label,
            )

    return GuardrailDecision(allowed=True, risk_level=risk, hints=tuple(hints))
