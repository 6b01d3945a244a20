"""Unit tests for guardrail rules and the guardrail stage."""

from datetime import date

from planning_agent.agent.state import ContextStatus, Debt, Goal, Policy, update_context
from planning_agent.agent.suggestions import (
    BillDeferral,
    BudgetReallocation,
    DebtConsolidation,
    DebtPlan,
    DeferredBill,
    GoalPause,
    PartialPayment,
    RiskLevel,
    Suggestion,
    SuggestionKind,
)
from planning_agent.stages._core.guardrail_rules import resolve_policy, validate
from planning_agent.stages.guardrail_stage import GuardrailStage

IMPACT = {"before": {"net_flow": 0}, "after": {"net_flow": 0}}
NO_LARGE_CUTS = Policy("p1", "No Large Budget Cuts", params={"limit": 5000})


def _cut(amount: float) -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.BUDGET_REALLOCATE,
        reasoning="Cut travel spending.",
        confidence=80,
        target=BudgetReallocation("Travel", "reduce", 10000, 17500, 7500, amount, 17500 - amount),
        impact=IMPACT,
    )


def _deferral(*bills: tuple[str, str], deficit: float = 3000) -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.BILL_DEFER,
        reasoning="Defer bills.",
        confidence=85,
        target=BillDeferral(
            bills=tuple(
                DeferredBill(bill_id, title, 500, date(2026, 3, 5), date(2026, 4, 4))
                for bill_id, title in bills
            ),
            total_deferred=500.0 * len(bills),
            deficit=deficit,
            defer_days=30,
        ),
        impact=IMPACT,
    )


def _pause(*goal_ids: str) -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.GOAL_PAUSE,
        reasoning="Pause goals.",
        confidence=75,
        target=GoalPause(goal_ids, goal_ids, 1000, 2000),
        impact=IMPACT,
    )


def _consolidation(current: float, proposed: float, principal: float = 20000) -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.DEBT_CONSOLIDATE,
        reasoning="Consolidate debts.",
        confidence=75,
        target=DebtConsolidation(("d1", "d2"), principal, 20, 15, 60, current, proposed, 1000),
        impact=IMPACT,
    )


def _replan() -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.DEBT_REPLAN,
        reasoning="Replan debts.",
        confidence=85,
        target=DebtPlan("avalanche", 1200, (), 12, 30, 1000, 3000, 2000),
        impact=IMPACT,
    )


def _surplus(make_context, **kwargs):
    return make_context(income=50000, categories=[("Living", 40000, 40000)], **kwargs)


# ---------------------------------------------------------------------------
# Policy rules
# ---------------------------------------------------------------------------


def test_large_cut_rejected_by_named_policy(make_context):
    context = _surplus(make_context, policies=[NO_LARGE_CUTS])

    decision = validate(_cut(6000), context)

    assert not decision.allowed
    assert decision.violation_type == "policy"
    assert decision.policy_violation == "No Large Budget Cuts"
    assert decision.risk_level == RiskLevel.HIGH


def test_cut_within_policy_limit_allowed(make_context):
    decision = validate(_cut(4000), _surplus(make_context, policies=[NO_LARGE_CUTS]))
    assert decision.allowed
    assert decision.risk_level == RiskLevel.LOW


def test_rule_field_overrides_name_and_params_override_defaults():
    policy = Policy("p2", "Household cut cap", rule="max_budget_cut", params={"limit": 100})
    rule, params = resolve_policy(policy)
    assert rule is not None
    assert params == {"limit": 100}

    named = Policy("p3", "No Large Budget Cuts")
    assert resolve_policy(named)[1] == {"limit": 5000}


def test_unknown_policy_is_ignored(make_context):
    context = _surplus(make_context, policies=[Policy("p9", "Be nice")])
    assert validate(_cut(6000), context).allowed


def test_min_partial_payment_policy(make_context):
    suggestion = Suggestion(
        kind=SuggestionKind.BILL_PARTIAL_PAY,
        reasoning="Split the bill.",
        confidence=80,
        target=PartialPayment("b1", "Sofa", 1600, 800, 800, date(2026, 3, 31)),
        impact=IMPACT,
    )
    policy = Policy("p4", "Maximum Partial Payments")
    decision = validate(suggestion, _surplus(make_context, policies=[policy]))
    assert not decision.allowed
    assert decision.policy_violation == "Maximum Partial Payments"


def test_max_consolidation_amount_policy(make_context):
    policy = Policy("p5", "Debt Consolidation Limits", params={"limit": 10000})
    decision = validate(_consolidation(1300, 500), _surplus(make_context, policies=[policy]))
    assert not decision.allowed
    assert decision.violation_type == "policy"


def test_emergency_goal_pause_forbidden(make_context):
    goals = [Goal("g1", "Car", 1000), Goal("g2", "Nødfond", 10000, 9000)]
    context = _surplus(make_context, goals=goals, policies=[Policy("p6", "Emergency Fund Priority")])

    assert not validate(_pause("g1", "g2"), context).allowed
    assert validate(_pause("g1"), context).allowed


def test_deficit_risk_warning_raises_risk_and_adds_hint(make_context):
    context = _surplus(make_context, policies=[Policy("p7", "High Risk Warning")])

    decision = validate(_deferral(("b1", "Gym"), deficit=12000), context)

    assert decision.allowed
    assert decision.risk_level == RiskLevel.HIGH
    assert len(decision.hints) == 1


def test_policies_evaluated_before_safety_rules(make_context):
    # Both the policy and the deficit safety rule would reject this cut.
    context = make_context(
        income=30000, categories=[("Living", 32000, 32000)], policies=[NO_LARGE_CUTS]
    )
    decision = validate(_cut(6000), context)
    assert decision.violation_type == "policy"


# ---------------------------------------------------------------------------
# Safety rules
# ---------------------------------------------------------------------------


def test_cut_larger_than_half_the_deficit_rejected(make_context):
    context = make_context(income=30000, categories=[("Living", 32000, 32000)])
    decision = validate(_cut(1200), context)
    assert not decision.allowed
    assert decision.violation_type == "safety"
    assert decision.policy_violation == "budget_cut_within_deficit"
    assert validate(_cut(900), context).allowed


def test_consolidation_payment_increase_rejected(make_context):
    decision = validate(_consolidation(current=1000, proposed=1300), _surplus(make_context))
    assert not decision.allowed
    assert decision.policy_violation == "consolidation_payment_increase"
    assert validate(_consolidation(current=1000, proposed=1100), _surplus(make_context)).allowed


def test_essential_utility_deferral_rejected(make_context, make_bill):
    bill = make_bill("Strøm", 1800, bill_id="b-power")
    context = _surplus(make_context, bills=[bill])

    decision = validate(_deferral(("b-power", "Strøm"), ("b2", "Gym")), context)

    assert not decision.allowed
    assert decision.policy_violation == "essential_utility_deferral"


def test_unknown_bill_checked_by_title(make_context):
    decision = validate(_deferral(("gone", "Water bill")), _surplus(make_context))
    assert not decision.allowed


def test_deferral_of_lookalike_titles_allowed(make_context, make_bill):
    bill = make_bill("Parent council fee", 400, bill_id="b-pta")
    context = _surplus(make_context, bills=[bill])

    decision = validate(_deferral(("b-pta", "Parent council fee"), ("gone", "Torrent VPN")), context)

    assert decision.allowed


def test_goal_pause_without_buffer_warns(make_context):
    decision = validate(_pause("g1"), _surplus(make_context, goals=[Goal("g1", "Car", 1000)]))
    assert decision.allowed
    assert decision.risk_level == RiskLevel.MEDIUM
    assert decision.hints


def test_goal_pause_with_adequate_buffer_has_no_warning(make_context):
    goals = [Goal("g1", "Car", 1000), Goal("g2", "Emergency", 10000, 9000)]
    decision = validate(_pause("g1"), _surplus(make_context, goals=goals))
    assert decision.risk_level == RiskLevel.LOW
    assert decision.hints == ()


def test_debt_above_annual_income_flags_replan(make_context):
    context = _surplus(make_context, debts=[Debt("d1", "Mortgage", 700000, 4.0, 4000)])
    decision = validate(_replan(), context)
    assert decision.allowed
    assert decision.risk_level == RiskLevel.HIGH
    assert decision.hints


# ---------------------------------------------------------------------------
# Guardrail stage
# ---------------------------------------------------------------------------


def test_stage_moves_rejected_suggestions_to_blocked(make_context):
    context = update_context(
        _surplus(make_context, policies=[NO_LARGE_CUTS]),
        suggestions=(_cut(6000), _cut(1000)),
    )

    result = GuardrailStage().execute(context)

    assert [s.target.amount for s in result.suggestions] == [1000]
    assert len(result.blocked) == 1
    blocked = result.blocked[0]
    assert blocked.suggestion.target.amount == 6000
    assert blocked.policy_violation == "No Large Budget Cuts"
    assert blocked.violation_type == "policy"
    assert blocked.suggestion.risk_level == RiskLevel.HIGH
    assert result.status == ContextStatus.ACTIVE


def test_stage_blocks_context_when_everything_rejected(make_context):
    context = update_context(
        _surplus(make_context, policies=[NO_LARGE_CUTS]), suggestions=(_cut(6000),)
    )
    result = GuardrailStage().execute(context)
    assert result.suggestions == ()
    assert result.status == ContextStatus.BLOCKED


def test_stage_with_no_candidates_stays_active(make_context):
    result = GuardrailStage().execute(_surplus(make_context))
    assert result.status == ContextStatus.ACTIVE
    assert result.blocked == ()


def test_stage_records_hints_and_risk_on_accepted(make_context):
    context = update_context(
        _surplus(make_context, goals=[Goal("g1", "Car", 1000)]), suggestions=(_pause("g1"),)
    )
    accepted = GuardrailStage().execute(context).suggestions[0]
    assert accepted.risk_level == RiskLevel.MEDIUM
    assert len(accepted.policy_hints) == 1
