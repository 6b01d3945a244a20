"""Unit tests for the debt analysis stage."""

import math

import pytest

from planning_agent.agent.state import Debt, Goal
from planning_agent.agent.suggestions import SuggestionKind
from planning_agent.core.config import PlanningConfig
from planning_agent.stages.debt_stage import DebtStage

DEBTS = [
    Debt("d3", "Car loan", 40000, 6.0, 1500),
    Debt("d1", "Credit card", 5000, 22.0, 500),
    Debt("d2", "Consumer loan", 15000, 18.0, 800),
]


def _surplus_context(make_context, net=4000, **kwargs):
    return make_context(income=30000 + net, categories=[("Living", 30000, 30000)], **kwargs)


def _by_kind(context, kind):
    return [s for s in context.suggestions if s.kind == kind]


def test_snowball_plan_orders_by_principal(make_context):
    config = PlanningConfig(small_balance_threshold=50000, extra_payment_fraction=0.5)
    context = _surplus_context(make_context, debts=DEBTS)

    result = DebtStage(config).execute(context)

    plan = _by_kind(result, SuggestionKind.DEBT_REPLAN)[0].target
    assert plan.strategy == "snowball"
    assert plan.extra_payment == 2000
    assert [e.principal for e in plan.entries] == [5000, 15000, 40000]
    assert [e.monthly_payment for e in plan.entries] == [2500, 2800, 3500]
    assert plan.months_to_payoff == max(e.months_to_payoff for e in plan.entries)
    assert plan.months_to_payoff < plan.minimum_only_months
    assert plan.interest_saved > 0


def test_avalanche_plan_with_default_thresholds(make_context, planning_config):
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=DEBTS))

    replan = _by_kind(result, SuggestionKind.DEBT_REPLAN)[0]
    assert replan.target.strategy == "avalanche"
    assert replan.target.extra_payment == 1200
    assert [e.annual_rate for e in replan.target.entries] == [22.0, 18.0, 6.0]
    assert replan.impact["after"]["net_flow"] == 4000 - 1200
    assert result.confidence == 85


def test_stored_payoff_months_follow_amortization_formula(make_context, planning_config):
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=DEBTS))
    stored = _by_kind(result, SuggestionKind.DEBT_REPLAN)[0].target_json

    for entry in stored["entries"]:
        r = entry["annual_rate"] / 100 / 12
        ratio = entry["principal"] * r / entry["monthly_payment"]
        expected = math.ceil(-math.log(1 - ratio) / math.log(1 + r))
        assert entry["months_to_payoff"] == expected
    assert stored["months_to_payoff"] == max(e["months_to_payoff"] for e in stored["entries"])


def test_replan_needs_meaningful_extra_payment(make_context, planning_config):
    context = _surplus_context(make_context, net=3000, debts=DEBTS)
    result = DebtStage(planning_config).execute(context)
    assert _by_kind(result, SuggestionKind.DEBT_REPLAN) == []


def test_consolidation_of_high_interest_debts(make_context, planning_config):
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=DEBTS))

    consolidation = _by_kind(result, SuggestionKind.DEBT_CONSOLIDATE)[0].target
    assert consolidation.debt_ids == ("d1", "d2")
    assert consolidation.total_principal == 20000
    assert consolidation.current_average_rate == 20.0
    assert consolidation.new_rate == 15.0
    assert consolidation.term_months == 60
    assert consolidation.current_monthly_payment == 1300
    assert consolidation.proposed_monthly_payment == pytest.approx(475.8, abs=0.1)


def test_consolidation_rate_floor(make_context, planning_config):
    debts = [Debt("a", "A", 10000, 16.0, 300), Debt("b", "B", 10000, 17.0, 300)]
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=debts))
    assert _by_kind(result, SuggestionKind.DEBT_CONSOLIDATE)[0].target.new_rate == 11.5

    floor = PlanningConfig(consolidation_rate_discount=10)
    result = DebtStage(floor).execute(_surplus_context(make_context, debts=debts))
    assert _by_kind(result, SuggestionKind.DEBT_CONSOLIDATE)[0].target.new_rate == 8.0


def test_single_high_interest_debt_not_consolidated(make_context, planning_config):
    debts = [Debt("a", "A", 10000, 25.0, 300), Debt("b", "B", 10000, 5.0, 300)]
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=debts))
    assert _by_kind(result, SuggestionKind.DEBT_CONSOLIDATE) == []


def test_emergency_fund_for_heavy_debt(make_context, planning_config):
    result = DebtStage(planning_config).execute(_surplus_context(make_context, debts=DEBTS))

    fund = _by_kind(result, SuggestionKind.DEBT_EMERGENCY_FUND)[0].target
    assert fund.fund_amount == 12000
    assert fund.monthly_contribution == 1200
    assert fund.total_debt == 60000


def test_emergency_fund_skipped_when_buffer_adequate(make_context, planning_config):
    goals = [Goal("g1", "Nødfond", 10000, 8000)]
    context = _surplus_context(make_context, debts=DEBTS, goals=goals)
    result = DebtStage(planning_config).execute(context)
    assert _by_kind(result, SuggestionKind.DEBT_EMERGENCY_FUND) == []


def test_no_debts_leaves_context_unchanged(make_context, planning_config):
    context = _surplus_context(make_context, debts=[Debt("z", "Paid", 0, 10.0, 0)])
    assert DebtStage(planning_config).execute(context) is context
