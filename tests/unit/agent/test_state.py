"""Unit tests for PlanningContext and snapshot records."""

import dataclasses
from datetime import date

import pytest

from planning_agent.agent.state import (
    Bill,
    Budget,
    BudgetCategory,
    CashFlow,
    ContextStatus,
    Debt,
    Goal,
    append_suggestions,
    context_snapshot,
    mentions_essential_utility,
    sort_goals,
    update_context,
)
from planning_agent.agent.suggestions import (
    BudgetReallocation,
    Suggestion,
    SuggestionKind,
)


def _suggestion(category: str = "Food") -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.BUDGET_REALLOCATE,
        reasoning=f"{category} is over budget.",
        confidence=80,
        target=BudgetReallocation(
            category=category,
            direction="reduce",
            planned=5000,
            actual=6500,
            variance=1500,
            amount=1200,
            proposed_amount=5300,
        ),
        impact={"before": {"net_flow": 0}, "after": {"net_flow": 1200}},
    )


@pytest.mark.parametrize(
    ("title", "tags", "category", "expected"),
    [
        ("Strøm mars", (), "", True),
        ("Husleie", (), "", True),
        ("Water bill", (), "", True),
        ("Internet", ("essential_utility",), "", True),
        ("Internet", (), "essential_utility", True),
        ("Streaming", (), "entertainment", False),
        ("Parent council fee", (), "", False),
        ("Current account fee", (), "", False),
        ("Torrent VPN", (), "", False),
        ("Different gym", (), "", False),
        ("Saltwater aquarium", (), "", False),
    ],
)
def test_bill_essential_utility_detection(title, tags, category, expected):
    bill = Bill("b1", title, 500, date(2026, 3, 5), category=category, tags=tags)
    assert bill.is_essential_utility is expected


def test_mentions_essential_utility_is_case_insensitive():
    assert mentions_essential_utility("ELECTRICITY invoice")
    assert mentions_essential_utility("Gym", "STRØM mars")
    assert mentions_essential_utility("Rent, April")
    assert not mentions_essential_utility("Gym")


def test_bill_critical_priority():
    assert Bill("b1", "Tax", 100, date(2026, 3, 5), priority="CRITICAL").is_critical
    assert not Bill("b2", "Tax", 100, date(2026, 3, 5)).is_critical


def test_goal_emergency_detection_and_remaining():
    by_category = Goal("g1", "Buffer", 10000, 2500, category="emergency")
    by_name = Goal("g2", "Nødfond", 10000)
    plain = Goal("g3", "Holiday", 10000, 12000)
    assert by_category.is_emergency_fund
    assert by_name.is_emergency_fund
    assert not plain.is_emergency_fund
    assert by_category.remaining == 7500
    assert plain.remaining == 0
    assert plain.is_funded


def test_budget_variance_and_total_planned():
    budget = Budget(
        "b", "2026-03", 30000, (BudgetCategory("Food", 5000, 6500), BudgetCategory("Rent", 10000, 9000))
    )
    assert budget.total_planned == 15000
    assert budget.categories[0].variance == 1500
    assert budget.categories[1].variance == -1000


def test_cashflow_derive(make_bill):
    budget = Budget("b", "2026-03", 30000, (BudgetCategory("Food", 20000, 20000),))
    bills = [make_bill(f"Bill {i}", 100) for i in range(7)]
    cashflow = CashFlow.derive(budget, bills, upcoming_count=5)
    assert cashflow.net_flow == 10000
    assert cashflow.monthly_expenses == 20000
    assert len(cashflow.upcoming_bills) == 5


def test_cashflow_derive_without_budget():
    assert CashFlow.derive(None, []) is None


def test_context_properties(make_context):
    context = make_context(
        income=30000,
        categories=[("Living", 25000, 25000)],
        debts=[Debt("d1", "Card", 10000, 20, 500), Debt("d2", "Car", 40000, 5, 1500)],
        goals=[Goal("g1", "Emergency", 50000, category="emergency")],
    )
    assert context.net_flow == 5000
    assert context.monthly_income == 30000
    assert context.total_debt == 50000
    assert context.emergency_goal.goal_id == "g1"
    assert context.find_goal("missing") is None


def test_context_without_budget_has_zero_flow(make_context):
    context = make_context(income=None)
    assert context.cashflow is None
    assert context.net_flow == 0.0


def test_update_context_never_mutates(make_context):
    context = make_context()
    updated = update_context(context, confidence=90)
    assert context.confidence == 0
    assert updated.confidence == 90
    with pytest.raises(dataclasses.FrozenInstanceError):
        context.confidence = 10


def test_append_suggestions_keeps_prefix_and_raises_confidence(make_context):
    first = _suggestion("Food")
    second = _suggestion("Travel")
    context = update_context(make_context(), suggestions=(first,), confidence=70)

    updated = append_suggestions(context, [second], confidence_floor=85)
    assert updated.suggestions == (first, second)
    assert updated.confidence == 85


def test_append_suggestions_nothing_added_returns_same_context(make_context):
    context = make_context()
    assert append_suggestions(context, [], confidence_floor=85) is context


def test_append_suggestions_never_lowers_confidence(make_context):
    context = update_context(make_context(), confidence=95)
    assert append_suggestions(context, [_suggestion()], 80).confidence == 95


def test_context_snapshot_is_json_safe_copy(make_context):
    context = update_context(make_context(), suggestions=(_suggestion(),))
    snapshot = context_snapshot(context)
    assert snapshot["now"] == "2026-03-01T09:00:00+00:00"
    assert snapshot["status"] == ContextStatus.ACTIVE.value
    assert snapshot["suggestions"][0]["kind"] == "budget_reallocate"
    assert snapshot["suggestions"][0]["target"]["amount"] == 1200

    snapshot["suggestions"].clear()
    assert len(context.suggestions) == 1


def test_sort_goals_by_priority_then_date():
    goals = [
        Goal("g1", "Car", 1000, priority="LOW", target_date=date(2026, 4, 1)),
        Goal("g2", "House", 1000, priority="HIGH", target_date=date(2027, 1, 1)),
        Goal("g3", "Trip", 1000, priority="HIGH", target_date=date(2026, 6, 1)),
        Goal("g4", "Watch", 1000, priority="MEDIUM"),
    ]
    assert [g.goal_id for g in sort_goals(goals)] == ["g3", "g2", "g4", "g1"]
