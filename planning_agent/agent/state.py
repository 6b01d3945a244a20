"""Planning context and snapshot records.

The PlanningContext is the value threaded through every pipeline stage.
It is a frozen dataclass: stages never mutate it, they return a new one
via update_context(). Snapshot records are equally immutable, so a
context captured for a NodeTrace can never be altered by a later stage.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from planning_agent.utils.constants import (
    EMERGENCY_GOAL_CATEGORY,
    EMERGENCY_GOAL_KEYWORDS,
    ESSENTIAL_UTILITY_KEYWORDS,
    ESSENTIAL_UTILITY_TAG,
    GOAL_PRIORITY_RANK,
)
from planning_agent.utils.dataclass_utils import to_json_safe

if TYPE_CHECKING:
    from planning_agent.agent.suggestions import BlockedSuggestion, Suggestion


class ContextStatus(StrEnum):
    ACTIVE = "active"
    BLOCKED = "blocked"


_ESSENTIAL_UTILITY_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in ESSENTIAL_UTILITY_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


def mentions_essential_utility(*texts: str) -> bool:
    """True when any text contains an essential-utility keyword as a whole word."""
    return any(_ESSENTIAL_UTILITY_PATTERN.search(text) for text in texts if text)


@dataclass(frozen=True, slots=True)
class BudgetCategory:
    name: str
    planned: float
    actual: float

    @property
    def variance(self) -> float:
        return self.actual - self.planned


@dataclass(frozen=True, slots=True)
class Budget:
    budget_id: str
    month: str
    income_monthly: float
    categories: tuple[BudgetCategory, ...] = ()

    @property
    def total_planned(self) -> float:
        return sum(category.planned for category in self.categories)


@dataclass(frozen=True, slots=True)
class Bill:
    bill_id: str
    title: str
    amount: float
    due_date: date
    priority: str = "normal"
    category: str = ""
    tags: tuple[str, ...] = ()

    @property
    def is_critical(self) -> bool:
        return self.priority.lower() == "critical"

    @property
    def is_essential_utility(self) -> bool:
        """Electricity, water and rent: never eligible for deferral."""
        if self.category == ESSENTIAL_UTILITY_TAG or ESSENTIAL_UTILITY_TAG in self.tags:
            return True
        return mentions_essential_utility(self.title, self.category, *self.tags)


@dataclass(frozen=True, slots=True)
class Debt:
    debt_id: str
    name: str
    principal: float
    annual_rate: float
    minimum_payment: float


@dataclass(frozen=True, slots=True)
class Goal:
    goal_id: str
    name: str
    target_amount: float
    current_amount: float = 0.0
    target_date: date | None = None
    priority: str = "MEDIUM"
    category: str = ""
    monthly_contribution: float = 0.0

    @property
    def is_emergency_fund(self) -> bool:
        if self.category.lower() == EMERGENCY_GOAL_CATEGORY:
            return True
        name = self.name.lower()
        return any(keyword in name for keyword in EMERGENCY_GOAL_KEYWORDS)

    @property
    def remaining(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)

    @property
    def is_funded(self) -> bool:
        return self.current_amount >= self.target_amount


@dataclass(frozen=True, slots=True)
class Policy:
    """An active policy document. ``rule`` may be empty for legacy name-only policies."""

    policy_id: str
    name: str
    rule: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CashFlow:
    monthly_income: float
    monthly_expenses: float
    net_flow: float
    upcoming_bills: tuple[Bill, ...] = ()

    @classmethod
    def derive(
        cls,
        budget: Budget | None,
        bills: Iterable[Bill],
        upcoming_count: int = 5,
    ) -> CashFlow | None:
        """Income minus planned spending, plus the next ``upcoming_count`` unpaid bills."""
        if budget is None:
            return None
        income = budget.income_monthly
        expenses = budget.total_planned
        return cls(
            monthly_income=income,
            monthly_expenses=expenses,
            net_flow=income - expenses,
            upcoming_bills=tuple(bills)[:upcoming_count],
        )


@dataclass(frozen=True, slots=True)
class PlanningContext:
    """Threaded pipeline state for one run."""

    user_id: str
    entry_point: str
    now: datetime
    budget: Budget | None = None
    cashflow: CashFlow | None = None
    bills: tuple[Bill, ...] = ()
    debts: tuple[Debt, ...] = ()
    goals: tuple[Goal, ...] = ()
    policies: tuple[Policy, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()
    blocked: tuple[BlockedSuggestion, ...] = ()
    confidence: int = 0
    impact_score: float = 0.0
    kpis: Mapping[str, Any] = field(default_factory=dict)
    status: ContextStatus = ContextStatus.ACTIVE

    @property
    def net_flow(self) -> float:
        return self.cashflow.net_flow if self.cashflow else 0.0

    @property
    def monthly_income(self) -> float:
        return self.cashflow.monthly_income if self.cashflow else 0.0

    @property
    def total_debt(self) -> float:
        return sum(debt.principal for debt in self.debts)

    @property
    def emergency_goal(self) -> Goal | None:
        return next((goal for goal in self.goals if goal.is_emergency_fund), None)

    def find_bill(self, bill_id: str) -> Bill | None:
        return next((bill for bill in self.bills if bill.bill_id == bill_id), None)

    def find_goal(self, goal_id: str) -> Goal | None:
        return next((goal for goal in self.goals if goal.goal_id == goal_id), None)


def update_context(context: PlanningContext, **updates: Any) -> PlanningContext:
    """Return a new context with updated fields. Never mutates input."""
    return dataclasses.replace(context, **updates)


def append_suggestions(
    context: PlanningContext,
    suggestions: Iterable[Suggestion],
    confidence_floor: int,
) -> PlanningContext:
    """Append candidates and raise the running confidence when anything was added."""
    added = tuple(suggestions)
    if not added:
        return context
    return update_context(
        context,
        suggestions=context.suggestions + added,
        confidence=max(context.confidence, confidence_floor),
    )


def context_snapshot(context: PlanningContext) -> dict[str, Any]:
    """Independent JSON-safe copy of a context for NodeTrace state_in/state_out."""
    snapshot = to_json_safe(context)
    snapshot["suggestions"] = [s.to_dict() for s in context.suggestions]
    snapshot["blocked"] = [b.to_dict() for b in context.blocked]
    return snapshot


def sort_goals(goals: Iterable[Goal]) -> tuple[Goal, ...]:
    """Order goals HIGH → LOW priority, then by nearest target date."""
    return tuple(
        sorted(
            goals,
            key=lambda g: (
                GOAL_PRIORITY_RANK.get(g.priority.upper(), len(GOAL_PRIORITY_RANK) + 1),
                g.target_date or date.max,
            ),
        )
    )
