"""Snapshot loading - build the initial PlanningContext for a run."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.agent.state import (
    Bill,
    Budget,
    BudgetCategory,
    CashFlow,
    Debt,
    Goal,
    PlanningContext,
    Policy,
    sort_goals,
)
from planning_agent.core.config import PlanningConfig
from planning_agent.persistence.snapshot_reader import SnapshotReader

logger = structlog.get_logger(__name__)


class SnapshotLoader(Protocol):
    """Supplies the immutable input facts for one user at run start."""

    async def load(self, user_id: str, entry_point: str, now: datetime) -> PlanningContext: ...


def _as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def budget_from_row(row: Mapping[str, Any] | None) -> Budget | None:
    if row is None:
        return None
    return Budget(
        budget_id=str(row["budget_id"]),
        month=str(row.get("month", "")),
        income_monthly=float(row.get("income_monthly") or 0),
        categories=tuple(
            BudgetCategory(
                name=str(c["name"]),
                planned=float(c.get("planned") or 0),
                actual=float(c.get("actual") or 0),
            )
            for c in row.get("categories", [])
        ),
    )


def bill_from_row(row: Mapping[str, Any]) -> Bill:
    return Bill(
        bill_id=str(row["bill_id"]),
        title=str(row["title"]),
        amount=float(row["amount"]),
        due_date=_as_date(row["due_date"]),
        priority=str(row.get("priority") or "normal"),
        category=str(row.get("category") or ""),
        tags=tuple(row.get("tags") or ()),
    )


def debt_from_row(row: Mapping[str, Any]) -> Debt:
    return Debt(
        debt_id=str(row["debt_id"]),
        name=str(row["name"]),
        principal=float(row["principal"]),
        annual_rate=float(row["annual_rate"]),
        minimum_payment=float(row["minimum_payment"]),
    )


def goal_from_row(row: Mapping[str, Any]) -> Goal:
    return Goal(
        goal_id=str(row["goal_id"]),
        name=str(row["name"]),
        target_amount=float(row["target_amount"]),
        current_amount=float(row.get("current_amount") or 0),
        target_date=_as_date(row.get("target_date")),
        priority=str(row.get("priority") or "MEDIUM").upper(),
        category=str(row.get("category") or ""),
        monthly_contribution=float(row.get("monthly_contribution") or 0),
    )


def policy_from_row(row: Mapping[str, Any]) -> Policy:
    return Policy(
        policy_id=str(row["policy_id"]),
        name=str(row["name"]),
        rule=str(row.get("rule") or ""),
        params=dict(row.get("params") or {}),
    )


def build_context(
    user_id: str,
    entry_point: str,
    now: datetime,
    *,
    budget: Budget | None,
    bills: Iterable[Bill] = (),
    debts: Iterable[Debt] = (),
    goals: Iterable[Goal] = (),
    policies: Iterable[Policy] = (),
    upcoming_bill_count: int = 5,
) -> PlanningContext:
    """Order the snapshot collections and derive cash flow once."""
    ordered_bills = tuple(sorted(bills, key=lambda b: (b.due_date, b.bill_id)))
    return PlanningContext(
        user_id=user_id,
        entry_point=entry_point,
        now=now,
        budget=budget,
        cashflow=CashFlow.derive(budget, ordered_bills, upcoming_bill_count),
        bills=ordered_bills,
        debts=tuple(sorted(debts, key=lambda d: (-d.annual_rate, d.debt_id))),
        goals=sort_goals(goals),
        policies=tuple(policies),
    )


class DatabaseSnapshotLoader:
    """SnapshotLoader backed by the planning schema."""

    def __init__(self, session: AsyncSession, config: PlanningConfig):
        self._reader = SnapshotReader(session)
        self._config = config

    async def load(self, user_id: str, entry_point: str, now: datetime) -> PlanningContext:
        budget_row = await self._reader.get_latest_budget(user_id)
        bills = [bill_from_row(r) for r in await self._reader.list_unpaid_bills(user_id)]
        debts = [debt_from_row(r) for r in await self._reader.list_debts(user_id)]
        goals = [goal_from_row(r) for r in await self._reader.list_active_goals(user_id)]
        policies = [policy_from_row(r) for r in await self._reader.list_active_policies(user_id)]

        logger.debug(
            "Snapshot loaded",
            user_id=user_id,
            has_budget=budget_row is not None,
            bills=len(bills),
            debts=len(debts),
            goals=len(goals),
            policies=len(policies),
        )
        return build_context(
            user_id,
            entry_point,
            now,
            budget=budget_from_row(budget_row),
            bills=bills,
            debts=debts,
            goals=goals,
            policies=policies,
            upcoming_bill_count=self._config.upcoming_bill_count,
        )
