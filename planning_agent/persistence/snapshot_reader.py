"""Snapshot reader - read-only queries for one user's financial snapshot."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.persistence.base import row_to_dict


class SnapshotReader:
    """Read-only access to budgets, bills, debts, goals and policies."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_latest_budget(self, user_id: str) -> dict[str, Any] | None:
        """Latest budget with its categories under the ``categories`` key."""
        query = text("""
            SELECT budget_id, user_id, month, income_monthly
            FROM planning.budgets
            WHERE user_id = :user_id
            ORDER BY month DESC, created_at DESC
            LIMIT 1
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            return None
        budget = row_to_dict(row)

        categories = await self.session.execute(
            text("""
                SELECT name, planned, actual
                FROM planning.budget_categories
                WHERE budget_id = :budget_id
                ORDER BY name ASC
            """),
            {"budget_id": budget["budget_id"]},
        )
        budget["categories"] = [row_to_dict(r) for r in categories.fetchall()]
        return budget

    async def list_unpaid_bills(self, user_id: str) -> list[dict[str, Any]]:
        query = text("""
            SELECT bill_id, title, amount, due_date, priority, category, tags
            FROM planning.bills
            WHERE user_id = :user_id AND NOT paid
            ORDER BY due_date ASC, bill_id ASC
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return [row_to_dict(row) for row in result.fetchall()]

    async def list_debts(self, user_id: str) -> list[dict[str, Any]]:
        query = text("""
            SELECT debt_id, name, principal, annual_rate, minimum_payment
            FROM planning.debts
            WHERE user_id = :user_id
            ORDER BY annual_rate DESC, debt_id ASC
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return [row_to_dict(row) for row in result.fetchall()]

    async def list_active_goals(self, user_id: str) -> list[dict[str, Any]]:
        query = text("""
            SELECT goal_id, name, target_amount, current_amount, target_date, priority,
                   category, monthly_contribution
            FROM planning.goals
            WHERE user_id = :user_id AND active
            ORDER BY CASE priority WHEN 'HIGH' THEN 1 WHEN 'MEDIUM' THEN 2 ELSE 3 END,
                     target_date ASC NULLS LAST
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return [row_to_dict(row) for row in result.fetchall()]

    async def list_active_policies(self, user_id: str) -> list[dict[str, Any]]:
        """Global policies plus the user's own, in evaluation order."""
        query = text("""
            SELECT policy_id, name, rule, params
            FROM planning.policies
            WHERE active AND (user_id IS NULL OR user_id = :user_id)
            ORDER BY sort_order ASC, name ASC
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return [row_to_dict(row) for row in result.fetchall()]
