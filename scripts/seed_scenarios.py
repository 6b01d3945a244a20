"""Seed household snapshots for the reference planning scenarios.

Each scenario gets its own user so runs can be triggered independently:
1. scenario-a-budget    - Food 30% over plan, expects a 1200 kr reduction
2. scenario-b-debt      - three debts, expects a snowball payoff order
                          (run with PLANNING_SMALL_BALANCE_THRESHOLD=50000)
3. scenario-c-deficit   - 3000 kr monthly deficit, utility bill never deferred
4. scenario-d-policy    - 6000 kr cut blocked by "No Large Budget Cuts"

Usage:
    DATABASE_URL_ADMIN=postgresql://... python scripts/seed_scenarios.py

The script is idempotent: each scenario user's rows are deleted first.
"""

from __future__ import annotations

import json
import os
import uuid
from datetime import UTC, datetime, timedelta

import psycopg

from planning_agent.core.config import to_libpq_url

_DATABASE_URL = os.getenv("DATABASE_URL_ADMIN") or os.getenv("DATABASE_URL_APP")
if not _DATABASE_URL:
    raise SystemExit("DATABASE_URL_ADMIN or DATABASE_URL_APP must be set.")

# psycopg needs libpq-style URLs without SQLAlchemy engine kwargs in the query string.
DATABASE_URL = to_libpq_url(_DATABASE_URL)

SNAPSHOT_TABLES = ("bills", "debts", "goals", "policies")


def clear_user(conn: psycopg.Connection, user_id: str) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            DELETE FROM planning.budget_categories
            WHERE budget_id IN (SELECT budget_id FROM planning.budgets WHERE user_id = %s)
            """,
            (user_id,),
        )
        cur.execute("DELETE FROM planning.budgets WHERE user_id = %s", (user_id,))
        for table in SNAPSHOT_TABLES:
            cur.execute(f"DELETE FROM planning.{table} WHERE user_id = %s", (user_id,))


def insert_budget(
    conn: psycopg.Connection,
    user_id: str,
    income: float,
    categories: list[tuple[str, float, float]],
) -> None:
    budget_id = str(uuid.uuid4())
    month = datetime.now(UTC).strftime("%Y-%m")
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO planning.budgets (budget_id, user_id, month, income_monthly)
            VALUES (%s, %s, %s, %s)
            """,
            (budget_id, user_id, month, income),
        )
        for name, planned, actual in categories:
            cur.execute(
                """
                INSERT INTO planning.budget_categories (category_id, budget_id, name, planned, actual)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (str(uuid.uuid4()), budget_id, name, planned, actual),
            )


def insert_bill(
    conn: psycopg.Connection,
    user_id: str,
    title: str,
    amount: float,
    due_in_days: int,
    category: str = "",
    tags: list[str] | None = None,
    priority: str = "normal",
) -> None:
    due_date = (datetime.now(UTC) + timedelta(days=due_in_days)).date()
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO planning.bills
                (bill_id, user_id, title, amount, due_date, priority, category, tags)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb)
            """,
            (
                str(uuid.uuid4()),
                user_id,
                title,
                amount,
                due_date,
                priority,
                category,
                json.dumps(tags or []),
            ),
        )


def insert_debt(
    conn: psycopg.Connection,
    user_id: str,
    name: str,
    principal: float,
    annual_rate: float,
    minimum_payment: float,
) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO planning.debts
                (debt_id, user_id, name, principal, annual_rate, minimum_payment)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (str(uuid.uuid4()), user_id, name, principal, annual_rate, minimum_payment),
        )


def insert_policy(
    conn: psycopg.Connection,
    user_id: str | None,
    name: str,
    rule: str,
    params: dict,
) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO planning.policies (policy_id, user_id, name, rule, params)
            VALUES (%s, %s, %s, %s, %s::jsonb)
            """,
            (str(uuid.uuid4()), user_id, name, rule, json.dumps(params)),
        )


def seed_budget_overspend(conn: psycopg.Connection) -> str:
    user_id = "scenario-a-budget"
    print(f"[SEED] {user_id}: Food 5000 planned / 6500 actual")
    clear_user(conn, user_id)
    insert_budget(conn, user_id, 40000, [("Food", 5000, 6500), ("Housing", 15000, 15000)])
    return user_id


def seed_debt_snowball(conn: psycopg.Connection) -> str:
    user_id = "scenario-b-debt"
    print(f"[SEED] {user_id}: three debts, 6667 kr monthly surplus")
    clear_user(conn, user_id)
    insert_budget(conn, user_id, 36667, [("Housing", 20000, 20000), ("Living", 10000, 10000)])
    insert_debt(conn, user_id, "Credit card", 5000, 22.0, 500)
    insert_debt(conn, user_id, "Consumer loan", 15000, 18.0, 800)
    insert_debt(conn, user_id, "Car loan", 40000, 6.0, 1500)
    return user_id


def seed_deficit_with_utility(conn: psycopg.Connection) -> str:
    user_id = "scenario-c-deficit"
    print(f"[SEED] {user_id}: 3000 kr deficit, utility plus two deferrable bills")
    clear_user(conn, user_id)
    insert_budget(conn, user_id, 30000, [("Housing", 20000, 20000), ("Living", 13000, 13000)])
    insert_bill(conn, user_id, "Strøm", 1800, 3, tags=["essential_utility"])
    insert_bill(conn, user_id, "Streaming", 400, 5)
    insert_bill(conn, user_id, "Gym membership", 900, 7)
    return user_id


def seed_policy_block(conn: psycopg.Connection) -> str:
    user_id = "scenario-d-policy"
    print(f"[SEED] {user_id}: 6000 kr cut against a 5000 kr policy limit")
    clear_user(conn, user_id)
    insert_budget(conn, user_id, 50000, [("Travel", 10000, 17500)])
    insert_policy(conn, user_id, "No Large Budget Cuts", "max_budget_cut", {"limit": 5000})
    return user_id


def main() -> None:
    print("\n=== Seeding Planning Scenarios ===\n")
    with psycopg.connect(DATABASE_URL) as conn:
        users = [
            seed_budget_overspend(conn),
            seed_debt_snowball(conn),
            seed_deficit_with_utility(conn),
            seed_policy_block(conn),
        ]
        conn.commit()
    print(f"\n[DONE] Seeded {len(users)} scenario users: {', '.join(users)}")


if __name__ == "__main__":
    main()
