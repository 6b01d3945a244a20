"""Root conftest for tests."""

import os
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

if os.getenv("APP_ENV", "").strip().lower() == "prod":
    raise RuntimeError("Refusing to run tests with APP_ENV=prod")

os.environ["APP_ENV"] = "local"
os.environ.setdefault("SERVER_PORT", "8010")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")

FIXED_NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    dir_marker_map = {
        "unit": pytest.mark.unit,
        "smoke": pytest.mark.smoke,
        "integration": pytest.mark.integration,
    }
    for item in items:
        test_path = str(item.fspath)
        for dir_name, marker in dir_marker_map.items():
            if f"/{dir_name}/" in test_path or f"\\{dir_name}\\" in test_path:
                item.add_marker(marker)
                break


@pytest.fixture
def mock_session():
    """Mock database session for tests."""

    class MockSession:
        async def execute(self, *args, **kwargs):
            class MockResult:
                def fetchone(self):
                    return None

                def fetchall(self):
                    return []

            return MockResult()

        async def commit(self):
            pass

        async def rollback(self):
            pass

    return MockSession()


# ── Planning fixtures ────────────────────────────────────────────


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def planning_config():
    """PlanningConfig with the shipped defaults, independent of the environment."""
    from planning_agent.core.config import PlanningConfig

    return PlanningConfig()


@pytest.fixture
def make_context():
    """Factory building a PlanningContext the same way the snapshot loader does."""
    from planning_agent.agent.state import Budget, BudgetCategory
    from planning_agent.services.snapshot_loader import build_context

    def _create(
        *,
        income: float | None = 40000,
        categories: list[tuple[str, float, float]] | None = None,
        bills=(),
        debts=(),
        goals=(),
        policies=(),
        user_id: str = "user-001",
        entry_point: str = "user_assist",
    ):
        budget = None
        if income is not None:
            budget = Budget(
                budget_id="budget-001",
                month="2026-03",
                income_monthly=income,
                categories=tuple(
                    BudgetCategory(name=name, planned=planned, actual=actual)
                    for name, planned, actual in (categories or [])
                ),
            )
        return build_context(
            user_id,
            entry_point,
            FIXED_NOW,
            budget=budget,
            bills=bills,
            debts=debts,
            goals=goals,
            policies=policies,
        )

    return _create


@pytest.fixture
def make_bill():
    from planning_agent.agent.state import Bill

    counter = iter(range(1, 1000))

    def _create(title: str, amount: float, due: date | None = None, **kwargs):
        index = next(counter)
        return Bill(
            bill_id=kwargs.pop("bill_id", f"bill-{index:03d}"),
            title=title,
            amount=amount,
            due_date=due or date(2026, 3, index % 28 + 1),
            **kwargs,
        )

    return _create


@pytest.fixture
def mock_repos():
    """AsyncMock repositories and audit sink wired like the database-backed ones."""
    run_repo = AsyncMock()
    run_repo.create.return_value = {"run_id": "run-001", "status": "running"}
    run_repo.complete.return_value = {"run_id": "run-001"}

    trace_repo = AsyncMock()
    trace_repo.append.return_value = {}

    suggestion_repo = AsyncMock()
    suggestion_repo.create.return_value = {}

    audit_sink = AsyncMock()
    return {
        "run_repo": run_repo,
        "trace_repo": trace_repo,
        "suggestion_repo": suggestion_repo,
        "audit_sink": audit_sink,
    }
