"""Unit tests for the raw-SQL repositories."""

import json
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from planning_agent.agent.suggestions import (
    BudgetReallocation,
    RiskLevel,
    Suggestion,
    SuggestionKind,
)
from planning_agent.persistence.audit_repository import AuditRepository
from planning_agent.persistence.base import row_to_dict, to_jsonb
from planning_agent.persistence.run_repository import RunRepository
from planning_agent.persistence.snapshot_reader import SnapshotReader
from planning_agent.persistence.suggestion_repository import SuggestionRepository
from planning_agent.persistence.trace_repository import TraceRepository
from planning_agent.utils.hashing import hash_suggestion_payload

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_row(**kwargs) -> MagicMock:
    """Create a mock row compatible with row_to_dict()."""
    row = MagicMock()
    row._mapping = kwargs
    return row


def _make_mock_session(fetchone_row=None, fetchall_rows=None):
    """Build an AsyncMock session whose execute returns a mock result."""
    mock_result = MagicMock()
    mock_result.fetchone.return_value = fetchone_row
    mock_result.fetchall.return_value = fetchall_rows or []

    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(return_value=mock_result)
    return mock_session


def _params(mock_session, call_index: int = -1) -> dict:
    return mock_session.execute.call_args_list[call_index][0][1]


def _suggestion() -> Suggestion:
    return Suggestion(
        kind=SuggestionKind.BUDGET_REALLOCATE,
        reasoning="Reduce dining out by 1,200 kr. (high confidence)",
        confidence=85,
        target=BudgetReallocation("Food", "reduce", 5000, 6500, 1500, 1200, 5300),
        impact={"before": {"net_flow": 1000}, "after": {"net_flow": 2200}},
        policy_hints=("Watch the grocery budget",),
        risk_level=RiskLevel.MEDIUM,
    )


# ---------------------------------------------------------------------------
# base helpers
# ---------------------------------------------------------------------------


def test_row_to_dict_converts_driver_types():
    run_id = uuid.uuid4()
    row = _make_mock_row(
        run_id=run_id,
        started_at=datetime(2026, 3, 1, 9, 0, tzinfo=UTC),
        due_date=date(2026, 3, 5),
        amount=Decimal("1200.50"),
        status="running",
        options={"a": 1},
    )

    result = row_to_dict(row)

    assert result["run_id"] == str(run_id)
    assert result["started_at"] == "2026-03-01T09:00:00+00:00"
    assert result["due_date"] == "2026-03-05"
    assert result["amount"] == 1200.5
    assert result["status"] == "running"
    assert result["options"] == {"a": 1}


def test_to_jsonb_handles_none_and_unicode():
    assert to_jsonb(None) is None
    assert json.loads(to_jsonb({"name": "Strøm"})) == {"name": "Strøm"}
    assert "Strøm" in to_jsonb({"name": "Strøm"})
    assert json.loads(to_jsonb({"when": date(2026, 3, 1)})) == {"when": "2026-03-01"}


# ---------------------------------------------------------------------------
# RunRepository
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_run_inserts_running_record():
    row = _make_mock_row(run_id="run-1", user_id="user-1", status="running")
    mock_session = _make_mock_session(fetchone_row=row)

    result = await RunRepository(mock_session).create("user-1", "user_assist", {"dry": True})

    assert result["status"] == "running"
    params = _params(mock_session)
    assert params["user_id"] == "user-1"
    assert params["entry_point"] == "user_assist"
    assert json.loads(params["input_options"]) == {"dry": True}
    uuid.UUID(params["run_id"])


@pytest.mark.asyncio
async def test_create_run_defaults_options_to_empty_object():
    mock_session = _make_mock_session(fetchone_row=_make_mock_row(run_id="run-1"))
    await RunRepository(mock_session).create("user-1", "user_assist")
    assert _params(mock_session)["input_options"] == "{}"


@pytest.mark.asyncio
async def test_get_run_returns_none_when_missing():
    mock_session = _make_mock_session(fetchone_row=None)
    assert await RunRepository(mock_session).get("missing") is None


@pytest.mark.asyncio
async def test_complete_run_serializes_summary():
    row = _make_mock_row(run_id="run-1", status="succeeded")
    mock_session = _make_mock_session(fetchone_row=row)

    result = await RunRepository(mock_session).complete(
        "run-1",
        "succeeded",
        latency_ms=12.5,
        result_summary={"suggestion_count": 2},
    )

    assert result["status"] == "succeeded"
    params = _params(mock_session)
    assert params["status"] == "succeeded"
    assert params["latency_ms"] == 12.5
    assert json.loads(params["result_summary"]) == {"suggestion_count": 2}
    assert params["error_summary"] is None


@pytest.mark.asyncio
async def test_complete_run_already_terminal_returns_none():
    mock_session = _make_mock_session(fetchone_row=None)
    result = await RunRepository(mock_session).complete(
        "run-1", "failed", latency_ms=1.0, error_summary="boom"
    )
    assert result is None


@pytest.mark.asyncio
async def test_list_runs_since():
    rows = [_make_mock_row(run_id="r2"), _make_mock_row(run_id="r1")]
    mock_session = _make_mock_session(fetchall_rows=rows)
    since = datetime(2026, 2, 1, tzinfo=UTC)

    result = await RunRepository(mock_session).list_since(since)

    assert [r["run_id"] for r in result] == ["r2", "r1"]
    assert _params(mock_session) == {"since": since}


# ---------------------------------------------------------------------------
# TraceRepository
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_append_trace_serializes_states():
    row = _make_mock_row(trace_id="t1", stage_name="budget_analysis", step_index=1)
    mock_session = _make_mock_session(fetchone_row=row)

    result = await TraceRepository(mock_session).append(
        "run-1",
        "budget_analysis",
        1,
        "succeeded",
        {"suggestions": []},
        {"suggestions": [{"kind": "budget_reallocate"}]},
        3.2,
    )

    assert result["trace_id"] == "t1"
    params = _params(mock_session)
    assert json.loads(params["state_in"]) == {"suggestions": []}
    assert json.loads(params["state_out"])["suggestions"][0]["kind"] == "budget_reallocate"
    assert params["error_message"] is None


@pytest.mark.asyncio
async def test_list_traces_for_run():
    rows = [_make_mock_row(step_index=1), _make_mock_row(step_index=2)]
    mock_session = _make_mock_session(fetchall_rows=rows)
    result = await TraceRepository(mock_session).list_for_run("run-1")
    assert [r["step_index"] for r in result] == [1, 2]


@pytest.mark.asyncio
async def test_list_trace_latencies_since():
    rows = [_make_mock_row(stage_name="impact", latency_ms=Decimal("4.5"))]
    mock_session = _make_mock_session(fetchall_rows=rows)
    result = await TraceRepository(mock_session).list_latencies_since(datetime.now(UTC))
    assert result == [{"stage_name": "impact", "latency_ms": 4.5}]


# ---------------------------------------------------------------------------
# SuggestionRepository
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_suggestion_writes_payload_and_hash():
    row = _make_mock_row(suggestion_id="s1", status="pending", rank=1)
    mock_session = _make_mock_session(fetchone_row=row)
    suggestion = _suggestion()

    result = await SuggestionRepository(mock_session).create("run-1", "user-1", suggestion, 1)

    assert result["status"] == "pending"
    params = _params(mock_session)
    assert params["kind"] == "budget_reallocate"
    assert params["confidence"] == 85
    assert params["risk_level"] == "medium"
    assert params["rank"] == 1
    assert json.loads(params["target_json"])["category"] == "Food"
    assert json.loads(params["policy_hints"]) == ["Watch the grocery budget"]
    assert params["payload_hash"] == hash_suggestion_payload(
        "budget_reallocate", suggestion.target_json
    )


@pytest.mark.asyncio
async def test_same_payload_hashes_identically_across_runs():
    mock_session = _make_mock_session(fetchone_row=_make_mock_row(suggestion_id="s"))
    repo = SuggestionRepository(mock_session)

    await repo.create("run-1", "user-1", _suggestion(), 1)
    await repo.create("run-2", "user-1", _suggestion(), 3)

    assert _params(mock_session, 0)["payload_hash"] == _params(mock_session, 1)["payload_hash"]
    assert _params(mock_session, 0)["suggestion_id"] != _params(mock_session, 1)["suggestion_id"]


@pytest.mark.asyncio
async def test_list_suggestion_statuses_since():
    rows = [_make_mock_row(suggestion_id="s1", status="accepted")]
    mock_session = _make_mock_session(fetchall_rows=rows)
    result = await SuggestionRepository(mock_session).list_statuses_since(datetime.now(UTC))
    assert result[0]["status"] == "accepted"


# ---------------------------------------------------------------------------
# AuditRepository
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_emit_audit_entry():
    row = _make_mock_row(audit_id="aud-1", entity_type="agent_run", action="run_completed")
    mock_session = _make_mock_session(fetchone_row=row)

    result = await AuditRepository(mock_session).emit(
        entity_type="agent_run",
        entity_id="run-1",
        action="run_completed",
        performed_by="system",
        payload={"suggestion_count": 3},
    )

    assert result["audit_id"] == "aud-1"
    params = _params(mock_session)
    assert json.loads(params["payload"]) == {"suggestion_count": 3}


@pytest.mark.asyncio
async def test_emit_without_payload_passes_none():
    mock_session = _make_mock_session(fetchone_row=_make_mock_row(audit_id="aud-2"))
    await AuditRepository(mock_session).emit("agent_run", "run-1", "run_failed", "system")
    assert _params(mock_session)["payload"] is None


@pytest.mark.asyncio
async def test_get_audit_by_entity():
    rows = [_make_mock_row(audit_id="a2"), _make_mock_row(audit_id="a1")]
    mock_session = _make_mock_session(fetchall_rows=rows)
    result = await AuditRepository(mock_session).get_by_entity("agent_run", "run-1")
    assert [r["audit_id"] for r in result] == ["a2", "a1"]


# ---------------------------------------------------------------------------
# SnapshotReader
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_latest_budget_includes_categories():
    budget_result = MagicMock()
    budget_result.fetchone.return_value = _make_mock_row(
        budget_id="b1", user_id="user-1", month="2026-03", income_monthly=Decimal("40000")
    )
    category_result = MagicMock()
    category_result.fetchall.return_value = [
        _make_mock_row(name="Food", planned=Decimal("5000"), actual=Decimal("6500"))
    ]
    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(side_effect=[budget_result, category_result])

    budget = await SnapshotReader(mock_session).get_latest_budget("user-1")

    assert budget["income_monthly"] == 40000.0
    assert budget["categories"] == [{"name": "Food", "planned": 5000.0, "actual": 6500.0}]
    assert _params(mock_session)["budget_id"] == "b1"


@pytest.mark.asyncio
async def test_latest_budget_missing_skips_category_query():
    mock_session = _make_mock_session(fetchone_row=None)
    assert await SnapshotReader(mock_session).get_latest_budget("user-1") is None
    assert mock_session.execute.await_count == 1


@pytest.mark.asyncio
async def test_snapshot_list_queries_bind_user():
    rows = [_make_mock_row(bill_id="bill-1", due_date=date(2026, 3, 5))]
    mock_session = _make_mock_session(fetchall_rows=rows)
    reader = SnapshotReader(mock_session)

    bills = await reader.list_unpaid_bills("user-1")
    await reader.list_debts("user-1")
    await reader.list_active_goals("user-1")
    await reader.list_active_policies("user-1")

    assert bills == [{"bill_id": "bill-1", "due_date": "2026-03-05"}]
    assert mock_session.execute.await_count == 4
    for call in mock_session.execute.call_args_list:
        assert call[0][1] == {"user_id": "user-1"}
