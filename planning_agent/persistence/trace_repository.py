"""Trace repository - append-only per-stage NodeTrace records."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.persistence.base import row_to_dict, to_jsonb
from planning_agent.utils.clock import utc_now

TRACE_COLUMNS = """
    trace_id, run_id, stage_name, step_index, status, state_in, state_out,
    latency_ms, error_message, created_at
"""


class TraceRepository:
    """Append-only operations for planning.node_traces."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        run_id: str,
        stage_name: str,
        step_index: int,
        status: str,
        state_in: dict[str, Any],
        state_out: dict[str, Any],
        latency_ms: float,
        error_message: str | None = None,
    ) -> dict[str, Any]:
        """Append one trace row (never updated afterwards)."""
        query = text(f"""
            INSERT INTO planning.node_traces
                (trace_id, run_id, stage_name, step_index, status, state_in, state_out,
                 latency_ms, error_message, created_at)
            VALUES
                (:trace_id, :run_id, :stage_name, :step_index, :status,
                 CAST(:state_in AS jsonb), CAST(:state_out AS jsonb),
                 :latency_ms, :error_message, :created_at)
            RETURNING {TRACE_COLUMNS}
        """)
        result = await self.session.execute(
            query,
            {
                "trace_id": str(uuid.uuid4()),
                "run_id": run_id,
                "stage_name": stage_name,
                "step_index": step_index,
                "status": status,
                "state_in": to_jsonb(state_in),
                "state_out": to_jsonb(state_out),
                "latency_ms": latency_ms,
                "error_message": error_message,
                "created_at": utc_now(),
            },
        )
        return row_to_dict(result.fetchone())

    async def list_for_run(self, run_id: str) -> list[dict[str, Any]]:
        query = text(f"""
            SELECT {TRACE_COLUMNS}
            FROM planning.node_traces
            WHERE run_id = :run_id
            ORDER BY step_index ASC
        """)
        result = await self.session.execute(query, {"run_id": run_id})
        return [row_to_dict(row) for row in result.fetchall()]

    async def list_latencies_since(self, since: datetime) -> list[dict[str, Any]]:
        """Stage name and latency for traces written at or after ``since``."""
        query = text("""
            SELECT stage_name, latency_ms
            FROM planning.node_traces
            WHERE created_at >= :since
        """)
        result = await self.session.execute(query, {"since": since})
        return [row_to_dict(row) for row in result.fetchall()]
