"""Run repository - lifecycle records for planning runs."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.persistence.base import row_to_dict, to_jsonb
from planning_agent.utils.clock import utc_now

RUN_COLUMNS = """
    run_id, user_id, entry_point, status, input_options, started_at, finished_at,
    latency_ms, result_summary, error_summary
"""


class RunRepository:
    """Operations for planning.agent_runs.

    A run is inserted in ``running`` state and updated exactly once to a
    terminal state; the update is guarded so a finished run is never
    rewritten.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: str,
        entry_point: str,
        input_options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a new run record in running state."""
        run_id = str(uuid.uuid4())
        now = utc_now()

        query = text(f"""
            INSERT INTO planning.agent_runs
                (run_id, user_id, entry_point, status, input_options, started_at)
            VALUES
                (:run_id, :user_id, :entry_point, 'running',
                 CAST(:input_options AS jsonb), :started_at)
            RETURNING {RUN_COLUMNS}
        """)
        result = await self.session.execute(
            query,
            {
                "run_id": run_id,
                "user_id": user_id,
                "entry_point": entry_point,
                "input_options": to_jsonb(input_options or {}),
                "started_at": now,
            },
        )
        return row_to_dict(result.fetchone())

    async def get(self, run_id: str) -> dict[str, Any] | None:
        """Get run by ID."""
        query = text(f"""
            SELECT {RUN_COLUMNS}
            FROM planning.agent_runs
            WHERE run_id = :run_id
        """)
        result = await self.session.execute(query, {"run_id": run_id})
        row = result.fetchone()
        if row is None:
            return None
        return row_to_dict(row)

    async def complete(
        self,
        run_id: str,
        status: str,
        *,
        latency_ms: float,
        result_summary: dict[str, Any] | None = None,
        error_summary: str | None = None,
    ) -> dict[str, Any] | None:
        """Move a running run to its terminal status."""
        query = text(f"""
            UPDATE planning.agent_runs
            SET status = :status,
                finished_at = :finished_at,
                latency_ms = :latency_ms,
                result_summary = CAST(:result_summary AS jsonb),
                error_summary = :error_summary
            WHERE run_id = :run_id AND status = 'running'
            RETURNING {RUN_COLUMNS}
        """)
        result = await self.session.execute(
            query,
            {
                "run_id": run_id,
                "status": status,
                "finished_at": utc_now(),
                "latency_ms": latency_ms,
                "result_summary": to_jsonb(result_summary),
                "error_summary": error_summary,
            },
        )
        row = result.fetchone()
        return row_to_dict(row) if row is not None else None

    async def list_since(self, since: datetime) -> list[dict[str, Any]]:
        """Runs started at or after ``since``, newest first."""
        query = text(f"""
            SELECT {RUN_COLUMNS}
            FROM planning.agent_runs
            WHERE started_at >= :since
            ORDER BY started_at DESC
        """)
        result = await self.session.execute(query, {"since": since})
        return [row_to_dict(row) for row in result.fetchall()]
