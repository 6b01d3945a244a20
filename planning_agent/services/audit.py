"""Fire-and-forget audit sink for run completion and failure events."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.core.metrics import planning_audit_failures_total
from planning_agent.persistence.audit_repository import AuditRepository

logger = structlog.get_logger(__name__)

RUN_COMPLETED = "AGENT_RUN_COMPLETED"
RUN_FAILED = "AGENT_RUN_FAILED"


class AuditSink:
    """Write audit events without ever failing the caller.

    Each event commits on its own so a broken audit insert cannot take the
    run's already-committed records with it.
    """

    def __init__(self, session: AsyncSession, performed_by: str = "planning_agent"):
        self._session = session
        self._repo = AuditRepository(session)
        self._performed_by = performed_by

    async def run_completed(
        self,
        run_id: str,
        entry_point: str,
        suggestion_count: int,
        latency_ms: float,
    ) -> None:
        await self._emit(
            run_id,
            RUN_COMPLETED,
            {
                "run_id": run_id,
                "entry_point": entry_point,
                "suggestion_count": suggestion_count,
                "latency_ms": latency_ms,
            },
        )

    async def run_failed(self, run_id: str, error: str) -> None:
        await self._emit(run_id, RUN_FAILED, {"run_id": run_id, "error": error})

    async def _emit(self, run_id: str, action: str, payload: dict[str, Any]) -> None:
        try:
            await self._repo.emit(
                entity_type="planning_run",
                entity_id=run_id,
                action=action,
                performed_by=self._performed_by,
                payload=payload,
            )
            await self._session.commit()
        except Exception as exc:
            planning_audit_failures_total.labels(action=action).inc()
            logger.warning("Audit event dropped", run_id=run_id, action=action, error=str(exc))
            try:
                await self._session.rollback()
            except Exception as rollback_exc:
                logger.warning(
                    "Audit rollback failed", run_id=run_id, error=str(rollback_exc)
                )
