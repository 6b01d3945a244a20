"""Audit repository - append-only audit log."""

import uuid
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.persistence.base import row_to_dict, to_jsonb
from planning_agent.utils.clock import utc_now


class AuditRepository:
    """Append-only operations for planning.audit_log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def emit(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        performed_by: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Emit an audit log entry (append-only)."""
        query = text("""
            INSERT INTO planning.audit_log
                (audit_id, entity_type, entity_id, action, performed_by, payload, created_at)
            VALUES
                (:audit_id, :entity_type, :entity_id, :action, :performed_by,
                 CAST(:payload AS jsonb), :created_at)
            RETURNING audit_id, entity_type, entity_id, action, performed_by, payload, created_at
        """)
        result = await self.session.execute(
            query,
            {
                "audit_id": str(uuid.uuid4()),
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "performed_by": performed_by,
                "payload": to_jsonb(payload),
                "created_at": utc_now(),
            },
        )
        return row_to_dict(result.fetchone())

    async def get_by_entity(self, entity_type: str, entity_id: str) -> list[dict[str, Any]]:
        """Get audit log entries for a specific entity."""
        query = text("""
            SELECT audit_id, entity_type, entity_id, action, performed_by, payload, created_at
            FROM planning.audit_log
            WHERE entity_type = :entity_type AND entity_id = :entity_id
            ORDER BY created_at DESC
        """)
        result = await self.session.execute(
            query, {"entity_type": entity_type, "entity_id": entity_id}
        )
        return [row_to_dict(row) for row in result.fetchall()]
