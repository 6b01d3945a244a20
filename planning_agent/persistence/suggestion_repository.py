"""Suggestion repository - persisted output of succeeded runs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.persistence.base import row_to_dict, to_jsonb
from planning_agent.utils.clock import utc_now
from planning_agent.utils.hashing import hash_suggestion_payload

if TYPE_CHECKING:
    from planning_agent.agent.suggestions import Suggestion

SUGGESTION_COLUMNS = """
    suggestion_id, run_id, user_id, kind, reasoning, confidence, target_json, impact_json,
    policy_hints, risk_level, payload_hash, status, rank, created_at
"""


class SuggestionRepository:
    """Insert and read operations for planning.suggestions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        run_id: str,
        user_id: str,
        suggestion: Suggestion,
        rank: int,
    ) -> dict[str, Any]:
        target = suggestion.target_json
        query = text(f"""
            INSERT INTO planning.suggestions
                (suggestion_id, run_id, user_id, kind, reasoning, confidence, target_json,
                 impact_json, policy_hints, risk_level, payload_hash, status, rank, created_at)
            VALUES
                (:suggestion_id, :run_id, :user_id, :kind, :reasoning, :confidence,
                 CAST(:target_json AS jsonb), CAST(:impact_json AS jsonb),
                 CAST(:policy_hints AS jsonb), :risk_level, :payload_hash, 'pending',
                 :rank, :created_at)
            RETURNING {SUGGESTION_COLUMNS}
        """)
        result = await self.session.execute(
            query,
            {
                "suggestion_id": str(uuid.uuid4()),
                "run_id": run_id,
                "user_id": user_id,
                "kind": suggestion.kind.value,
                "reasoning": suggestion.reasoning,
                "confidence": suggestion.confidence,
                "target_json": to_jsonb(target),
                "impact_json": to_jsonb(suggestion.impact_json),
                "policy_hints": to_jsonb(list(suggestion.policy_hints)),
                "risk_level": suggestion.risk_level.value,
                "payload_hash": hash_suggestion_payload(suggestion.kind.value, target),
                "rank": rank,
                "created_at": utc_now(),
            },
        )
        return row_to_dict(result.fetchone())

    async def list_for_run(self, run_id: str) -> list[dict[str, Any]]:
        query = text(f"""
            SELECT {SUGGESTION_COLUMNS}
            FROM planning.suggestions
            WHERE run_id = :run_id
            ORDER BY rank ASC
        """)
        result = await self.session.execute(query, {"run_id": run_id})
        return [row_to_dict(row) for row in result.fetchall()]

    async def list_statuses_since(self, since: datetime) -> list[dict[str, Any]]:
        """Review status of suggestions created at or after ``since``."""
        query = text("""
            SELECT suggestion_id, status
            FROM planning.suggestions
            WHERE created_at >= :since
        """)
        result = await self.session.execute(query, {"since": since})
        return [row_to_dict(row) for row in result.fetchall()]
