"""Metrics aggregator - rolling run, stage and suggestion statistics.

Read path only: nothing computed here feeds back into the pipeline.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.core.errors import ValidationError
from planning_agent.persistence.run_repository import RunRepository
from planning_agent.persistence.suggestion_repository import SuggestionRepository
from planning_agent.persistence.trace_repository import TraceRepository
from planning_agent.schemas.v1.common import RunStatus, SuggestionStatus
from planning_agent.utils.clock import utc_now

MAX_WINDOW_DAYS = 365


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return round(sum(values) / len(values), 1) if values else 0.0


def compute_metrics(
    runs: Iterable[Mapping[str, Any]],
    stage_latencies: Iterable[Mapping[str, Any]],
    suggestions: Iterable[Mapping[str, Any]],
    window_days: int,
) -> dict[str, Any]:
    """Aggregate already-windowed records into the metrics payload."""
    runs = list(runs)
    suggestions = list(suggestions)

    succeeded = sum(1 for run in runs if run.get("status") == RunStatus.SUCCEEDED)
    latencies = [float(run["latency_ms"]) for run in runs if run.get("latency_ms") is not None]

    by_stage: dict[str, list[float]] = defaultdict(list)
    for trace in stage_latencies:
        by_stage[str(trace["stage_name"])].append(float(trace["latency_ms"]))

    applied = sum(1 for s in suggestions if s.get("status") == SuggestionStatus.APPLIED)

    return {
        "window_days": window_days,
        "total_runs": len(runs),
        "success_rate": _percent(succeeded, len(runs)),
        "avg_latency": _mean(latencies),
        "per_stage_latency": {stage: _mean(values) for stage, values in sorted(by_stage.items())},
        "accept_rate": _percent(applied, len(suggestions)),
    }


class MetricsAggregator:
    def __init__(self, session: AsyncSession):
        self._runs = RunRepository(session)
        self._traces = TraceRepository(session)
        self._suggestions = SuggestionRepository(session)

    async def get_metrics(
        self,
        window_days: int = 7,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Metrics over the trailing ``window_days`` ending at ``now``."""
        if not 1 <= window_days <= MAX_WINDOW_DAYS:
            raise ValidationError(
                f"window_days must be between 1 and {MAX_WINDOW_DAYS}",
                details={"window_days": window_days},
            )
        since = (now or utc_now()) - timedelta(days=window_days)
        return compute_metrics(
            await self._runs.list_since(since),
            await self._traces.list_latencies_since(since),
            await self._suggestions.list_statuses_since(since),
            window_days,
        )
