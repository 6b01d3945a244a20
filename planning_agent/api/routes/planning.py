"""Planning run routes."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.core.database import get_session
from planning_agent.core.errors import NotFoundError
from planning_agent.persistence.run_repository import RunRepository
from planning_agent.persistence.suggestion_repository import SuggestionRepository
from planning_agent.persistence.trace_repository import TraceRepository
from planning_agent.schemas.v1.planning import (
    PlanningMetricsResponse,
    RunDetailResponse,
    RunRequest,
    RunResponse,
)
from planning_agent.services.metrics_service import MetricsAggregator
from planning_agent.services.orchestrator import create_orchestrator

router = APIRouter(prefix="/planning", tags=["planning"])
logger = logging.getLogger(__name__)


@router.post("/runs", response_model=RunResponse)
async def create_run(
    request: RunRequest,
    session: AsyncSession = Depends(get_session),
):
    """Run the planning pipeline for one user."""
    orchestrator = create_orchestrator(session)
    result = await orchestrator.run_orchestration(
        user_id=request.user_id,
        entry_point=request.entry_point.value,
        options=request.options,
    )
    logger.info(
        "Planning run request handled",
        extra={"run_id": result["run_id"], "status": result["status"]},
    )
    return RunResponse(**result)


@router.get("/runs/{run_id}", response_model=RunDetailResponse)
async def get_run(
    run_id: str,
    session: AsyncSession = Depends(get_session),
):
    """Get a run with its stage traces and persisted suggestions."""
    run = await RunRepository(session).get(run_id)
    if run is None:
        raise NotFoundError(f"Planning run not found: {run_id}")

    traces = await TraceRepository(session).list_for_run(run_id)
    suggestions = await SuggestionRepository(session).list_for_run(run_id)
    return RunDetailResponse(**run, traces=traces, suggestions=suggestions)


@router.get("/metrics", response_model=PlanningMetricsResponse)
async def get_planning_metrics(
    session: AsyncSession = Depends(get_session),
    window_days: int = Query(7, ge=1, le=365),
):
    """Rolling success rate, latency and acceptance statistics."""
    aggregator = MetricsAggregator(session)
    return PlanningMetricsResponse(**await aggregator.get_metrics(window_days=window_days))
