"""Run orchestrator - owns the planning run lifecycle.

A run moves running -> succeeded | failed | blocked exactly once. Stages
execute strictly in sequence over one threaded PlanningContext; every
stage leaves a NodeTrace. Suggestions are written only when the whole
pipeline succeeded, in the same commit that marks the run succeeded.
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from planning_agent.agent.state import ContextStatus, PlanningContext, context_snapshot
from planning_agent.core.config import PlanningConfig, Settings, get_settings
from planning_agent.core.errors import (
    PersistenceError,
    StageContractError,
    StageExecutionError,
    ValidationError,
)
from planning_agent.core.metrics import (
    planning_run_latency_seconds,
    planning_runs_total,
    planning_stage_failures_total,
    planning_stage_latency_seconds,
    planning_suggestions_blocked_total,
    planning_suggestions_generated_total,
)
from planning_agent.core.tracing import bind_contextvars_to_logging
from planning_agent.persistence.run_repository import RunRepository
from planning_agent.persistence.suggestion_repository import SuggestionRepository
from planning_agent.persistence.trace_repository import TraceRepository
from planning_agent.schemas.v1.common import EntryPoint, RunStatus, TraceStatus
from planning_agent.services.audit import AuditSink
from planning_agent.services.snapshot_loader import DatabaseSnapshotLoader, SnapshotLoader
from planning_agent.stages.base import BaseStage, StageRole
from planning_agent.stages.budget_stage import BudgetStage
from planning_agent.stages.cashflow_stage import CashFlowStage
from planning_agent.stages.debt_stage import DebtStage
from planning_agent.stages.goal_stage import GoalStage
from planning_agent.stages.guardrail_stage import GuardrailStage
from planning_agent.stages.impact_stage import ImpactStage
from planning_agent.stages.reasoning_stage import ReasoningStage
from planning_agent.utils.clock import utc_now

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

SNAPSHOT_STAGE = "snapshot_load"


def build_stages(config: PlanningConfig) -> list[BaseStage]:
    """The fixed stage sequence: four analyzers, guardrail, reasoning, impact."""
    return [
        BudgetStage(config),
        CashFlowStage(config),
        DebtStage(config),
        GoalStage(config),
        GuardrailStage(),
        ReasoningStage(),
        ImpactStage(),
    ]


def _identity(context: PlanningContext) -> Counter:
    return Counter((s.kind, s.target) for s in context.suggestions)


def check_stage_contract(stage: BaseStage, before: PlanningContext, after: PlanningContext) -> None:
    """Raise StageContractError when ``after`` is not a legal successor of ``before``."""

    def violation(message: str) -> StageContractError:
        return StageContractError(message, stage_name=stage.name)

    if after.confidence < before.confidence:
        raise violation("confidence decreased")
    if after.impact_score < before.impact_score:
        raise violation("impact score decreased")
    if (after.budget, after.cashflow, after.bills, after.debts, after.goals, after.policies) != (
        before.budget,
        before.cashflow,
        before.bills,
        before.debts,
        before.goals,
        before.policies,
    ):
        raise violation("snapshot facts were modified")

    if stage.role == StageRole.ANALYSIS:
        if after.suggestions[: len(before.suggestions)] != before.suggestions:
            raise violation("earlier suggestions were removed or changed")
        if after.blocked != before.blocked:
            raise violation("analysis stage touched the blocked list")
    elif stage.role == StageRole.GUARDRAIL:
        if _identity(after) - _identity(before):
            raise violation("guardrail introduced new suggestions")
        dropped = len(before.suggestions) - len(after.suggestions)
        if len(after.blocked) - len(before.blocked) != dropped:
            raise violation("rejected suggestions missing from the blocked list")
    elif _identity(after) != _identity(before):
        raise violation("suggestion set changed after guardrail")


class RunOrchestrator:
    """Execute one planning run per call.

    Collaborators are injected; use create_orchestrator() for the
    database-backed composition.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        stages: Sequence[BaseStage],
        snapshot_loader: SnapshotLoader,
        run_repo: RunRepository,
        trace_repo: TraceRepository,
        suggestion_repo: SuggestionRepository,
        audit_sink: AuditSink,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.stages = list(stages)
        self.snapshot_loader = snapshot_loader
        self.run_repo = run_repo
        self.trace_repo = trace_repo
        self.suggestion_repo = suggestion_repo
        self.audit_sink = audit_sink
        self._clock = clock

    async def run_orchestration(
        self,
        user_id: str,
        entry_point: str,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run the pipeline to a terminal state and return its outcome."""
        if not user_id or not user_id.strip():
            raise ValidationError("user_id is required")
        try:
            entry = EntryPoint(entry_point)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown entry point: {entry_point}",
                details={"allowed": [e.value for e in EntryPoint]},
            ) from exc

        started = time.perf_counter()
        run = await self.run_repo.create(user_id, entry.value, options or {})
        run_id = run["run_id"]
        await self._transaction_checkpoint("run_created", run_id)

        log = logger.bind(run_id=run_id, entry_point=entry.value, **bind_contextvars_to_logging())
        stage_durations: dict[str, float] = {}

        with tracer.start_as_current_span("planning.run") as run_span:
            run_span.set_attribute("run.id", run_id)
            run_span.set_attribute("run.entry_point", entry.value)
            log.info("Planning run started")

            try:
                context = await self._load_snapshot(run_id, user_id, entry.value)
                for step_index, stage in enumerate(self.stages, start=1):
                    context = await self._timed_stage(
                        run_id, step_index, stage, context, stage_durations
                    )
                    if context.status == ContextStatus.BLOCKED:
                        log.info("Every candidate was rejected; stopping", stage=stage.name)
                        break

                if context.status == ContextStatus.BLOCKED:
                    status = RunStatus.BLOCKED
                    await self._finalize(run_id, status, context, started)
                else:
                    status = RunStatus.SUCCEEDED
                    await self._persist_suggestions(run_id, user_id, context)
                    await self._finalize(run_id, status, context, started)

            except StageExecutionError as exc:
                run_span.record_exception(exc)
                log.warning("Planning run failed", stage=exc.stage_name, error=exc.message)
                return await self._fail(run_id, entry.value, exc.message, started, stage_durations)
            except Exception as exc:
                run_span.record_exception(exc)
                log.exception("Planning run persistence failed", error=str(exc))
                await self._safe_rollback(run_id)
                return await self._fail(
                    run_id, entry.value, f"Persistence failure: {exc}", started, stage_durations
                )

            latency_ms = self._elapsed_ms(started)
            run_span.set_attribute("run.status", status.value)
            run_span.set_attribute("run.suggestions", len(context.suggestions))
            self._record_run_metrics(entry.value, status, latency_ms, context)
            await self.audit_sink.run_completed(
                run_id, entry.value, len(context.suggestions), latency_ms
            )
            log.info(
                "Planning run finished",
                status=status.value,
                suggestions=len(context.suggestions),
                blocked=len(context.blocked),
                latency_ms=latency_ms,
                stage_durations_ms=stage_durations,
            )

            return {
                "run_id": run_id,
                "status": status.value,
                "suggestions": [s.to_dict() for s in context.suggestions]
                if status == RunStatus.SUCCEEDED
                else [],
                "blocked_suggestions": [b.to_dict() for b in context.blocked],
                "result_summary": self._summary(context),
                "kpis": dict(context.kpis),
                "error": None,
                "latency_ms": latency_ms,
                "stage_durations": stage_durations,
            }

    # ---------------------------------------------------------------------------
    # Stage helpers
    # ---------------------------------------------------------------------------

    async def _load_snapshot(self, run_id: str, user_id: str, entry_point: str) -> PlanningContext:
        """Load the snapshot; a failure is traced as step 0 and fails the run."""
        t0 = time.perf_counter()
        try:
            return await self.snapshot_loader.load(user_id, entry_point, self._clock())
        except Exception as exc:
            await self._record_failure_trace(
                run_id, SNAPSHOT_STAGE, 0, {"user_id": user_id}, exc, self._elapsed_ms(t0)
            )
            raise StageExecutionError(
                f"Snapshot load failed: {exc}", stage_name=SNAPSHOT_STAGE, run_id=run_id
            ) from exc

    async def _timed_stage(
        self,
        run_id: str,
        step_index: int,
        stage: BaseStage,
        context: PlanningContext,
        durations: dict[str, float],
    ) -> PlanningContext:
        """Run one stage, record its latency metric and span, append its trace."""
        state_in = context_snapshot(context)
        with tracer.start_as_current_span(f"planning.{stage.name}") as span:
            t0 = time.perf_counter()
            try:
                result = stage.execute(context)
                check_stage_contract(stage, context, result)
            except Exception as exc:
                elapsed_ms = self._elapsed_ms(t0)
                span.record_exception(exc)
                planning_stage_failures_total.labels(stage=stage.name).inc()
                durations[stage.name] = elapsed_ms
                await self._record_failure_trace(
                    run_id, stage.name, step_index, state_in, exc, elapsed_ms
                )
                raise StageExecutionError(
                    f"Stage {stage.name} failed: {exc}", stage_name=stage.name, run_id=run_id
                ) from exc

            elapsed = time.perf_counter() - t0
            durations[stage.name] = round(elapsed * 1000, 3)
            planning_stage_latency_seconds.labels(stage=stage.name).observe(elapsed)
            span.set_attribute("stage.duration_ms", round(elapsed * 1000, 3))
            span.set_attribute("stage.suggestions", len(result.suggestions))

        await self.trace_repo.append(
            run_id=run_id,
            stage_name=stage.name,
            step_index=step_index,
            status=TraceStatus.SUCCEEDED,
            state_in=state_in,
            state_out=context_snapshot(result),
            latency_ms=durations[stage.name],
        )
        await self._transaction_checkpoint(f"trace_{stage.name}", run_id)
        return result

    async def _record_failure_trace(
        self,
        run_id: str,
        stage_name: str,
        step_index: int,
        state_in: dict[str, Any],
        exc: Exception,
        latency_ms: float,
    ) -> None:
        await self._safe_rollback(run_id)
        await self.trace_repo.append(
            run_id=run_id,
            stage_name=stage_name,
            step_index=step_index,
            status=TraceStatus.FAILED,
            state_in=state_in,
            state_out={"error": str(exc), "error_type": type(exc).__name__},
            latency_ms=latency_ms,
            error_message=str(exc),
        )
        await self._transaction_checkpoint(f"trace_{stage_name}_failed", run_id)

    # ---------------------------------------------------------------------------
    # Persistence helpers
    # ---------------------------------------------------------------------------

    async def _transaction_checkpoint(self, checkpoint: str, run_id: str) -> None:
        """Commit the current unit of work; roll back and re-raise on failure."""
        try:
            await self.session.commit()
        except Exception:
            logger.exception("Transaction checkpoint failed", run_id=run_id, checkpoint=checkpoint)
            await self.session.rollback()
            raise

    async def _safe_rollback(self, run_id: str) -> None:
        try:
            await self.session.rollback()
        except Exception as exc:
            logger.warning("Rollback failed", run_id=run_id, error=str(exc))

    async def _persist_suggestions(
        self, run_id: str, user_id: str, context: PlanningContext
    ) -> None:
        for rank, suggestion in enumerate(context.suggestions, start=1):
            await self.suggestion_repo.create(run_id, user_id, suggestion, rank)

    async def _finalize(
        self,
        run_id: str,
        status: RunStatus,
        context: PlanningContext,
        started: float,
    ) -> None:
        await self.run_repo.complete(
            run_id,
            status.value,
            latency_ms=self._elapsed_ms(started),
            result_summary=self._summary(context),
        )
        await self._transaction_checkpoint(f"finalize_{status.value}", run_id)

    async def _fail(
        self,
        run_id: str,
        entry_point: str,
        error: str,
        started: float,
        stage_durations: dict[str, float],
    ) -> dict[str, Any]:
        """Mark the run failed; raise PersistenceError only if even that cannot be stored."""
        latency_ms = self._elapsed_ms(started)
        try:
            await self.run_repo.complete(
                run_id, RunStatus.FAILED.value, latency_ms=latency_ms, error_summary=error
            )
            await self._transaction_checkpoint("finalize_failed", run_id)
        except Exception as exc:
            raise PersistenceError(
                "Could not record run failure", run_id=run_id, details={"error": error}
            ) from exc
        finally:
            self._record_run_metrics(entry_point, RunStatus.FAILED, latency_ms, None)

        await self.audit_sink.run_failed(run_id, error)
        return {
            "run_id": run_id,
            "status": RunStatus.FAILED.value,
            "suggestions": [],
            "blocked_suggestions": [],
            "result_summary": None,
            "kpis": {},
            "error": error,
            "latency_ms": latency_ms,
            "stage_durations": stage_durations,
        }

    # ---------------------------------------------------------------------------
    # Reporting helpers
    # ---------------------------------------------------------------------------

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    @staticmethod
    def _summary(context: PlanningContext) -> dict[str, Any]:
        accepted = context.status != ContextStatus.BLOCKED
        return {
            "suggestion_count": len(context.suggestions) if accepted else 0,
            "blocked_count": len(context.blocked),
            "confidence": context.confidence,
            "impact_score": context.impact_score,
        }

    @staticmethod
    def _record_run_metrics(
        entry_point: str,
        status: RunStatus,
        latency_ms: float,
        context: PlanningContext | None,
    ) -> None:
        planning_runs_total.labels(entry_point=entry_point, status=status.value).inc()
        planning_run_latency_seconds.labels(entry_point=entry_point).observe(latency_ms / 1000)
        if context is None:
            return
        if status == RunStatus.SUCCEEDED:
            for suggestion in context.suggestions:
                planning_suggestions_generated_total.labels(
                    kind=suggestion.kind.value, risk_level=suggestion.risk_level.value
                ).inc()
        for blocked in context.blocked:
            planning_suggestions_blocked_total.labels(
                kind=blocked.suggestion.kind.value, violation_type=blocked.violation_type
            ).inc()


def create_orchestrator(session: AsyncSession, settings: Settings | None = None) -> RunOrchestrator:
    """Composition root wiring the database-backed collaborators."""
    settings = settings or get_settings()
    return RunOrchestrator(
        session,
        stages=build_stages(settings.planning),
        snapshot_loader=DatabaseSnapshotLoader(session, settings.planning),
        run_repo=RunRepository(session),
        trace_repo=TraceRepository(session),
        suggestion_repo=SuggestionRepository(session),
        audit_sink=AuditSink(session),
    )
