"""Planning run schemas."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from planning_agent.schemas.v1.common import EntryPoint, RunStatus


class RunRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    entry_point: EntryPoint = EntryPoint.USER_ASSIST
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("user_id must not be blank")
        return v.strip()


class SuggestionView(BaseModel):
    kind: str
    reasoning: str = Field(..., max_length=240)
    confidence: float = Field(ge=0.0, le=100.0)
    target: dict[str, Any] = Field(default_factory=dict)
    impact: dict[str, Any] = Field(default_factory=dict)
    policy_hints: list[str] = Field(default_factory=list)
    risk_level: str
    source_stage: str = ""


class BlockedSuggestionView(SuggestionView):
    block_reason: str
    violation_type: str
    policy_violation: str


class RunResponse(BaseModel):
    run_id: str
    status: RunStatus
    suggestions: list[SuggestionView] = Field(default_factory=list)
    blocked_suggestions: list[BlockedSuggestionView] = Field(default_factory=list)
    result_summary: dict[str, Any] | None = None
    kpis: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    latency_ms: float | None = None
    stage_durations: dict[str, float] = Field(default_factory=dict)


class NodeTraceView(BaseModel):
    stage_name: str
    step_index: int
    status: str
    latency_ms: float | None = None
    error_message: str | None = None
    state_in: dict[str, Any] = Field(default_factory=dict)
    state_out: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None


class StoredSuggestionView(BaseModel):
    suggestion_id: str
    kind: str
    reasoning: str
    confidence: float
    target_json: dict[str, Any] = Field(default_factory=dict)
    impact_json: dict[str, Any] = Field(default_factory=dict)
    policy_hints: list[str] = Field(default_factory=list)
    risk_level: str
    payload_hash: str | None = None
    status: str
    rank: int


class RunDetailResponse(BaseModel):
    run_id: str
    user_id: str
    entry_point: str
    status: RunStatus
    started_at: str | None = None
    finished_at: str | None = None
    latency_ms: float | None = None
    result_summary: dict[str, Any] | None = None
    error_summary: str | None = None
    traces: list[NodeTraceView] = Field(default_factory=list)
    suggestions: list[StoredSuggestionView] = Field(default_factory=list)


class PlanningMetricsResponse(BaseModel):
    window_days: int
    total_runs: int = 0
    success_rate: float = 0.0
    avg_latency: float = 0.0
    per_stage_latency: dict[str, float] = Field(default_factory=dict)
    accept_rate: float = 0.0
