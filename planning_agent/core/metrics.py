"""Prometheus metrics for the planning agent."""

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Planning runs: end-to-end
# ---------------------------------------------------------------------------

planning_runs_total = Counter(
    "planning_runs_total",
    "Total planning runs by terminal status",
    ["entry_point", "status"],
)

planning_run_latency_seconds = Histogram(
    "planning_run_latency_seconds",
    "End-to-end planning run latency in seconds",
    ["entry_point"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Per-stage latency
# ---------------------------------------------------------------------------

planning_stage_latency_seconds = Histogram(
    "planning_stage_latency_seconds",
    "Latency per pipeline stage in seconds",
    ["stage"],  # budget_analysis | cashflow_analysis | ... | impact
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0],
)

planning_stage_failures_total = Counter(
    "planning_stage_failures_total",
    "Total pipeline stage failures",
    ["stage"],
)

# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

planning_suggestions_generated_total = Counter(
    "planning_suggestions_generated_total",
    "Total suggestions persisted after guardrail validation",
    ["kind", "risk_level"],
)

planning_suggestions_blocked_total = Counter(
    "planning_suggestions_blocked_total",
    "Total candidate suggestions rejected by the guardrail",
    ["kind", "violation_type"],  # policy | safety
)

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

planning_audit_failures_total = Counter(
    "planning_audit_failures_total",
    "Audit events that could not be written",
    ["action"],
)

planning_db_query_latency_seconds = Histogram(
    "planning_db_query_latency_seconds",
    "Database query latency in seconds",
    ["query_name"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

planning_db_query_failures_total = Counter(
    "planning_db_query_failures_total",
    "Total database query failures",
    ["query_name"],
)
