"""Suggestion model: a tagged union keyed by SuggestionKind.

Each kind has exactly one proposal payload type. Suggestion validates the
pairing, the reasoning length and the confidence range at construction,
so a malformed suggestion can never reach the guardrail.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any

from planning_agent.core.errors import ValidationError
from planning_agent.utils.constants import MAX_REASONING_LENGTH, RISK_RANK
from planning_agent.utils.dataclass_utils import to_json_safe


class SuggestionKind(StrEnum):
    BUDGET_REALLOCATE = "budget_reallocate"
    BILL_DEFER = "bill_defer"
    BILL_PARTIAL_PAY = "bill_partial_pay"
    BILL_PRIORITIZE = "bill_prioritize"
    DEBT_REPLAN = "debt_replan"
    DEBT_CONSOLIDATE = "debt_consolidate"
    DEBT_EMERGENCY_FUND = "debt_emergency_fund"
    GOAL_PAUSE = "goal_pause"
    GOAL_PRIORITIZE = "goal_prioritize"
    GOAL_CONSOLIDATE = "goal_consolidate"
    GOAL_CREATE_EMERGENCY = "goal_create_emergency"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def max_risk(*levels: RiskLevel | str | None) -> RiskLevel:
    """Most severe of the given levels; LOW when none are given."""
    present = [RiskLevel(level) for level in levels if level]
    if not present:
        return RiskLevel.LOW
    return max(present, key=lambda level: RISK_RANK[level.value])


def clip_reasoning(text: str, limit: int = MAX_REASONING_LENGTH) -> str:
    """Shorten text to ``limit`` characters, marking the cut with an ellipsis."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


# ---------------------------------------------------------------------------
# Proposal payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BudgetReallocation:
    category: str
    direction: str  # reduce | reallocate
    planned: float
    actual: float
    variance: float
    amount: float
    proposed_amount: float


@dataclass(frozen=True, slots=True)
class DeferredBill:
    bill_id: str
    title: str
    amount: float
    due_date: date
    new_due_date: date


@dataclass(frozen=True, slots=True)
class BillDeferral:
    bills: tuple[DeferredBill, ...]
    total_deferred: float
    deficit: float
    defer_days: int


@dataclass(frozen=True, slots=True)
class PartialPayment:
    bill_id: str
    title: str
    amount: float
    pay_now: float
    deferred_amount: float
    second_due_date: date


@dataclass(frozen=True, slots=True)
class PlannedPayment:
    bill_id: str
    title: str
    amount: float
    due_date: date


@dataclass(frozen=True, slots=True)
class BillPrioritization:
    payments: tuple[PlannedPayment, ...]
    total_amount: float


@dataclass(frozen=True, slots=True)
class PayoffEntry:
    debt_id: str
    name: str
    principal: float
    annual_rate: float
    monthly_payment: float
    months_to_payoff: int
    total_interest: float


@dataclass(frozen=True, slots=True)
class DebtPlan:
    strategy: str  # snowball | avalanche
    extra_payment: float
    entries: tuple[PayoffEntry, ...]
    months_to_payoff: int
    minimum_only_months: int
    total_interest: float
    minimum_only_interest: float
    interest_saved: float


@dataclass(frozen=True, slots=True)
class DebtConsolidation:
    debt_ids: tuple[str, ...]
    total_principal: float
    current_average_rate: float
    new_rate: float
    term_months: int
    current_monthly_payment: float
    proposed_monthly_payment: float
    potential_savings: float


@dataclass(frozen=True, slots=True)
class EmergencyFundPlan:
    fund_amount: float
    monthly_contribution: float
    total_debt: float


@dataclass(frozen=True, slots=True)
class GoalPause:
    goal_ids: tuple[str, ...]
    goal_names: tuple[str, ...]
    monthly_relief: float
    deficit: float


@dataclass(frozen=True, slots=True)
class GoalPrioritization:
    goal_id: str
    name: str
    months_remaining: float
    remaining_amount: float
    monthly_allocation: float


@dataclass(frozen=True, slots=True)
class GoalConsolidation:
    category: str
    goal_ids: tuple[str, ...]
    combined_target: float
    combined_current: float


@dataclass(frozen=True, slots=True)
class EmergencyGoal:
    name: str
    target_amount: float
    monthly_contribution: float
    months_to_target: int


SuggestionPayload = (
    BudgetReallocation
    | BillDeferral
    | PartialPayment
    | BillPrioritization
    | DebtPlan
    | DebtConsolidation
    | EmergencyFundPlan
    | GoalPause
    | GoalPrioritization
    | GoalConsolidation
    | EmergencyGoal
)

PAYLOAD_TYPES: dict[SuggestionKind, type] = {
    SuggestionKind.BUDGET_REALLOCATE: BudgetReallocation,
    SuggestionKind.BILL_DEFER: BillDeferral,
    SuggestionKind.BILL_PARTIAL_PAY: PartialPayment,
    SuggestionKind.BILL_PRIORITIZE: BillPrioritization,
    SuggestionKind.DEBT_REPLAN: DebtPlan,
    SuggestionKind.DEBT_CONSOLIDATE: DebtConsolidation,
    SuggestionKind.DEBT_EMERGENCY_FUND: EmergencyFundPlan,
    SuggestionKind.GOAL_PAUSE: GoalPause,
    SuggestionKind.GOAL_PRIORITIZE: GoalPrioritization,
    SuggestionKind.GOAL_CONSOLIDATE: GoalConsolidation,
    SuggestionKind.GOAL_CREATE_EMERGENCY: EmergencyGoal,
}


# ---------------------------------------------------------------------------
# Suggestion records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Suggestion:
    kind: SuggestionKind
    reasoning: str
    confidence: int
    target: SuggestionPayload
    impact: Mapping[str, Any] = field(default_factory=dict)
    policy_hints: tuple[str, ...] = ()
    risk_level: RiskLevel = RiskLevel.LOW
    source_stage: str = ""

    def __post_init__(self) -> None:
        expected = PAYLOAD_TYPES.get(self.kind)
        if expected is None or not isinstance(self.target, expected):
            raise ValidationError(
                f"Payload {type(self.target).__name__} does not match kind {self.kind}",
                details={"kind": str(self.kind)},
            )
        if not self.reasoning or not self.reasoning.strip():
            raise ValidationError("Suggestion reasoning must not be empty")
        if len(self.reasoning) > MAX_REASONING_LENGTH:
            raise ValidationError(
                f"Suggestion reasoning exceeds {MAX_REASONING_LENGTH} characters",
                details={"length": len(self.reasoning)},
            )
        if not 0 <= self.confidence <= 100:
            raise ValidationError(
                "Suggestion confidence must be between 0 and 100",
                details={"confidence": self.confidence},
            )
        if "before" not in self.impact or "after" not in self.impact:
            raise ValidationError(
                "Suggestion impact must carry before and after projections",
                details={"kind": str(self.kind)},
            )

    @property
    def target_json(self) -> dict[str, Any]:
        return to_json_safe(self.target)

    @property
    def impact_json(self) -> dict[str, Any]:
        return to_json_safe(self.impact)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "target": self.target_json,
            "impact": self.impact_json,
            "policy_hints": list(self.policy_hints),
            "risk_level": self.risk_level.value,
            "source_stage": self.source_stage,
        }


@dataclass(frozen=True, slots=True)
class BlockedSuggestion:
    """A candidate rejected by the guardrail, kept for the blocked-list channel."""

    suggestion: Suggestion
    reason: str
    violation_type: str  # policy | safety
    policy_violation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.suggestion.to_dict(),
            "block_reason": self.reason,
            "violation_type": self.violation_type,
            "policy_violation": self.policy_violation,
        }
