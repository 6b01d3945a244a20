"""Reasoning core - PURE functions for confidence, rationale and ordering.

This module contains ZERO database access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from planning_agent.agent.suggestions import Suggestion, SuggestionKind
from planning_agent.utils.constants import MAX_REASONING_LENGTH

if TYPE_CHECKING:
    from planning_agent.agent.state import PlanningContext

KIND_PRIORITY: dict[SuggestionKind, int] = {
    SuggestionKind.BILL_DEFER: 1,
    SuggestionKind.BILL_PARTIAL_PAY: 1,
    SuggestionKind.BILL_PRIORITIZE: 2,
    SuggestionKind.BUDGET_REALLOCATE: 3,
    SuggestionKind.DEBT_REPLAN: 3,
    SuggestionKind.DEBT_CONSOLIDATE: 4,
    SuggestionKind.GOAL_PAUSE: 4,
    SuggestionKind.DEBT_EMERGENCY_FUND: 5,
    SuggestionKind.GOAL_PRIORITIZE: 5,
    SuggestionKind.GOAL_CONSOLIDATE: 6,
    SuggestionKind.GOAL_CREATE_EMERGENCY: 6,
}

DEFERRAL_KINDS = frozenset({SuggestionKind.BILL_DEFER, SuggestionKind.BILL_PARTIAL_PAY})
DEBT_KINDS = frozenset(
    {
        SuggestionKind.DEBT_REPLAN,
        SuggestionKind.DEBT_CONSOLIDATE,
        SuggestionKind.DEBT_EMERGENCY_FUND,
    }
)
GOAL_KINDS = frozenset(
    {
        SuggestionKind.GOAL_PAUSE,
        SuggestionKind.GOAL_PRIORITIZE,
        SuggestionKind.GOAL_CONSOLIDATE,
        SuggestionKind.GOAL_CREATE_EMERGENCY,
    }
)

DEFERRAL_BOOST = 10
REPLAN_BOOST = 5
PAUSE_BOOST = 5
MISSING_CONTEXT_PENALTY = 10

ELLIPSIS = "..."


def compute_confidence(suggestion: Suggestion, context: PlanningContext) -> int:
    """Adjust a stage-assigned confidence with context signals, clamped to [0, 100]."""
    confidence = suggestion.confidence
    negative_flow = context.cashflow is not None and context.net_flow < 0

    if negative_flow and suggestion.kind in DEFERRAL_KINDS:
        confidence += DEFERRAL_BOOST
    if suggestion.kind == SuggestionKind.DEBT_REPLAN and len(context.debts) > 1:
        confidence += REPLAN_BOOST
    if negative_flow and suggestion.kind == SuggestionKind.GOAL_PAUSE:
        confidence += PAUSE_BOOST
    if context.budget is None and context.cashflow is None:
        confidence -= MISSING_CONTEXT_PENALTY

    return max(0, min(100, confidence))


def confidence_tier(confidence: int) -> str:
    if confidence >= 80:
        return "high"
    if confidence >= 60:
        return "moderate"
    return "low"


def context_clause(suggestion: Suggestion, context: PlanningContext) -> str:
    """One sentence tying the suggestion to the user's situation; empty when nothing fits."""
    if context.cashflow is not None and (
        suggestion.kind in DEFERRAL_KINDS or context.net_flow < 0
    ):
        return f"Net monthly flow is {context.net_flow:,.0f} kr."
    if suggestion.kind in DEBT_KINDS and context.debts:
        return f"{len(context.debts)} debt(s) total {context.total_debt:,.0f} kr."
    if suggestion.kind in GOAL_KINDS and context.goals:
        return f"{len(context.goals)} active savings goal(s)."
    if context.cashflow is not None:
        return f"Net monthly flow is {context.net_flow:,.0f} kr."
    return ""


def build_rationale(base: str, clause: str, confidence: int) -> str:
    """Join base reason, context clause and tier suffix within the length cap.

    The context clause is dropped first; only if the base reason plus suffix
    is still too long is the base reason itself truncated.
    """
    suffix = f"({confidence_tier(confidence)} confidence)"
    base = " ".join(base.split())

    full = " ".join(part for part in (base, clause, suffix) if part)
    if len(full) <= MAX_REASONING_LENGTH:
        return full

    without_clause = f"{base} {suffix}"
    if len(without_clause) <= MAX_REASONING_LENGTH:
        return without_clause

    room = MAX_REASONING_LENGTH - len(suffix) - 1 - len(ELLIPSIS)
    return f"{base[:room].rstrip()}{ELLIPSIS} {suffix}"


def priority_key(indexed: tuple[int, Suggestion]) -> tuple[int, int, int]:
    """Sort key: kind priority, then descending confidence, then original position."""
    index, suggestion = indexed
    return (KIND_PRIORITY.get(suggestion.kind, len(KIND_PRIORITY)), -suggestion.confidence, index)
