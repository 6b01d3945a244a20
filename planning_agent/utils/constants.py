"""Shared domain constants."""

from __future__ import annotations

VALID_RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")
RISK_RANK: dict[str, int] = {level: index for index, level in enumerate(VALID_RISK_LEVELS, 1)}

ESSENTIAL_UTILITY_TAG = "essential_utility"
ESSENTIAL_UTILITY_KEYWORDS: tuple[str, ...] = (
    "strøm",
    "vann",
    "husleie",
    "electricity",
    "water",
    "rent",
)

EMERGENCY_GOAL_CATEGORY = "emergency"
EMERGENCY_GOAL_KEYWORDS: tuple[str, ...] = ("nødfond", "emergency")

GOAL_PRIORITY_RANK: dict[str, int] = {"HIGH": 1, "MEDIUM": 2, "LOW": 3}

MAX_REASONING_LENGTH = 240

STAGE_ORDER: tuple[str, ...] = (
    "budget_analysis",
    "cashflow_analysis",
    "debt_analysis",
    "goal_analysis",
    "guardrail",
    "reasoning",
    "impact",
)
