"""Debt amortization math - PURE functions.

This module contains ZERO database access.

Payoff time uses the closed form for a fixed monthly payment:

    months = ceil(-ln(1 - P*r/pay) / ln(1 + r)),   r = annual_rate / 100 / 12

A payment that does not cover the first month's interest never amortises
and is reported as NEVER_PAID_OFF.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from planning_agent.agent.state import Debt

NEVER_PAID_OFF = 999

SNOWBALL = "snowball"
AVALANCHE = "avalanche"


def monthly_rate(annual_rate: float) -> float:
    return annual_rate / 100 / 12


def months_to_payoff(principal: float, annual_rate: float, payment: float) -> int:
    if principal <= 0:
        return 0
    if payment <= 0:
        return NEVER_PAID_OFF
    r = monthly_rate(annual_rate)
    if r == 0:
        return min(math.ceil(principal / payment), NEVER_PAID_OFF)
    ratio = principal * r / payment
    if ratio >= 1:
        return NEVER_PAID_OFF
    months = -math.log(1 - ratio) / math.log(1 + r)
    # Guard against 11.999999 style float noise before taking the ceiling.
    return min(math.ceil(round(months, 6)), NEVER_PAID_OFF)


def total_interest(principal: float, payment: float, months: int) -> float:
    """Interest paid over the life of the loan, never negative."""
    return max(0.0, payment * months - principal)


def level_payment(principal: float, annual_rate: float, months: int) -> float:
    """Fixed monthly payment that retires ``principal`` in ``months``."""
    if months <= 0:
        raise ValueError("months must be positive")
    r = monthly_rate(annual_rate)
    if r == 0:
        return principal / months
    return principal * r / (1 - (1 + r) ** -months)


def choose_strategy(debts: Iterable[Debt], small_balance_threshold: float, min_small: int) -> str:
    """Snowball when at least ``min_small`` balances sit under the threshold."""
    small = sum(1 for debt in debts if debt.principal < small_balance_threshold)
    return SNOWBALL if small >= min_small else AVALANCHE


def order_debts(debts: Iterable[Debt], strategy: str) -> list[Debt]:
    if strategy == SNOWBALL:
        return sorted(debts, key=lambda d: (d.principal, -d.annual_rate))
    return sorted(debts, key=lambda d: (-d.annual_rate, d.principal))
