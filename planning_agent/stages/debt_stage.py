"""Debt analysis stage - payoff replanning, consolidation and emergency buffer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from planning_agent.agent.state import append_suggestions
from planning_agent.agent.suggestions import (
    DebtConsolidation,
    DebtPlan,
    EmergencyFundPlan,
    PayoffEntry,
    Suggestion,
    SuggestionKind,
    clip_reasoning,
)
from planning_agent.core.config import PlanningConfig
from planning_agent.stages._core.amortization import (
    choose_strategy,
    level_payment,
    months_to_payoff,
    order_debts,
    total_interest,
)
from planning_agent.stages._core.impact_logic import ReadinessTier, emergency_readiness
from planning_agent.stages.base import BaseStage

if TYPE_CHECKING:
    from planning_agent.agent.state import Debt, PlanningContext

STAGE_CONFIDENCE = 85


def _minimum_only(debt: Debt) -> tuple[int, float]:
    months = months_to_payoff(debt.principal, debt.annual_rate, debt.minimum_payment)
    return months, total_interest(debt.principal, debt.minimum_payment, months)


class DebtStage(BaseStage):
    """Compare snowball and avalanche payoff orders and look for cheaper debt structures."""

    @property
    def name(self) -> str:
        return "debt_analysis"

    @property
    def description(self) -> str:
        return "Project debt payoff with extra payments and propose consolidation"

    def __init__(self, config: PlanningConfig) -> None:
        self._config = config

    def execute(self, context: PlanningContext) -> PlanningContext:
        debts = [debt for debt in context.debts if debt.principal > 0]
        if not debts:
            return context

        candidates = [
            suggestion
            for suggestion in (
                self._replan(context, debts),
                self._consolidation(context, debts),
                self._emergency_fund(context),
            )
            if suggestion is not None
        ]
        return append_suggestions(context, candidates, STAGE_CONFIDENCE)

    def _extra_payment(self, net_flow: float) -> float:
        if net_flow <= 0:
            return 0.0
        return round(
            min(net_flow * self._config.extra_payment_fraction, self._config.max_extra_payment), 2
        )

    def _replan(self, context: PlanningContext, debts: list[Debt]) -> Suggestion | None:
        extra = self._extra_payment(context.net_flow)
        if extra <= self._config.min_extra_payment:
            return None

        strategy = choose_strategy(
            debts,
            self._config.small_balance_threshold,
            self._config.snowball_min_small_balances,
        )
        entries: list[PayoffEntry] = []
        minimum_months: list[int] = []
        minimum_interest = 0.0
        for debt in order_debts(debts, strategy):
            payment = round(debt.minimum_payment + extra, 2)
            months = months_to_payoff(debt.principal, debt.annual_rate, payment)
            entries.append(
                PayoffEntry(
                    debt_id=debt.debt_id,
                    name=debt.name,
                    principal=debt.principal,
                    annual_rate=debt.annual_rate,
                    monthly_payment=payment,
                    months_to_payoff=months,
                    total_interest=round(total_interest(debt.principal, payment, months), 2),
                )
            )
            min_months, min_interest = _minimum_only(debt)
            minimum_months.append(min_months)
            minimum_interest += min_interest

        plan_interest = round(sum(entry.total_interest for entry in entries), 2)
        plan = DebtPlan(
            strategy=strategy,
            extra_payment=extra,
            entries=tuple(entries),
            # debts are repaid in parallel, so the plan ends with its slowest debt
            months_to_payoff=max(entry.months_to_payoff for entry in entries),
            minimum_only_months=max(minimum_months),
            total_interest=plan_interest,
            minimum_only_interest=round(minimum_interest, 2),
            interest_saved=round(minimum_interest - plan_interest, 2),
        )
        reasoning = (
            f"Using the {strategy} method with {extra:,.0f} kr extra per month clears "
            f"{len(entries)} debt(s) in {plan.months_to_payoff} months and saves "
            f"{plan.interest_saved:,.0f} kr in interest."
        )
        return Suggestion(
            kind=SuggestionKind.DEBT_REPLAN,
            reasoning=clip_reasoning(reasoning),
            confidence=85,
            target=plan,
            impact={
                "before": {
                    "net_flow": context.net_flow,
                    "months_to_payoff": plan.minimum_only_months,
                    "total_interest": plan.minimum_only_interest,
                },
                "after": {
                    "net_flow": context.net_flow - extra,
                    "months_to_payoff": plan.months_to_payoff,
                    "total_interest": plan.total_interest,
                },
            },
            source_stage=self.name,
        )

    def _consolidation(self, context: PlanningContext, debts: list[Debt]) -> Suggestion | None:
        expensive = [debt for debt in debts if debt.annual_rate > self._config.high_interest_rate]
        if len(expensive) < 2:
            return None

        principal = round(sum(debt.principal for debt in expensive), 2)
        average_rate = sum(debt.annual_rate for debt in expensive) / len(expensive)
        new_rate = max(
            self._config.consolidation_rate_floor,
            average_rate - self._config.consolidation_rate_discount,
        )
        term = self._config.consolidation_term_months
        current_payment = round(sum(debt.minimum_payment for debt in expensive), 2)
        proposed_payment = round(level_payment(principal, new_rate, term), 2)
        current_interest = sum(_minimum_only(debt)[1] for debt in expensive)
        savings = round(current_interest - total_interest(principal, proposed_payment, term), 2)

        payload = DebtConsolidation(
            debt_ids=tuple(debt.debt_id for debt in expensive),
            total_principal=principal,
            current_average_rate=round(average_rate, 2),
            new_rate=round(new_rate, 2),
            term_months=term,
            current_monthly_payment=current_payment,
            proposed_monthly_payment=proposed_payment,
            potential_savings=savings,
        )
        reasoning = (
            f"{len(expensive)} debts average {average_rate:.1f}% interest; consolidating "
            f"{principal:,.0f} kr at about {new_rate:.1f}% over {term} months "
            f"could save {savings:,.0f} kr."
        )
        return Suggestion(
            kind=SuggestionKind.DEBT_CONSOLIDATE,
            reasoning=clip_reasoning(reasoning),
            confidence=75,
            target=payload,
            impact={
                "before": {
                    "net_flow": context.net_flow,
                    "monthly_payment": current_payment,
                    "average_rate": payload.current_average_rate,
                },
                "after": {
                    "net_flow": context.net_flow + current_payment - proposed_payment,
                    "monthly_payment": proposed_payment,
                    "average_rate": payload.new_rate,
                },
            },
            source_stage=self.name,
        )

    def _emergency_fund(self, context: PlanningContext) -> Suggestion | None:
        net = context.net_flow
        total = context.total_debt
        if total <= self._config.emergency_debt_threshold:
            return None
        if net <= self._config.emergency_min_net_flow:
            return None
        if emergency_readiness(context.emergency_goal) in (
            ReadinessTier.ADEQUATE,
            ReadinessTier.EXCELLENT,
        ):
            return None

        fund = round(
            min(net * self._config.emergency_buffer_months, self._config.emergency_buffer_cap), 2
        )
        monthly = self._extra_payment(net)
        current = context.emergency_goal.current_amount if context.emergency_goal else 0.0
        reasoning = (
            f"With {total:,.0f} kr of debt, build a {fund:,.0f} kr buffer first so "
            f"unexpected costs do not add new borrowing."
        )
        return Suggestion(
            kind=SuggestionKind.DEBT_EMERGENCY_FUND,
            reasoning=clip_reasoning(reasoning),
            confidence=70,
            target=EmergencyFundPlan(
                fund_amount=fund,
                monthly_contribution=monthly,
                total_debt=round(total, 2),
            ),
            impact={
                "before": {"net_flow": net, "emergency_fund": current},
                "after": {"net_flow": net - monthly, "emergency_fund": fund},
            },
            source_stage=self.name,
        )
