"""Cash-flow analysis stage - relieves a monthly deficit or sequences critical bills."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from planning_agent.agent.state import append_suggestions
from planning_agent.agent.suggestions import (
    BillDeferral,
    BillPrioritization,
    DeferredBill,
    PartialPayment,
    PlannedPayment,
    Suggestion,
    SuggestionKind,
    clip_reasoning,
)
from planning_agent.core.config import PlanningConfig
from planning_agent.stages.base import BaseStage

if TYPE_CHECKING:
    from planning_agent.agent.state import Bill, PlanningContext

STAGE_CONFIDENCE = 90


class CashFlowStage(BaseStage):
    """Defer or split non-essential bills under deficit; prioritize critical bills otherwise."""

    @property
    def name(self) -> str:
        return "cashflow_analysis"

    @property
    def description(self) -> str:
        return "Propose bill deferrals, partial payments or a payment order for upcoming bills"

    def __init__(self, config: PlanningConfig) -> None:
        self._config = config

    def execute(self, context: PlanningContext) -> PlanningContext:
        cashflow = context.cashflow
        if cashflow is None or not cashflow.upcoming_bills:
            return context

        candidates: list[Suggestion] = []
        if cashflow.net_flow < 0:
            deficit = -cashflow.net_flow
            deferral = self._deferral(context, deficit)
            if deferral is not None:
                candidates.append(deferral)
            candidates.extend(self._partial_payments(context, deficit))
        elif cashflow.net_flow > 0:
            prioritization = self._prioritization(context)
            if prioritization is not None:
                candidates.append(prioritization)

        return append_suggestions(context, candidates, STAGE_CONFIDENCE)

    @staticmethod
    def _deferrable(bill: Bill) -> bool:
        return not bill.is_essential_utility and not bill.is_critical

    def _deferral(self, context: PlanningContext, deficit: float) -> Suggestion | None:
        # bills above the large-bill threshold are split by _partial_payments instead
        selected = [
            bill
            for bill in context.cashflow.upcoming_bills
            if self._deferrable(bill) and bill.amount <= self._config.large_bill_threshold
        ][: self._config.max_deferred_bills]
        if not selected:
            return None

        total = sum(bill.amount for bill in selected)
        relief = round(min(total, deficit * self._config.defer_deficit_fraction), 2)

        shift = timedelta(days=self._config.defer_days)
        payload = BillDeferral(
            bills=tuple(
                DeferredBill(
                    bill_id=bill.bill_id,
                    title=bill.title,
                    amount=bill.amount,
                    due_date=bill.due_date,
                    new_due_date=bill.due_date + shift,
                )
                for bill in selected
            ),
            total_deferred=round(total, 2),
            deficit=round(deficit, 2),
            defer_days=self._config.defer_days,
        )
        titles = ", ".join(bill.title for bill in selected)
        reasoning = (
            f"Monthly deficit of {deficit:,.0f} kr; deferring {titles} by "
            f"{self._config.defer_days} days frees {total:,.0f} kr now."
        )
        return Suggestion(
            kind=SuggestionKind.BILL_DEFER,
            reasoning=clip_reasoning(reasoning),
            confidence=85,
            target=payload,
            impact={
                "before": {"net_flow": context.net_flow, "due_this_month": round(total, 2)},
                "after": {"net_flow": context.net_flow + relief, "due_this_month": 0.0},
            },
            source_stage=self.name,
        )

    def _partial_payments(
        self,
        context: PlanningContext,
        deficit: float,
    ) -> list[Suggestion]:
        out: list[Suggestion] = []
        second_due = context.now.date() + timedelta(days=self._config.defer_days)
        for bill in context.cashflow.upcoming_bills:
            if len(out) >= self._config.max_partial_payments:
                break
            if not self._deferrable(bill):
                continue
            if bill.amount <= self._config.large_bill_threshold:
                continue
            fraction = self._config.partial_pay_fraction
            deferred = round(min(bill.amount * fraction, deficit * fraction), 2)
            if deferred <= self._config.min_partial_relief:
                continue
            pay_now = round(bill.amount - deferred, 2)
            reasoning = (
                f"{bill.title} ({bill.amount:,.0f} kr) is large against a "
                f"{deficit:,.0f} kr deficit; pay {pay_now:,.0f} kr now and the rest in 30 days."
            )
            out.append(
                Suggestion(
                    kind=SuggestionKind.BILL_PARTIAL_PAY,
                    reasoning=clip_reasoning(reasoning),
                    confidence=80,
                    target=PartialPayment(
                        bill_id=bill.bill_id,
                        title=bill.title,
                        amount=bill.amount,
                        pay_now=pay_now,
                        deferred_amount=deferred,
                        second_due_date=second_due,
                    ),
                    impact={
                        "before": {"net_flow": context.net_flow, "due_this_month": bill.amount},
                        "after": {"net_flow": context.net_flow + deferred, "due_this_month": pay_now},
                    },
                    source_stage=self.name,
                )
            )
        return out

    def _prioritization(self, context: PlanningContext) -> Suggestion | None:
        critical = [bill for bill in context.cashflow.upcoming_bills if bill.is_critical]
        if not critical:
            return None
        critical.sort(key=lambda bill: bill.due_date)
        total = round(sum(bill.amount for bill in critical), 2)
        reasoning = (
            f"{len(critical)} critical bill(s) totalling {total:,.0f} kr fall due soon; "
            f"pay them first, starting with {critical[0].title}."
        )
        return Suggestion(
            kind=SuggestionKind.BILL_PRIORITIZE,
            reasoning=clip_reasoning(reasoning),
            confidence=90,
            target=BillPrioritization(
                payments=tuple(
                    PlannedPayment(
                        bill_id=bill.bill_id,
                        title=bill.title,
                        amount=bill.amount,
                        due_date=bill.due_date,
                    )
                    for bill in critical
                ),
                total_amount=total,
            ),
            impact={
                "before": {"net_flow": context.net_flow, "unscheduled_critical_bills": len(critical)},
                "after": {"net_flow": context.net_flow, "unscheduled_critical_bills": 0},
            },
            source_stage=self.name,
        )
