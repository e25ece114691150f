"""Discount workflow — runs a transition end to end.

Every call follows the same steps:
1. Apply the pure transition (src.discounts.approval)
2. Recalculate the quote so effective discounts and totals match the new state
3. Save it
4. Emit exactly one audit event
5. For requests left pending: notify the approver role

A failed notification does not undo the save. It comes back as
``WorkflowOutcome.warning`` so the caller can say "saved, but approvers were
not notified". A failed save propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from src.audit.events import emit, event_from_audit
from src.discounts import approval
from src.discounts.matrix import resolve_approver_role
from src.models.enums import DiscountStatus, DiscountTarget
from src.pricing.totals import recalculate_quote
from src.schemas.approvals import ApprovalMatrixRule, ApprovalMetadata, ApprovalRequest, ApprovalResult
from src.schemas.coercion import percentage
from src.schemas.pricing import PricingContext
from src.schemas.quotes import ApproverContext, Quote

logger = logging.getLogger(__name__)


class QuoteStore(Protocol):
    async def save(self, quote: Quote) -> Quote: ...


class ApprovalNotifier(Protocol):
    async def submit_for_approval(self, request: ApprovalRequest) -> ApprovalResult: ...


class WorkflowOutcome(BaseModel):
    """What happened: the saved quote, the audit action, and notification status."""

    model_config = ConfigDict(frozen=True)

    quote: Quote
    action: str
    notified: bool = False
    warning: str | None = None


class DiscountWorkflow:
    """Applies discount transitions and their side effects."""

    def __init__(
        self,
        repository: QuoteStore,
        approval_client: ApprovalNotifier,
        matrix_rules: Iterable[ApprovalMatrixRule] = (),
    ) -> None:
        self._repository = repository
        self._approval_client = approval_client
        self._matrix_rules = list(matrix_rules)

    async def _commit(self, transition: approval.DiscountTransition, context: PricingContext) -> Quote:
        quote = recalculate_quote(transition.quote, context.vat_rate, context.lookup, as_of=context.as_of)
        saved = await self._repository.save(quote)
        await emit(event_from_audit(transition.audit, saved.id, source_module="discounts.workflow"))
        return saved

    # ── Requests ─────────────────────────────────────────────────────

    async def request_discount(
        self,
        quote: Quote,
        target: DiscountTarget,
        discount_percentage: Decimal | float | str,
        approver: ApproverContext,
        context: PricingContext,
        notes: str = "",
        line_item_id: str | None = None,
        approver_role_id: str | None = None,
    ) -> WorkflowOutcome:
        """Request an overall or line item discount.

        Without an explicit ``approver_role_id`` the approval matrix decides
        which role must sign off when the request exceeds the self-approval
        threshold.
        """
        role_id = approver_role_id or resolve_approver_role(
            percentage(discount_percentage), target, self._matrix_rules,
        )

        if target == DiscountTarget.OVERALL:
            transition = approval.request_overall_discount(
                quote, discount_percentage, approver, notes, role_id, today=context.as_of,
            )
        else:
            transition = approval.request_line_item_discount(
                quote, line_item_id, discount_percentage, approver, notes, role_id, today=context.as_of,
            )

        saved = await self._commit(transition, context)
        outcome = WorkflowOutcome(quote=saved, action=transition.audit.action)
        if not self._is_pending(saved, target, line_item_id):
            return outcome

        result = await self._approval_client.submit_for_approval(
            self._approval_request(saved, target, approver, notes, line_item_id),
        )
        if result.success:
            return outcome.model_copy(update={"notified": True})

        logger.warning("Discount on quote %s saved but approvers not notified: %s", saved.id, result.reason)
        return outcome.model_copy(update={
            "warning": f"Discount request saved, but approvers were not notified: {result.reason}",
        })

    @staticmethod
    def _is_pending(quote: Quote, target: DiscountTarget, line_item_id: str | None) -> bool:
        if target == DiscountTarget.OVERALL:
            return quote.discount_status == DiscountStatus.PENDING_APPROVAL
        item = quote.line_item(line_item_id) if line_item_id else None
        return item is not None and item.line_discount_status == DiscountStatus.PENDING_APPROVAL

    @staticmethod
    def _approval_request(
        quote: Quote,
        target: DiscountTarget,
        approver: ApproverContext,
        notes: str,
        line_item_id: str | None,
    ) -> ApprovalRequest:
        if target == DiscountTarget.OVERALL:
            return ApprovalRequest(
                entity_type=approval.QUOTE_ENTITY,
                entity_id=quote.id or "",
                requestor_id=approver.id,
                requestor_name=approver.full_name,
                notes=notes,
                required_role_id=quote.required_overall_approver_role_id,
                metadata=ApprovalMetadata(
                    quote_id=quote.id,
                    quote_number=quote.quote_number,
                    discount_type=DiscountTarget.OVERALL,
                    discount_percentage=quote.overall_discount_percentage,
                ),
            )

        item = quote.line_item(line_item_id)
        return ApprovalRequest(
            entity_type=approval.LINE_ITEM_ENTITY,
            entity_id=item.id,
            requestor_id=approver.id,
            requestor_name=approver.full_name,
            notes=notes,
            required_role_id=item.required_approver_role_id,
            metadata=ApprovalMetadata(
                quote_id=quote.id,
                quote_number=quote.quote_number,
                discount_type=DiscountTarget.LINE_ITEM,
                discount_percentage=item.manual_discount_percentage,
                line_item_id=item.id,
                line_item_title=item.job_profile_title,
            ),
        )

    # ── Decisions and resets ─────────────────────────────────────────

    async def record_decision(
        self,
        quote: Quote,
        target: DiscountTarget,
        approved: bool,
        approver_id: str | None,
        context: PricingContext,
        notes: str = "",
        line_item_id: str | None = None,
    ) -> WorkflowOutcome:
        """Approve or reject a pending discount."""
        decide = approval.approve_discount if approved else approval.reject_discount
        transition = decide(quote, target, approver_id, notes, line_item_id, today=context.as_of)
        saved = await self._commit(transition, context)
        return WorkflowOutcome(quote=saved, action=transition.audit.action)

    async def cancel_discount(
        self,
        quote: Quote,
        target: DiscountTarget,
        actor_id: str | None,
        context: PricingContext,
        line_item_id: str | None = None,
    ) -> WorkflowOutcome:
        transition = approval.cancel_discount(quote, target, actor_id, line_item_id)
        saved = await self._commit(transition, context)
        return WorkflowOutcome(quote=saved, action=transition.audit.action)

    async def withdraw_discount(
        self,
        quote: Quote,
        target: DiscountTarget,
        actor_id: str | None,
        context: PricingContext,
        line_item_id: str | None = None,
    ) -> WorkflowOutcome:
        transition = approval.withdraw_discount(quote, target, actor_id, line_item_id)
        saved = await self._commit(transition, context)
        return WorkflowOutcome(quote=saved, action=transition.audit.action)

    async def send_quote(self, quote: Quote, actor_id: str | None, context: PricingContext) -> WorkflowOutcome:
        """Send the quote to the client; refused while any discount is pending."""
        transition = approval.send_quote(quote, actor_id, today=context.as_of)
        saved = await self._commit(transition, context)
        return WorkflowOutcome(quote=saved, action=transition.audit.action)
