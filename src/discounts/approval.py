"""Discount approval state machine — overall quote and line item discounts.

Pure transitions over immutable Quote snapshots. Each transition returns the
new quote plus exactly one AuditEntry describing it.

Per discount target::

    none / rejected ──request──▶ pending_approval ──approve──▶ approved
           │                           │          └──reject───▶ rejected
           │                           └──cancel──▶ none
           └──request (≤ self-approval threshold)──▶ approved
    approved / rejected ──withdraw──▶ none

Approving the overall discount stamps ``eligible_for_overall_discount`` on the
line items present at that moment and records their ids once in
``overall_discount_applied_to_items``. Items added later are never stamped.

Computed line fields (effective discount, totals) are stale after a
transition until the quote is recalculated.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.discounts.errors import DiscountRequestError, InvalidDiscountState, LineItemNotFound
from src.models.enums import DiscountStatus, DiscountTarget, QuoteStatus
from src.schemas.approvals import AuditEntry
from src.schemas.coercion import percentage
from src.schemas.events import EventType
from src.schemas.quotes import ApproverContext, LineItem, Quote

logger = logging.getLogger(__name__)

QUOTE_ENTITY = "Quote"
LINE_ITEM_ENTITY = "QuoteLineItem"

_REQUESTABLE = frozenset({DiscountStatus.NONE, DiscountStatus.REJECTED})
_WITHDRAWABLE = frozenset({DiscountStatus.APPROVED, DiscountStatus.REJECTED})

_OVERALL_FIELDS = (
    "overall_discount_percentage",
    "discount_status",
    "discount_request_notes",
    "required_overall_approver_role_id",
    "discount_approver_id",
    "discount_decision_date",
    "discount_approval_notes",
    "overall_discount_applied_to_items",
)

_LINE_FIELDS = (
    "manual_discount_percentage",
    "line_discount_status",
    "line_discount_request_notes",
    "required_approver_role_id",
    "line_discount_approver_id",
    "line_discount_decision_date",
    "line_discount_approval_notes",
    "eligible_for_overall_discount",
)


class DiscountTransition(BaseModel):
    """Result of one transition: the new quote and its audit record."""

    model_config = ConfigDict(frozen=True)

    quote: Quote
    audit: AuditEntry


# ── Helpers ──────────────────────────────────────────────────────────


def _today(today: date | None) -> date:
    return today or datetime.now(UTC).date()


def _snapshot(model: BaseModel, fields: tuple[str, ...]) -> dict[str, Any]:
    return model.model_dump(mode="json", include=set(fields))


def _find_line_item(quote: Quote, line_item_id: str | None) -> LineItem:
    item = quote.line_item(line_item_id) if line_item_id else None
    if item is None:
        raise LineItemNotFound(str(line_item_id))
    return item


def _replace_line_item(quote: Quote, item: LineItem) -> Quote:
    return quote.model_copy(update={
        "line_items": [item if li.id == item.id else li for li in quote.line_items],
    })


def derive_quote_status(quote: Quote) -> QuoteStatus:
    """Quote status implied by its discounts.

    Any pending discount puts the quote in ``pending_approval``. With nothing
    pending, only ``pending_approval`` falls back to ``draft``; other statuses
    are kept.
    """
    if quote.has_pending_discount:
        return QuoteStatus.PENDING_APPROVAL
    if quote.status == QuoteStatus.PENDING_APPROVAL:
        return QuoteStatus.DRAFT
    return quote.status


def _with_status(quote: Quote) -> Quote:
    status = derive_quote_status(quote)
    if status == quote.status:
        return quote
    logger.info("Quote %s status: %s -> %s", quote.id, quote.status.value, status.value)
    return quote.model_copy(update={"status": status})


def _stamp_eligibility(quote: Quote) -> dict[str, Any]:
    """Eligibility stamp taken when the overall discount becomes approved."""
    items = [item.model_copy(update={"eligible_for_overall_discount": True}) for item in quote.line_items]
    return {
        "line_items": items,
        "overall_discount_applied_to_items": [item.id for item in items],
    }


def _requested_percentage(value: Decimal | float | str) -> Decimal:
    pct = percentage(value)
    if pct <= 0:
        msg = f"Discount percentage must be greater than 0 (got {value!r})"
        raise DiscountRequestError(msg)
    return pct


def _overall_entry(
    quote: Quote,
    new_quote: Quote,
    event_type: EventType,
    action: str,
    actor_id: str | None,
) -> AuditEntry:
    return AuditEntry(
        event_type=event_type,
        action=action,
        entity_type=QUOTE_ENTITY,
        entity_id=quote.id,
        entity_name=quote.quote_number,
        old_values=_snapshot(quote, _OVERALL_FIELDS),
        new_values=_snapshot(new_quote, _OVERALL_FIELDS),
        actor_id=actor_id,
    )


def _line_entry(
    quote: Quote,
    item: LineItem,
    new_item: LineItem,
    event_type: EventType,
    action: str,
    actor_id: str | None,
) -> AuditEntry:
    return AuditEntry(
        event_type=event_type,
        action=action,
        entity_type=LINE_ITEM_ENTITY,
        entity_id=item.id,
        entity_name=item.job_profile_title,
        old_values=_snapshot(item, _LINE_FIELDS),
        new_values=_snapshot(new_item, _LINE_FIELDS),
        actor_id=actor_id,
        parent_id=quote.id,
        parent_type=QUOTE_ENTITY,
    )


# ── Requests ─────────────────────────────────────────────────────────


def request_overall_discount(
    quote: Quote,
    discount_percentage: Decimal | float | str,
    approver: ApproverContext,
    notes: str = "",
    approver_role_id: str | None = None,
    today: date | None = None,
) -> DiscountTransition:
    """Request an overall quote discount.

    At or below the requester's own threshold the discount is approved at
    once and eligibility is stamped. Above it, the request goes to
    ``pending_approval`` and ``approver_role_id`` is required.

    Raises:
        InvalidDiscountState: The overall discount is pending or approved.
        DiscountRequestError: Percentage ≤ 0, or no approver role for a
            request that needs one.
    """
    if quote.discount_status not in _REQUESTABLE:
        msg = f"Cannot request an overall discount while it is {quote.discount_status.value}"
        raise InvalidDiscountState(msg, quote.discount_status.value)

    pct = _requested_percentage(discount_percentage)
    threshold = approver.max_self_approve_overall_discount_percent

    if pct <= threshold:
        update: dict[str, Any] = {
            "overall_discount_percentage": pct,
            "discount_status": DiscountStatus.APPROVED,
            "discount_request_notes": notes,
            "required_overall_approver_role_id": None,
            "discount_approver_id": approver.id,
            "discount_decision_date": _today(today),
            "discount_approval_notes": "",
            **_stamp_eligibility(quote),
        }
        event_type, action = EventType.DISCOUNT_SELF_APPROVED, "overall_discount_self_approved"
        logger.info("Quote %s: overall discount %s%% self-approved by %s", quote.id, pct, approver.id)
    else:
        if not approver_role_id:
            msg = f"An approver role is required for an overall discount of {pct}% (limit {threshold}%)"
            raise DiscountRequestError(msg)
        update = {
            "overall_discount_percentage": pct,
            "discount_status": DiscountStatus.PENDING_APPROVAL,
            "discount_request_notes": notes,
            "required_overall_approver_role_id": approver_role_id,
            "discount_approver_id": None,
            "discount_decision_date": None,
            "discount_approval_notes": "",
            "overall_discount_applied_to_items": [],
        }
        event_type, action = EventType.DISCOUNT_REQUESTED, "overall_discount_request"
        logger.info(
            "Quote %s: overall discount %s%% pending approval by role %s",
            quote.id,
            pct,
            approver_role_id,
        )

    new_quote = _with_status(quote.model_copy(update=update))
    return DiscountTransition(
        quote=new_quote,
        audit=_overall_entry(quote, new_quote, event_type, action, approver.id),
    )


def request_line_item_discount(
    quote: Quote,
    line_item_id: str,
    discount_percentage: Decimal | float | str,
    approver: ApproverContext,
    notes: str = "",
    approver_role_id: str | None = None,
    today: date | None = None,
) -> DiscountTransition:
    """Request an individual discount on one line item. Same rules as overall."""
    item = _find_line_item(quote, line_item_id)
    if item.line_discount_status not in _REQUESTABLE:
        msg = f"Cannot request a discount on line item {item.id} while it is {item.line_discount_status.value}"
        raise InvalidDiscountState(msg, item.line_discount_status.value)

    pct = _requested_percentage(discount_percentage)
    threshold = approver.max_self_approve_line_discount_percent

    if pct <= threshold:
        update: dict[str, Any] = {
            "manual_discount_percentage": pct,
            "line_discount_status": DiscountStatus.APPROVED,
            "line_discount_request_notes": notes,
            "required_approver_role_id": None,
            "line_discount_approver_id": approver.id,
            "line_discount_decision_date": _today(today),
            "line_discount_approval_notes": "",
        }
        event_type, action = EventType.DISCOUNT_SELF_APPROVED, "line_item_discount_self_approved"
        logger.info("Line item %s: discount %s%% self-approved by %s", item.id, pct, approver.id)
    else:
        if not approver_role_id:
            msg = f"An approver role is required for a line item discount of {pct}% (limit {threshold}%)"
            raise DiscountRequestError(msg)
        update = {
            "manual_discount_percentage": pct,
            "line_discount_status": DiscountStatus.PENDING_APPROVAL,
            "line_discount_request_notes": notes,
            "required_approver_role_id": approver_role_id,
            "line_discount_approver_id": None,
            "line_discount_decision_date": None,
            "line_discount_approval_notes": "",
        }
        event_type, action = EventType.DISCOUNT_REQUESTED, "line_item_discount_request"
        logger.info("Line item %s: discount %s%% pending approval by role %s", item.id, pct, approver_role_id)

    new_item = item.model_copy(update=update)
    new_quote = _with_status(_replace_line_item(quote, new_item))
    return DiscountTransition(
        quote=new_quote,
        audit=_line_entry(quote, item, new_item, event_type, action, approver.id),
    )


# ── Decisions ────────────────────────────────────────────────────────


def _decide(
    quote: Quote,
    target: DiscountTarget,
    approved: bool,
    approver_id: str | None,
    notes: str,
    line_item_id: str | None,
    today: date | None,
) -> DiscountTransition:
    status = DiscountStatus.APPROVED if approved else DiscountStatus.REJECTED
    verb = "approved" if approved else "rejected"
    event_type = EventType.DISCOUNT_APPROVED if approved else EventType.DISCOUNT_REJECTED
    decided_on = _today(today)

    if target == DiscountTarget.OVERALL:
        if quote.discount_status != DiscountStatus.PENDING_APPROVAL:
            msg = f"Overall discount is {quote.discount_status.value}, not pending approval"
            raise InvalidDiscountState(msg, quote.discount_status.value)
        update: dict[str, Any] = {
            "discount_status": status,
            "discount_approver_id": approver_id,
            "discount_decision_date": decided_on,
            "discount_approval_notes": notes,
        }
        if approved:
            update.update(_stamp_eligibility(quote))
        new_quote = _with_status(quote.model_copy(update=update))
        logger.info("Quote %s: overall discount %s by %s", quote.id, verb, approver_id)
        return DiscountTransition(
            quote=new_quote,
            audit=_overall_entry(quote, new_quote, event_type, f"overall_discount_{verb}", approver_id),
        )

    item = _find_line_item(quote, line_item_id)
    if item.line_discount_status != DiscountStatus.PENDING_APPROVAL:
        msg = f"Line item {item.id} discount is {item.line_discount_status.value}, not pending approval"
        raise InvalidDiscountState(msg, item.line_discount_status.value)
    new_item = item.model_copy(update={
        "line_discount_status": status,
        "line_discount_approver_id": approver_id,
        "line_discount_decision_date": decided_on,
        "line_discount_approval_notes": notes,
    })
    new_quote = _with_status(_replace_line_item(quote, new_item))
    logger.info("Line item %s: discount %s by %s", item.id, verb, approver_id)
    return DiscountTransition(
        quote=new_quote,
        audit=_line_entry(quote, item, new_item, event_type, f"line_item_discount_{verb}", approver_id),
    )


def approve_discount(
    quote: Quote,
    target: DiscountTarget,
    approver_id: str | None,
    notes: str = "",
    line_item_id: str | None = None,
    today: date | None = None,
) -> DiscountTransition:
    """Approve a pending discount. Overall approval stamps eligibility."""
    return _decide(quote, target, True, approver_id, notes, line_item_id, today)


def reject_discount(
    quote: Quote,
    target: DiscountTarget,
    approver_id: str | None,
    notes: str = "",
    line_item_id: str | None = None,
    today: date | None = None,
) -> DiscountTransition:
    """Reject a pending discount. The percentage stays visible but never applies."""
    return _decide(quote, target, False, approver_id, notes, line_item_id, today)


# ── Cancellation / withdrawal ────────────────────────────────────────


_OVERALL_RESET: dict[str, Any] = {
    "overall_discount_percentage": Decimal("0"),
    "discount_status": DiscountStatus.NONE,
    "discount_request_notes": "",
    "required_overall_approver_role_id": None,
    "discount_approver_id": None,
    "discount_decision_date": None,
    "discount_approval_notes": "",
    "overall_discount_applied_to_items": [],
}

_LINE_RESET: dict[str, Any] = {
    "manual_discount_percentage": Decimal("0"),
    "line_discount_status": DiscountStatus.NONE,
    "line_discount_request_notes": "",
    "required_approver_role_id": None,
    "line_discount_approver_id": None,
    "line_discount_decision_date": None,
    "line_discount_approval_notes": "",
    "eligible_for_overall_discount": False,
}


def _reset(
    quote: Quote,
    target: DiscountTarget,
    allowed: frozenset[DiscountStatus],
    event_type: EventType,
    action_suffix: str,
    verb: str,
    actor_id: str | None,
    line_item_id: str | None,
) -> DiscountTransition:
    if target == DiscountTarget.OVERALL:
        if quote.discount_status not in allowed:
            msg = f"Cannot {verb} an overall discount that is {quote.discount_status.value}"
            raise InvalidDiscountState(msg, quote.discount_status.value)
        items = [item.model_copy(update={"eligible_for_overall_discount": False}) for item in quote.line_items]
        new_quote = _with_status(quote.model_copy(update={**_OVERALL_RESET, "line_items": items}))
        logger.info("Quote %s: overall discount %s by %s", quote.id, action_suffix, actor_id)
        return DiscountTransition(
            quote=new_quote,
            audit=_overall_entry(quote, new_quote, event_type, f"overall_discount_{action_suffix}", actor_id),
        )

    item = _find_line_item(quote, line_item_id)
    if item.line_discount_status not in allowed:
        msg = f"Cannot {verb} a line item discount that is {item.line_discount_status.value}"
        raise InvalidDiscountState(msg, item.line_discount_status.value)
    new_item = item.model_copy(update=_LINE_RESET)
    new_quote = _with_status(_replace_line_item(quote, new_item))
    logger.info("Line item %s: discount %s by %s", item.id, action_suffix, actor_id)
    return DiscountTransition(
        quote=new_quote,
        audit=_line_entry(quote, item, new_item, event_type, f"line_item_discount_{action_suffix}", actor_id),
    )


def cancel_discount(
    quote: Quote,
    target: DiscountTarget,
    actor_id: str | None,
    line_item_id: str | None = None,
) -> DiscountTransition:
    """Cancel a pending request, resetting the discount to ``none``.

    Raises:
        InvalidDiscountState: The discount is not pending approval.
    """
    return _reset(
        quote,
        target,
        frozenset({DiscountStatus.PENDING_APPROVAL}),
        EventType.DISCOUNT_CANCELLED,
        "request_cancelled",
        "cancel",
        actor_id,
        line_item_id,
    )


def withdraw_discount(
    quote: Quote,
    target: DiscountTarget,
    actor_id: str | None,
    line_item_id: str | None = None,
) -> DiscountTransition:
    """Take back an approved or rejected discount, resetting it to ``none``.

    Withdrawing is how a discount-locked line item becomes editable again.
    """
    return _reset(
        quote,
        target,
        _WITHDRAWABLE,
        EventType.DISCOUNT_WITHDRAWN,
        "withdrawn",
        "withdraw",
        actor_id,
        line_item_id,
    )


# ── Sending ──────────────────────────────────────────────────────────


def send_quote(quote: Quote, actor_id: str | None, today: date | None = None) -> DiscountTransition:
    """Mark the quote as sent to the client.

    Raises:
        InvalidDiscountState: A discount anywhere on the quote is pending.
    """
    if quote.has_pending_discount:
        msg = f"Quote {quote.id} has a discount pending approval and cannot be sent"
        raise InvalidDiscountState(msg, QuoteStatus.PENDING_APPROVAL.value)

    new_quote = quote.model_copy(update={"status": QuoteStatus.SENT, "sent_date": _today(today)})
    logger.info("Quote %s sent by %s", quote.id, actor_id)
    return DiscountTransition(
        quote=new_quote,
        audit=AuditEntry(
            event_type=EventType.QUOTE_SENT,
            action="send_quote",
            entity_type=QUOTE_ENTITY,
            entity_id=quote.id,
            entity_name=quote.quote_number,
            old_values=_snapshot(quote, ("status", "sent_date")),
            new_values=_snapshot(new_quote, ("status", "sent_date")),
            actor_id=actor_id,
        ),
    )

