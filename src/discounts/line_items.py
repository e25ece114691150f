"""Line item editing with discount locking.

A line item an approved discount currently applies to (non-zero effective
discount, from either source) is protected: its job profile, nationality,
quantity and contract duration cannot change and it cannot be removed until
the discount is withdrawn.

Protection is derived from the quote's current discount state, so it holds on
a quote straight out of a transition, before any recalculation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from src.discounts.errors import DiscountRequestError, LineItemLocked, LineItemNotFound
from src.pricing.calculator import resolve_effective_discount
from src.schemas.quotes import COMPUTED_LINE_FIELDS, PROTECTED_LINE_FIELDS, LineItem, Quote

logger = logging.getLogger(__name__)

# Owned by the discount state machine, not by the line item editor
_DISCOUNT_FIELDS = frozenset({
    "manual_discount_percentage",
    "line_discount_status",
    "line_discount_request_notes",
    "required_approver_role_id",
    "line_discount_approver_id",
    "line_discount_decision_date",
    "line_discount_approval_notes",
    "eligible_for_overall_discount",
})


def is_protected(item: LineItem, quote: Quote | None = None) -> bool:
    """True while an approved discount applies to the item."""
    percentage, _source = resolve_effective_discount(item, quote)
    return percentage > 0


def _get(quote: Quote, line_item_id: str) -> LineItem:
    item = quote.line_item(line_item_id)
    if item is None:
        raise LineItemNotFound(line_item_id)
    return item


def add_line_item(quote: Quote, item: LineItem | Mapping[str, Any]) -> Quote:
    """Append a line item.

    The new item is never eligible for an overall discount approved before
    it existed, whatever the input says.

    Raises:
        DiscountRequestError: A line item with the same id already exists.
    """
    if not isinstance(item, LineItem):
        item = LineItem.model_validate(item)
    if quote.line_item(item.id) is not None:
        msg = f"Duplicate line item id: {item.id}"
        raise DiscountRequestError(msg)

    item = item.model_copy(update={"eligible_for_overall_discount": False})
    logger.debug("Quote %s: line item %s added", quote.id, item.id)
    return quote.model_copy(update={"line_items": [*quote.line_items, item]})


def update_line_item(quote: Quote, line_item_id: str, changes: Mapping[str, Any]) -> Quote:
    """Apply field changes to one line item.

    Computed fields in ``changes`` are ignored; they are rebuilt on the next
    recalculation. Values are coerced the same way as on input, so setting
    quantity to "2" on a protected item whose quantity is 2 is not a change.

    Raises:
        LineItemNotFound: No such line item.
        DiscountRequestError: ``changes`` touches the id or discount fields.
        LineItemLocked: The item is protected and a locked field would change.
    """
    item = _get(quote, line_item_id)

    if "id" in changes and changes["id"] != item.id:
        msg = "Line item id cannot be changed"
        raise DiscountRequestError(msg)
    discount_changes = _DISCOUNT_FIELDS.intersection(changes)
    if discount_changes:
        msg = f"Discount fields must be changed through the approval workflow: {sorted(discount_changes)}"
        raise DiscountRequestError(msg)

    editable = {k: v for k, v in changes.items() if k not in COMPUTED_LINE_FIELDS}
    updated = LineItem.model_validate({**item.model_dump(), **editable})

    if is_protected(item, quote):
        locked = frozenset(f for f in PROTECTED_LINE_FIELDS if getattr(updated, f) != getattr(item, f))
        if locked:
            msg = f"Line item {item.id} has an approved discount applied; cannot change {sorted(locked)}"
            raise LineItemLocked(msg, item.id, locked)

    return quote.model_copy(update={
        "line_items": [updated if li.id == item.id else li for li in quote.line_items],
    })


def remove_line_item(quote: Quote, line_item_id: str) -> Quote:
    """Delete a line item unless it is protected.

    Raises:
        LineItemNotFound: No such line item.
        LineItemLocked: An approved discount applies to the item.
    """
    item = _get(quote, line_item_id)
    if is_protected(item, quote):
        msg = f"Line item {item.id} has an approved discount applied and cannot be removed"
        raise LineItemLocked(msg, item.id)

    logger.debug("Quote %s: line item %s removed", quote.id, item.id)
    return quote.model_copy(update={
        "line_items": [li for li in quote.line_items if li.id != item.id],
    })
