"""Quote totals — sums line-item results into quote-level amounts."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from src.pricing.calculator import calculate_line_item_cost
from src.schemas.coercion import decimal_or_zero
from src.schemas.pricing import LookupData
from src.schemas.quotes import LineItem, Quote, QuoteTotals


def calculate_quote_totals(line_items: Iterable[LineItem]) -> QuoteTotals:
    """Aggregate already-priced line items. Empty input gives all zeros."""
    subtotal = Decimal("0")
    discount = Decimal("0")
    tax = Decimal("0")
    total = Decimal("0")
    for item in line_items:
        subtotal += item.subtotal_before_discount
        discount += item.applied_discount_amount
        tax += item.line_vat_amount
        total += item.line_grand_total
    return QuoteTotals(
        subtotal=subtotal,
        overall_discount_amount=discount,
        tax_amount=tax,
        total_amount=total,
    )


def recalculate_quote(
    quote: Quote,
    vat_rate: Decimal | float | str,
    lookup: LookupData,
    as_of: date | None = None,
) -> Quote:
    """Reprice every line item and refresh the quote totals.

    Returns a new Quote; ``quote`` is left untouched.
    """
    vat = decimal_or_zero(vat_rate)
    items = [calculate_line_item_cost(item, quote, vat, lookup, as_of=as_of) for item in quote.line_items]
    totals = calculate_quote_totals(items)
    return quote.model_copy(update={
        "line_items": items,
        "tax_percentage": vat,
        **totals.model_dump(),
    })
