"""Tests for quote totals aggregation and whole-quote recalculation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from src.pricing.totals import calculate_quote_totals, recalculate_quote
from src.schemas.pricing import JobProfile, LookupData
from src.schemas.quotes import LineItem, Quote

AS_OF = date(2026, 6, 15)

LOOKUP = LookupData(job_profiles=[
    JobProfile(id="jp-driver", job_title="Driver", base_cost=Decimal("1000")),
    JobProfile(id="jp-cleaner", job_title="Cleaner", base_cost=Decimal("800")),
])


def _make_quote(**overrides) -> Quote:
    data = {
        "id": "q-1",
        "line_items": [
            {"id": "li-1", "job_profile_id": "jp-driver", "quantity": 2, "contract_duration": 12},
            {
                "id": "li-2",
                "job_profile_id": "jp-cleaner",
                "quantity": 1,
                "contract_duration": 6,
                "manual_discount_percentage": 10,
                "line_discount_status": "approved",
            },
        ],
    }
    data.update(overrides)
    return Quote.model_validate(data)


class TestCalculateQuoteTotals:
    def test_empty(self):
        totals = calculate_quote_totals([])
        assert totals.subtotal == Decimal("0")
        assert totals.overall_discount_amount == Decimal("0")
        assert totals.tax_amount == Decimal("0")
        assert totals.total_amount == Decimal("0")

    def test_sums_line_fields(self):
        items = [
            LineItem(
                id="a",
                subtotal_before_discount=Decimal("100"),
                applied_discount_amount=Decimal("10"),
                line_vat_amount=Decimal("4.50"),
                line_grand_total=Decimal("94.50"),
            ),
            LineItem(
                id="b",
                subtotal_before_discount=Decimal("50"),
                line_vat_amount=Decimal("2.50"),
                line_grand_total=Decimal("52.50"),
            ),
        ]
        totals = calculate_quote_totals(items)
        assert totals.subtotal == Decimal("150")
        assert totals.overall_discount_amount == Decimal("10")
        assert totals.tax_amount == Decimal("7.00")
        assert totals.total_amount == Decimal("147.00")


class TestRecalculateQuote:
    def test_totals_written_to_quote(self):
        quote = recalculate_quote(_make_quote(), Decimal("5"), LOOKUP, as_of=AS_OF)
        # 24000 + 4800 before discount; 480 off the second line
        assert quote.subtotal == Decimal("28800")
        assert quote.overall_discount_amount == Decimal("480")
        assert quote.tax_amount == Decimal("1416")
        assert quote.total_amount == Decimal("29736")
        assert quote.tax_percentage == Decimal("5")

    def test_totals_identity(self):
        quote = recalculate_quote(_make_quote(), "5", LOOKUP, as_of=AS_OF)
        assert quote.subtotal - quote.overall_discount_amount + quote.tax_amount == quote.total_amount

    def test_every_line_priced(self):
        quote = recalculate_quote(_make_quote(), 5, LOOKUP, as_of=AS_OF)
        assert all(item.cost_breakdown for item in quote.line_items)
        assert [item.id for item in quote.line_items] == ["li-1", "li-2"]

    def test_input_quote_untouched(self):
        original = _make_quote()
        recalculate_quote(original, 5, LOOKUP, as_of=AS_OF)
        assert original.total_amount == Decimal("0")
        assert original.line_items[0].cost_breakdown == []

    def test_empty_quote(self):
        quote = recalculate_quote(Quote(id="q-empty"), 5, LOOKUP, as_of=AS_OF)
        assert quote.total_amount == Decimal("0")
