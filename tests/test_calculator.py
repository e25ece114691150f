"""Tests for the line item cost calculator.

Covers:
- Reference examples (no discount; 10% discount with 5% VAT)
- Discount precedence and eligibility isolation
- Component pricing: flat, percentage of base, monthly vs one-time, VAT flag
- Markup / rule discount on the base cost
- Rule-sourced components overriding defaults
- Facts available to rules
- Idempotence, aggregation identity, input coercion, missing references
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from src.models.enums import ComponentSource, DiscountSource, DiscountStatus
from src.pricing.calculator import calculate_line_item_cost, resolve_effective_discount
from src.schemas.pricing import CostComponent, JobProfile, LookupData, Nationality, PricingRule
from src.schemas.quotes import LineItem, Quote

AS_OF = date(2026, 6, 15)
VAT = Decimal("5")


def _make_lookup(
    components: list[CostComponent] | None = None,
    rules: list[PricingRule] | None = None,
    profile_defaults: list[str] | None = None,
    nationality_defaults: list[str] | None = None,
) -> LookupData:
    return LookupData(
        job_profiles=[JobProfile(
            id="jp-driver",
            job_title="Driver",
            base_cost=Decimal("1000"),
            default_cost_components=profile_defaults or [],
            category="Transport",
        )],
        nationalities=[Nationality(id="nat-in", name="Indian", default_cost_components=nationality_defaults or [])],
        cost_components=components or [],
        pricing_rules=rules or [],
    )


def _make_item(**overrides) -> LineItem:
    data = {
        "id": "li-1",
        "job_profile_id": "jp-driver",
        "job_profile_title": "Driver",
        "nationality_id": "nat-in",
        "quantity": 2,
        "contract_duration": 12,
    }
    data.update(overrides)
    return LineItem.model_validate(data)


def _make_quote(**overrides) -> Quote:
    return Quote.model_validate({"id": "q-1", "quote_number": "Q-0001", **overrides})


def _component(component_id: str, value: str, **extra) -> CostComponent:
    return CostComponent.model_validate({"id": component_id, "name": component_id.title(), "value": value, **extra})


def _calc(item: LineItem, lookup: LookupData | None = None, quote: Quote | None = None, vat=VAT) -> LineItem:
    return calculate_line_item_cost(item, quote, vat, lookup or _make_lookup(), as_of=AS_OF)


class TestReferenceExamples:
    def test_no_discount(self):
        """1000/month × 12 months × 2 units, 5% VAT."""
        result = _calc(_make_item())
        assert result.subtotal_before_discount == Decimal("24000")
        assert result.applied_discount_amount == Decimal("0")
        assert result.line_vat_amount == Decimal("1200")
        assert result.line_grand_total == Decimal("25200")

    def test_ten_percent_discount(self):
        item = _make_item(manual_discount_percentage=10, line_discount_status="approved")
        result = _calc(item)
        assert result.effective_discount_percentage == Decimal("10")
        assert result.applied_discount_amount == Decimal("2400")
        assert result.line_subtotal == Decimal("21600")
        assert result.line_vat_amount == Decimal("1080")
        assert result.line_grand_total == Decimal("22680")

    def test_base_cost_line(self):
        base = _calc(_make_item()).cost_breakdown[0]
        assert base.is_base_cost is True
        assert base.name == "Base Monthly Cost: Driver"
        assert base.original_base_cost_per_unit == Decimal("1000")
        assert base.vat_applicable is True


class TestDiscountPrecedence:
    def test_individual_beats_overall(self):
        item = _make_item(
            manual_discount_percentage=10,
            line_discount_status="approved",
            eligible_for_overall_discount=True,
        )
        quote = _make_quote(overall_discount_percentage=20, discount_status="approved")
        result = _calc(item, quote=quote)
        assert result.effective_discount_percentage == Decimal("10")
        assert result.effective_discount_source == DiscountSource.LINE_ITEM

    def test_overall_applies_to_eligible_item(self):
        item = _make_item(eligible_for_overall_discount=True)
        quote = _make_quote(overall_discount_percentage=20, discount_status="approved")
        result = _calc(item, quote=quote)
        assert result.effective_discount_percentage == Decimal("20")
        assert result.effective_discount_source == DiscountSource.OVERALL
        assert result.applied_discount_amount == Decimal("4800")

    def test_item_added_after_approval_gets_nothing(self):
        late_item = _make_item(id="li-late")
        quote = _make_quote(
            overall_discount_percentage=20,
            discount_status="approved",
            overall_discount_applied_to_items=["li-1"],
        )
        result = _calc(late_item, quote=quote)
        assert late_item.eligible_for_overall_discount is False
        assert result.effective_discount_percentage == Decimal("0")
        assert result.effective_discount_source == DiscountSource.NONE

    @pytest.mark.parametrize("status", ["none", "pending_approval", "rejected"])
    def test_unapproved_individual_discount_ignored(self, status):
        item = _make_item(manual_discount_percentage=15, line_discount_status=status)
        assert resolve_effective_discount(item, None) == (Decimal("0"), DiscountSource.NONE)

    @pytest.mark.parametrize("status", ["none", "pending_approval", "rejected"])
    def test_unapproved_overall_discount_ignored(self, status):
        item = _make_item(eligible_for_overall_discount=True)
        quote = _make_quote(overall_discount_percentage=20, discount_status=status)
        assert resolve_effective_discount(item, quote)[0] == Decimal("0")

    def test_approved_zero_individual_falls_through_to_overall(self):
        item = _make_item(line_discount_status="approved", eligible_for_overall_discount=True)
        quote = _make_quote(overall_discount_percentage=20, discount_status="approved")
        assert resolve_effective_discount(item, quote) == (Decimal("20"), DiscountSource.OVERALL)


class TestComponents:
    def test_flat_monthly_component(self):
        lookup = _make_lookup([_component("visa", "100")], profile_defaults=["visa"])
        line = _calc(_make_item(), lookup).cost_breakdown[1]
        assert line.subtotal == Decimal("2400")
        assert line.vat_amount == Decimal("0")
        assert line.source == ComponentSource.DEFAULT

    def test_one_time_percentage_of_base(self):
        medical = _component("medical", "10", calculation_method="percentage_of_base", periodicity="one_time")
        lookup = _make_lookup([medical], nationality_defaults=["medical"])
        line = _calc(_make_item(), lookup).cost_breakdown[1]
        assert line.unit_value == Decimal("100")
        assert line.subtotal == Decimal("200")

    def test_vat_applicable_component(self):
        lookup = _make_lookup([_component("visa", "100", vat_applicable=True)], profile_defaults=["visa"])
        result = _calc(_make_item(), lookup)
        assert result.cost_breakdown[1].vat_amount == Decimal("120")
        assert result.line_vat_amount == Decimal("1320")

    def test_discount_applies_to_components(self):
        lookup = _make_lookup([_component("visa", "100")], profile_defaults=["visa"])
        item = _make_item(manual_discount_percentage=10, line_discount_status="approved")
        result = _calc(item, lookup)
        assert result.cost_breakdown[1].discount_amount == Decimal("240")
        assert result.applied_discount_amount == Decimal("2640")

    def test_missing_default_component_skipped(self):
        lookup = _make_lookup(profile_defaults=["ghost"])
        assert len(_calc(_make_item(), lookup).cost_breakdown) == 1

    def test_inactive_default_component_skipped(self):
        lookup = _make_lookup([_component("visa", "100", is_active=False)], profile_defaults=["visa"])
        assert len(_calc(_make_item(), lookup).cost_breakdown) == 1

    def test_profile_and_nationality_share_component_once(self):
        lookup = _make_lookup([_component("visa", "100")], profile_defaults=["visa"], nationality_defaults=["visa"])
        assert len(_calc(_make_item(), lookup).cost_breakdown) == 2


class TestRuleEffects:
    def test_markup_raises_base_but_not_percentage_components(self):
        medical = _component("medical", "10", calculation_method="percentage_of_base", periodicity="one_time")
        rule = PricingRule.model_validate({
            "id": "r-markup",
            "name": "Peak season",
            "actions": [{"type": "apply_markup_percentage", "params": {"value": 10}}],
        })
        lookup = _make_lookup([medical], [rule], profile_defaults=["medical"])
        result = _calc(_make_item(), lookup)
        assert result.cost_breakdown[0].subtotal == Decimal("26400")
        assert result.cost_breakdown[1].subtotal == Decimal("200")

    def test_rule_discount_lowers_base(self):
        rule = PricingRule.model_validate({
            "id": "r-volume",
            "actions": [{"type": "apply_discount_percentage", "params": {"value": 10}}],
        })
        result = _calc(_make_item(), _make_lookup(rules=[rule]))
        assert result.subtotal_before_discount == Decimal("21600")
        assert result.applied_discount_amount == Decimal("0")

    def test_rule_component_overrides_default(self):
        rule = PricingRule.model_validate({
            "id": "r-visa",
            "actions": [{"type": "add_cost_component", "params": {"component_id": "visa", "value": 50}}],
        })
        lookup = _make_lookup([_component("visa", "100"), _component("ppe", "20")], [rule], profile_defaults=["ppe", "visa"])
        breakdown = _calc(_make_item(), lookup).cost_breakdown
        assert [line.component_id for line in breakdown[1:]] == ["visa", "ppe"]
        assert breakdown[1].unit_value == Decimal("50")
        assert breakdown[1].source == ComponentSource.RULE

    def test_applied_rules_trail_copied(self):
        rule = PricingRule.model_validate({"id": "r-1", "name": "Always"})
        result = _calc(_make_item(), _make_lookup(rules=[rule]))
        assert [entry.source_id for entry in result.applied_rules] == ["r-1"]


class TestFacts:
    def _rule_on(self, fact: str, value) -> PricingRule:
        return PricingRule.model_validate({
            "id": "r-fact",
            "conditions": {"all": [{"fact": fact, "operator": "equal", "value": value}]},
            "actions": [{"type": "apply_markup_percentage", "params": {"value": 50}}],
        })

    def _marked_up(self, rule: PricingRule, item: LineItem | None = None, quote: Quote | None = None) -> bool:
        result = _calc(item or _make_item(), _make_lookup(rules=[rule]), quote=quote)
        return result.subtotal_before_discount == Decimal("36000")

    def test_nationality_name(self):
        assert self._marked_up(self._rule_on("line_item.nationality", "Indian"))

    def test_job_title_and_category(self):
        assert self._marked_up(self._rule_on("line_item.job_title", "Driver"))
        assert self._marked_up(self._rule_on("line_item.job_category", "Transport"))

    def test_extra_line_item_field(self):
        assert self._marked_up(self._rule_on("line_item.location", "Dubai"), _make_item(location="Dubai"))

    def test_lead_fact(self):
        quote = _make_quote(lead={"emirate": "Dubai"})
        assert self._marked_up(self._rule_on("lead.emirate", "Dubai"), quote=quote)

    def test_lead_missing_without_quote(self):
        assert not self._marked_up(self._rule_on("lead.emirate", "Dubai"))

    def test_computed_fields_not_facts(self):
        priced = _calc(_make_item())
        assert not self._marked_up(self._rule_on("line_item.line_grand_total", "25200.00"), priced)


class TestPurity:
    def test_idempotent(self):
        lookup = _make_lookup([_component("visa", "100")], profile_defaults=["visa"])
        item = _make_item(manual_discount_percentage=7, line_discount_status="approved")
        assert _calc(item, lookup) == _calc(item, lookup)

    def test_recalculating_priced_item_replaces_computed_fields(self):
        lookup = _make_lookup([_component("visa", "100")], profile_defaults=["visa"])
        once = _calc(_make_item(), lookup)
        assert _calc(once, lookup) == once
        assert len(once.cost_breakdown) == 2

    def test_input_not_mutated(self):
        item = _make_item()
        _calc(item)
        assert item.cost_breakdown == []
        assert item.line_grand_total == Decimal("0")

    def test_unknown_job_profile_returns_input(self):
        item = _make_item(job_profile_id="jp-missing")
        assert _calc(item) is item

    def test_missing_nationality_still_prices(self):
        result = _calc(_make_item(nationality_id="nat-missing"))
        assert result.line_grand_total == Decimal("25200")


class TestAggregation:
    def test_subtotal_plus_vat_equals_grand_total(self):
        components = [
            _component("visa", "333.33", vat_applicable=True),
            _component("medical", "7.5", calculation_method="percentage_of_base", periodicity="one_time"),
        ]
        lookup = _make_lookup(components, profile_defaults=["visa", "medical"])
        item = _make_item(quantity=3, contract_duration=7, manual_discount_percentage="7.25", line_discount_status="approved")
        result = _calc(item, lookup, vat="5")
        assert result.line_subtotal + result.line_vat_amount == result.line_grand_total
        assert result.line_grand_total == sum(line.grand_total for line in result.cost_breakdown)
        for line in result.cost_breakdown:
            assert line.after_discount + line.vat_amount == line.grand_total
            assert line.subtotal.as_tuple().exponent >= -2

    def test_discount_computed_before_rounding(self):
        """1000.004 x 12 = 12000.048; 50% of it is 6000.024, not half of 12000.05."""
        lookup = _make_lookup([_component("visa", "1000.004", vat_applicable=True)], profile_defaults=["visa"])
        item = _make_item(quantity=1, manual_discount_percentage=50, line_discount_status="approved")
        line = _calc(item, lookup).cost_breakdown[1]
        assert line.subtotal == Decimal("12000.05")
        assert line.discount_amount == Decimal("6000.02")
        assert line.after_discount == Decimal("6000.03")
        assert line.vat_amount == Decimal("300.00")
        assert line.grand_total == Decimal("6300.03")


class TestInputCoercion:
    def test_invalid_quantity_defaults_to_one(self):
        assert _calc(_make_item(quantity="lots")).subtotal_before_discount == Decimal("12000")

    def test_zero_duration_defaults_to_twelve(self):
        assert _calc(_make_item(contract_duration=0, quantity=1)).subtotal_before_discount == Decimal("12000")

    def test_string_numbers_parsed(self):
        result = _calc(_make_item(quantity="2", contract_duration="6"))
        assert result.subtotal_before_discount == Decimal("12000")

    def test_discount_clamped(self):
        item = _make_item(manual_discount_percentage=150, line_discount_status="approved")
        result = _calc(item)
        assert result.effective_discount_percentage == Decimal("100")
        assert result.line_grand_total == Decimal("0")
