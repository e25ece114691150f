"""Line item cost calculator.

Pure Python, Decimal arithmetic. For one quote line item:
- resolves which discount applies (individual vs overall vs none)
- runs smart components and pricing rules against the line's facts
- prices the base cost and every selected component
- applies the effective discount and VAT per cost line
- aggregates everything into the line totals

Discount precedence (first match wins):
1. Approved individual line discount > 0
2. Approved overall quote discount > 0, only for lines stamped eligible
   when that overall discount was approved
3. No discount

Money amounts are rounded to cents per cost line; line totals are sums of the
rounded parts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.models.enums import CalculationMethod, ComponentSource, DiscountSource, DiscountStatus, Periodicity
from src.pricing.rules import evaluate_rules
from src.schemas.coercion import decimal_or_zero
from src.schemas.pricing import AppliedComponent, CostComponent, CostLine, JobProfile, LookupData, Nationality
from src.schemas.quotes import COMPUTED_LINE_FIELDS, LineItem, Quote

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _to_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ── Discount resolution ──────────────────────────────────────────────


def resolve_effective_discount(line_item: LineItem, quote: Quote | None) -> tuple[Decimal, DiscountSource]:
    """Return the single discount percentage that applies to ``line_item``."""
    if (
        line_item.line_discount_status == DiscountStatus.APPROVED
        and line_item.manual_discount_percentage > 0
    ):
        return line_item.manual_discount_percentage, DiscountSource.LINE_ITEM

    if (
        quote is not None
        and quote.discount_status == DiscountStatus.APPROVED
        and quote.overall_discount_percentage > 0
        and line_item.eligible_for_overall_discount is True
    ):
        return quote.overall_discount_percentage, DiscountSource.OVERALL

    return _ZERO, DiscountSource.NONE


# ── Facts ────────────────────────────────────────────────────────────


def build_facts(
    line_item: LineItem,
    quote: Quote | None,
    job_profile: JobProfile,
    nationality: Nationality | None,
) -> dict[str, Any]:
    """Build the fact object pricing rules are evaluated against."""
    line_facts = line_item.model_dump(mode="json", exclude=set(COMPUTED_LINE_FIELDS))
    line_facts.update({
        "quantity": line_item.quantity,
        "contract_duration": line_item.contract_duration,
        "job_title": job_profile.job_title,
        "job_category": job_profile.category,
    })
    if nationality is not None:
        line_facts["nationality"] = nationality.name

    facts: dict[str, Any] = {
        "line_item": line_facts,
        "base_cost": job_profile.base_cost,
    }
    if quote is not None and quote.lead:
        facts["lead"] = dict(quote.lead)
    return facts


# ── Components ───────────────────────────────────────────────────────


def merge_components(
    rule_components: Mapping[str, AppliedComponent],
    default_components: Iterable[CostComponent],
) -> list[AppliedComponent]:
    """Union of rule-selected and default components, one entry per id.

    Rule-sourced entries (including smart components) take precedence over a
    default component with the same id, so a rule's value override is kept.
    Rule-sourced entries come first, then the remaining defaults.
    """
    merged: dict[str, AppliedComponent] = dict(rule_components)
    for component in default_components:
        merged.setdefault(
            component.id,
            AppliedComponent(component=component, applied_value=component.value, source=ComponentSource.DEFAULT),
        )
    return list(merged.values())


def _default_components(
    job_profile: JobProfile,
    nationality: Nationality | None,
    lookup: LookupData,
) -> list[CostComponent]:
    ids = list(job_profile.default_cost_components)
    if nationality is not None:
        ids.extend(nationality.default_cost_components)

    components: list[CostComponent] = []
    for component_id in ids:
        component = lookup.component(component_id)
        if component is None or not component.is_active:
            logger.debug("Default cost component %s not found or inactive — skipped", component_id)
            continue
        components.append(component)
    return components


# ── Cost lines ───────────────────────────────────────────────────────


def _price(
    raw_subtotal: Decimal,
    effective_discount: Decimal,
    vat_applicable: bool,
    vat_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal, Decimal, Decimal]:
    """Return (subtotal, discount_amount, after_discount, vat_amount, grand_total).

    Discount and VAT are computed on unrounded amounts; each stored amount is
    then rounded once, and after_discount and grand_total are derived from the
    rounded parts.
    """
    raw_discount = raw_subtotal * effective_discount / _HUNDRED
    raw_vat = (raw_subtotal - raw_discount) * vat_rate / _HUNDRED if vat_applicable else _ZERO
    subtotal = _to_money(raw_subtotal)
    discount_amount = _to_money(raw_discount)
    vat_amount = _to_money(raw_vat)
    after_discount = subtotal - discount_amount
    return subtotal, discount_amount, after_discount, vat_amount, after_discount + vat_amount


def _base_cost_line(
    job_profile: JobProfile,
    final_base_monthly: Decimal,
    quantity: int,
    duration: int,
    effective_discount: Decimal,
    vat_rate: Decimal,
) -> CostLine:
    subtotal, discount_amount, after_discount, vat_amount, grand_total = _price(
        final_base_monthly * duration * quantity, effective_discount, True, vat_rate,
    )
    return CostLine(
        is_base_cost=True,
        name=f"Base Monthly Cost: {job_profile.job_title}",
        periodicity=Periodicity.MONTHLY,
        unit_value=final_base_monthly,
        quantity=quantity,
        contract_duration=duration,
        subtotal=subtotal,
        discount_amount=discount_amount,
        after_discount=after_discount,
        vat_applicable=True,
        vat_rate=vat_rate,
        vat_amount=vat_amount,
        grand_total=grand_total,
        original_base_cost_per_unit=job_profile.base_cost,
    )


def _component_cost_line(
    applied: AppliedComponent,
    base_cost: Decimal,
    quantity: int,
    duration: int,
    effective_discount: Decimal,
    vat_rate: Decimal,
) -> CostLine:
    component = applied.component
    unit_value = applied.applied_value
    if component.calculation_method == CalculationMethod.PERCENTAGE_OF_BASE:
        unit_value = base_cost * unit_value / _HUNDRED

    periods = duration if component.periodicity == Periodicity.MONTHLY else 1
    subtotal, discount_amount, after_discount, vat_amount, grand_total = _price(
        unit_value * periods * quantity, effective_discount, component.vat_applicable, vat_rate,
    )
    return CostLine(
        is_base_cost=False,
        component_id=component.id,
        name=component.name,
        source=applied.source,
        calculation_method=component.calculation_method,
        periodicity=component.periodicity,
        unit_value=unit_value,
        quantity=quantity,
        contract_duration=duration,
        subtotal=subtotal,
        discount_amount=discount_amount,
        after_discount=after_discount,
        vat_applicable=component.vat_applicable,
        vat_rate=vat_rate if component.vat_applicable else _ZERO,
        vat_amount=vat_amount,
        grand_total=grand_total,
    )


# ── Public API ───────────────────────────────────────────────────────


def calculate_line_item_cost(
    line_item: LineItem,
    quote: Quote | None,
    vat_rate: Decimal | float | str,
    lookup: LookupData,
    as_of: date | None = None,
) -> LineItem:
    """Price one line item and return a new LineItem with computed fields.

    Args:
        line_item: The line to price. Never mutated.
        quote: Owning quote (overall discount state, lead facts). May be None.
        vat_rate: VAT percentage, e.g. 5 for 5%.
        lookup: Job profiles, components, nationalities and pricing rules.
        as_of: Date for rule validity windows. Defaults to today.

    Returns:
        A copy of ``line_item`` with every computed field replaced, or
        ``line_item`` itself when its job profile cannot be resolved.
    """
    job_profile = lookup.job_profile(line_item.job_profile_id)
    if job_profile is None:
        logger.debug("Line item %s: job profile %s not found — left unpriced", line_item.id, line_item.job_profile_id)
        return line_item

    vat = decimal_or_zero(vat_rate)
    nationality = lookup.nationality(line_item.nationality_id)
    effective_discount, discount_source = resolve_effective_discount(line_item, quote)

    facts = build_facts(line_item, quote, job_profile, nationality)
    outcome = evaluate_rules(lookup.pricing_rules, facts, lookup.cost_components, as_of=as_of)
    components = merge_components(outcome.components, _default_components(job_profile, nationality, lookup))

    quantity = line_item.quantity
    duration = line_item.contract_duration
    final_base_monthly = (
        job_profile.base_cost
        * (1 + outcome.markup_percentage / _HUNDRED)
        * (1 - outcome.discount_percentage / _HUNDRED)
    )

    breakdown = [_base_cost_line(job_profile, final_base_monthly, quantity, duration, effective_discount, vat)]
    breakdown.extend(
        _component_cost_line(applied, job_profile.base_cost, quantity, duration, effective_discount, vat)
        for applied in components
    )

    subtotal_before_discount = sum((line.subtotal for line in breakdown), _ZERO)
    applied_discount = sum((line.discount_amount for line in breakdown), _ZERO)
    vat_amount = sum((line.vat_amount for line in breakdown), _ZERO)
    line_subtotal = subtotal_before_discount - applied_discount

    return line_item.model_copy(update={
        "cost_breakdown": breakdown,
        "applied_rules": outcome.applied_rules,
        "subtotal_before_discount": subtotal_before_discount,
        "effective_discount_percentage": effective_discount,
        "effective_discount_source": discount_source,
        "applied_discount_amount": applied_discount,
        "line_subtotal": line_subtotal,
        "line_vat_amount": vat_amount,
        "line_grand_total": line_subtotal + vat_amount,
    })
