"""Pricing rule engine — smart components and priority-ordered pricing rules.

Pure Python, deterministic. Given reference data and a fact object, produces:
- the cost components selected for the line (keyed by component id)
- the accumulated markup percentage
- the accumulated rule-level discount percentage
- a human-readable explanation trail

Evaluation order:
1. Smart components (components carrying their own conditions)
2. Active pricing rules, highest priority first; a matching rule with
   ``stop_if_matched`` halts everything below it

Components are collected in an id-keyed mapping, so when the same component
is added twice the later write wins (a rule's value override replaces a smart
component's own value, a later rule replaces an earlier one).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from src.models.enums import ComponentSource, ExplanationKind
from src.pricing.conditions import evaluate_conditions
from src.schemas.pricing import (
    AddCostComponentAction,
    AppliedComponent,
    AppliedRule,
    ApplyDiscountAction,
    ApplyMarkupAction,
    CostComponent,
    PricingRule,
    RuleOutcome,
)

logger = logging.getLogger(__name__)


def is_within_validity(from_date: date | None, to_date: date | None, as_of: date) -> bool:
    """Validity-window gate: not before ``from_date``, not after ``to_date``."""
    if from_date is not None and from_date > as_of:
        return False
    if to_date is not None and to_date < as_of:
        return False
    return True


def order_rules(rules: Iterable[PricingRule]) -> list[PricingRule]:
    """Active rules, highest priority first (stable for equal priorities)."""
    return sorted((r for r in rules if r.is_active), key=lambda r: r.priority, reverse=True)


def _apply_smart_components(
    components: Iterable[CostComponent],
    facts: Mapping[str, Any],
    as_of: date,
    selected: dict[str, AppliedComponent],
    trail: list[AppliedRule],
) -> None:
    for component in components:
        if not component.is_smart:
            continue
        if not is_within_validity(component.from_date, component.to_date, as_of):
            logger.debug("Smart component %s outside validity window", component.id)
            continue
        if not evaluate_conditions(component.conditions, facts):
            continue

        logger.debug("Smart component %r matched", component.name)
        selected[component.id] = AppliedComponent(
            component=component,
            applied_value=component.value,
            source=ComponentSource.SMART,
        )
        trail.append(AppliedRule(
            kind=ExplanationKind.SMART_COMPONENT,
            source_id=component.id,
            name=f"Smart Component: {component.name}",
            explanation="Auto-applied based on its own conditions.",
        ))


def evaluate_rules(
    rules: Iterable[PricingRule],
    facts: Mapping[str, Any],
    cost_components: Iterable[CostComponent] = (),
    as_of: date | None = None,
) -> RuleOutcome:
    """Run smart components and pricing rules against ``facts``.

    Args:
        rules: Pricing rules in any order; inactive ones are ignored.
        facts: Nested fact mapping (``line_item.*``, ``lead.*``, ...).
        cost_components: Component catalogue used to resolve
            ``add_cost_component`` actions and to find smart components.
        as_of: Date used for validity windows. Defaults to today.

    Returns:
        RuleOutcome with selected components, markup, rule discount and trail.
    """
    as_of = as_of or date.today()
    catalogue = {c.id: c for c in cost_components if c.is_active}

    selected: dict[str, AppliedComponent] = {}
    trail: list[AppliedRule] = []
    markup = Decimal("0")
    discount = Decimal("0")

    _apply_smart_components(catalogue.values(), facts, as_of, selected, trail)

    for rule in order_rules(rules):
        if not is_within_validity(rule.from_date, rule.to_date, as_of):
            logger.debug("Rule %r skipped: outside validity window (%s..%s)", rule.name, rule.from_date, rule.to_date)
            continue
        if not evaluate_conditions(rule.conditions, facts):
            continue

        logger.debug("Rule %r matched (priority %d)", rule.name, rule.priority)
        trail.append(AppliedRule(
            kind=ExplanationKind.RULE,
            source_id=rule.id,
            name=f"Rule: {rule.name or 'Unknown Rule'}",
            explanation=f"Applied rule: {rule.name or 'Unknown Rule'} (priority {rule.priority}). Conditions met.",
        ))

        for action in rule.actions:
            if isinstance(action, AddCostComponentAction):
                if action.params.component_id is None:
                    logger.warning("Rule %r adds a cost component without component_id — ignored", rule.name)
                    continue
                component = catalogue.get(action.params.component_id)
                if component is None:
                    logger.warning(
                        "Rule %r references unknown cost component %s",
                        rule.name,
                        action.params.component_id,
                    )
                    continue
                value = action.params.value if action.params.value is not None else component.value
                selected[component.id] = AppliedComponent(
                    component=component,
                    applied_value=value,
                    source=ComponentSource.RULE,
                )
            elif isinstance(action, ApplyMarkupAction):
                markup += action.params.value
            elif isinstance(action, ApplyDiscountAction):
                discount += action.params.value
            else:
                logger.warning("Unknown action type %r in rule %r — ignored", action.type, rule.name)

        if rule.stop_if_matched:
            logger.info("Rule %r triggered stop_if_matched, halting rule evaluation", rule.name)
            trail.append(AppliedRule(
                kind=ExplanationKind.HALT,
                source_id=rule.id,
                name="Halt",
                explanation="Stopped further rule evaluation.",
            ))
            break

    return RuleOutcome(
        components=selected,
        markup_percentage=markup,
        discount_percentage=discount,
        applied_rules=trail,
    )
