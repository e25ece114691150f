"""Pricing engine — conditions, pricing rules, line item costs and quote totals."""

from src.pricing.calculator import calculate_line_item_cost, resolve_effective_discount
from src.pricing.conditions import Operator, evaluate_conditions
from src.pricing.rules import evaluate_rules
from src.pricing.settings import SystemSettingsCache
from src.pricing.totals import calculate_quote_totals, recalculate_quote

__all__ = [
    "evaluate_conditions",
    "evaluate_rules",
    "calculate_line_item_cost",
    "resolve_effective_discount",
    "calculate_quote_totals",
    "recalculate_quote",
    "Operator",
    "SystemSettingsCache",
]
