"""Pydantic schemas for quotes and their line items.

Quotes are immutable snapshots: the calculator and the discount state
machine return new instances via ``model_copy(update=...)`` and never mutate
what they were given.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from src.models.enums import DiscountSource, DiscountStatus, QuoteStatus
from src.schemas.coercion import decimal_or_zero, percentage, positive_int_or
from src.schemas.pricing import AppliedRule, CostLine

Money = Annotated[Decimal, BeforeValidator(decimal_or_zero)]
Percentage = Annotated[Decimal, BeforeValidator(percentage)]

DEFAULT_QUANTITY = 1
DEFAULT_CONTRACT_DURATION = 12

# Fields the calculator owns. Replaced wholesale on every recalculation.
COMPUTED_LINE_FIELDS: frozenset[str] = frozenset({
    "cost_breakdown",
    "applied_rules",
    "subtotal_before_discount",
    "effective_discount_percentage",
    "effective_discount_source",
    "applied_discount_amount",
    "line_subtotal",
    "line_vat_amount",
    "line_grand_total",
})

# Fields that cannot change while an approved discount applies to the item.
PROTECTED_LINE_FIELDS: frozenset[str] = frozenset({
    "job_profile_id",
    "nationality_id",
    "quantity",
    "contract_duration",
})


class LineItem(BaseModel):
    """One priced row of a quote.

    Extra fields (location, skill level, ...) are kept so pricing rules can
    test them as ``line_item.<field>`` facts.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    job_profile_id: str | None = None
    job_profile_title: str | None = None
    nationality_id: str | None = None
    quantity: int = DEFAULT_QUANTITY
    contract_duration: int = DEFAULT_CONTRACT_DURATION

    # Individual discount
    manual_discount_percentage: Percentage = Decimal("0")
    line_discount_status: DiscountStatus = DiscountStatus.NONE
    line_discount_request_notes: str = ""
    required_approver_role_id: str | None = None
    line_discount_approver_id: str | None = None
    line_discount_decision_date: date | None = None
    line_discount_approval_notes: str = ""

    # Stamped when the overall discount is approved; never inferred afterwards
    eligible_for_overall_discount: bool = False

    # Computed by the calculator
    cost_breakdown: list[CostLine] = Field(default_factory=list)
    applied_rules: list[AppliedRule] = Field(default_factory=list)
    subtotal_before_discount: Decimal = Decimal("0")
    effective_discount_percentage: Decimal = Decimal("0")
    effective_discount_source: DiscountSource = DiscountSource.NONE
    applied_discount_amount: Decimal = Decimal("0")
    line_subtotal: Decimal = Decimal("0")
    line_vat_amount: Decimal = Decimal("0")
    line_grand_total: Decimal = Decimal("0")

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v: Any) -> int:
        return positive_int_or(v, DEFAULT_QUANTITY)

    @field_validator("contract_duration", mode="before")
    @classmethod
    def _coerce_duration(cls, v: Any) -> int:
        return positive_int_or(v, DEFAULT_CONTRACT_DURATION)


class QuoteTotals(BaseModel):
    """Quote-level aggregates of all line items."""

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal = Decimal("0")
    overall_discount_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")


class Quote(BaseModel):
    """Aggregate root: line items, discount state, and totals."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    quote_number: str | None = None
    status: QuoteStatus = QuoteStatus.DRAFT
    lead: dict[str, Any] | None = None
    line_items: list[LineItem] = Field(default_factory=list)

    # Overall discount
    overall_discount_percentage: Percentage = Decimal("0")
    discount_status: DiscountStatus = DiscountStatus.NONE
    overall_discount_applied_to_items: list[str] = Field(default_factory=list)
    discount_request_notes: str = ""
    required_overall_approver_role_id: str | None = None
    discount_approver_id: str | None = None
    discount_decision_date: date | None = None
    discount_approval_notes: str = ""

    # Totals
    tax_percentage: Money = Decimal("0")
    subtotal: Decimal = Decimal("0")
    overall_discount_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")

    sent_date: date | None = None

    @field_validator("line_items")
    @classmethod
    def _unique_line_item_ids(cls, items: list[LineItem]) -> list[LineItem]:
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                msg = f"Duplicate line item id: {item.id}"
                raise ValueError(msg)
            seen.add(item.id)
        return items

    def line_item(self, line_item_id: str) -> LineItem | None:
        return next((li for li in self.line_items if li.id == line_item_id), None)

    @property
    def has_pending_discount(self) -> bool:
        return self.discount_status == DiscountStatus.PENDING_APPROVAL or any(
            li.line_discount_status == DiscountStatus.PENDING_APPROVAL for li in self.line_items
        )


class ApproverContext(BaseModel):
    """The acting user, as far as discount decisions care."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    full_name: str | None = None
    max_self_approve_overall_discount_percent: Money = Decimal("0")
    max_self_approve_line_discount_percent: Money = Decimal("0")
