"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization and PostgreSQL native enum types.
"""

from __future__ import annotations

from enum import Enum


class DiscountStatus(str, Enum):
    """Lifecycle of a discount, overall quote or single line item."""

    NONE = "none"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuoteStatus(str, Enum):
    """Quote lifecycle as seen by the sales team."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class DiscountTarget(str, Enum):
    """Which discount a transition acts on."""

    OVERALL = "overall"
    LINE_ITEM = "line_item"


class ApprovalDiscountType(str, Enum):
    """Discount type as stored on approval-matrix rules."""

    OVERALL_QUOTE = "overall_quote"
    LINE_ITEM = "line_item"


class CalculationMethod(str, Enum):
    """How a cost component's value is turned into a per-unit amount."""

    FLAT = "flat"
    PERCENTAGE_OF_BASE = "percentage_of_base"


class Periodicity(str, Enum):
    """Whether a component is charged every month or once per unit."""

    MONTHLY = "monthly"
    ONE_TIME = "one_time"


class DiscountSource(str, Enum):
    """Where a line item's effective discount came from."""

    NONE = "none"
    LINE_ITEM = "line_item"
    OVERALL = "overall"


class ComponentSource(str, Enum):
    """How a cost component ended up on a line item."""

    DEFAULT = "default"
    RULE = "rule"
    SMART = "smart"


class ExplanationKind(str, Enum):
    """Entry types in the pricing explanation trail."""

    SMART_COMPONENT = "smart_component"
    RULE = "rule"
    HALT = "halt"
