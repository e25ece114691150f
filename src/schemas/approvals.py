"""Pydantic schemas for discount approval: matrix rules, requests, audit entries."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import ApprovalDiscountType, DiscountTarget
from src.schemas.events import EventType


class ApprovalMatrixRule(BaseModel):
    """Maps a discount band ``(min, max]`` to the role that must approve it."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    discount_type: ApprovalDiscountType
    min_percentage: Decimal = Decimal("0")
    max_percentage: Decimal
    approver_role_id: str
    priority: int = 0
    is_active: bool = True


class ApprovalMetadata(BaseModel):
    """Context shown to approvers in the notification."""

    model_config = ConfigDict(frozen=True)

    quote_id: str | None = None
    quote_number: str | None = None
    discount_type: DiscountTarget
    discount_percentage: Decimal
    line_item_id: str | None = None
    line_item_title: str | None = None


class ApprovalRequest(BaseModel):
    """Payload handed to the approval/notification service."""

    model_config = ConfigDict(frozen=True)

    entity_type: str                    # "Quote" or "QuoteLineItem"
    entity_id: str
    requestor_id: str | None = None
    requestor_name: str | None = None
    notes: str = ""
    required_role_id: str | None = None
    metadata: ApprovalMetadata | None = None


class ApprovalResult(BaseModel):
    """Outcome of routing an approval request. Never an exception."""

    model_config = ConfigDict(frozen=True)

    success: bool
    reason: str | None = None


class AuditEntry(BaseModel):
    """Exactly one of these is produced per discount or quote transition."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    action: str                         # e.g. "overall_discount_request"
    entity_type: str                    # "Quote" or "QuoteLineItem"
    entity_id: str | None = None
    entity_name: str | None = None
    old_values: dict[str, Any] = Field(default_factory=dict)
    new_values: dict[str, Any] = Field(default_factory=dict)
    actor_id: str | None = None
    parent_id: str | None = None
    parent_type: str | None = None
