"""SystemEvent schema — the event type that flows through the audit bus.

Every quote and discount transition emits a SystemEvent. Subscribers
(the audit logger, notification hooks) consume these events asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Quote lifecycle
    QUOTE_SENT = "quote.sent"

    # Discount transitions
    DISCOUNT_REQUESTED = "discount.requested"
    DISCOUNT_SELF_APPROVED = "discount.self_approved"
    DISCOUNT_APPROVED = "discount.approved"
    DISCOUNT_REJECTED = "discount.rejected"
    DISCOUNT_CANCELLED = "discount.cancelled"
    DISCOUNT_WITHDRAWN = "discount.withdrawn"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Core event that flows through the audit bus.

    Immutable once created. Consumed by:
    - audit subscriber → writes to audit_log table
    - any notification hook registered at startup
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context
    quote_id: str | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
