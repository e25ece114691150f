"""AuditLog model — append-only trail of quote and discount transitions.

Every transition emits a SystemEvent which is persisted here.
No updates or deletes.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_log"

    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str | None] = mapped_column(String(100), comment="e.g. overall_discount_request")

    # Affected entity; line item entries point at their quote via parent_id
    entity_type: Mapped[str | None] = mapped_column(String(50), comment="Quote or QuoteLineItem")
    entity_id: Mapped[str | None] = mapped_column(String(100), index=True)
    entity_name: Mapped[str | None] = mapped_column(String(255))
    parent_id: Mapped[str | None] = mapped_column(String(100), index=True)

    actor_id: Mapped[str | None] = mapped_column(String(100), comment="User ID or 'system'")
    actor_role: Mapped[str | None] = mapped_column(String(50))

    changes_summary: Mapped[str | None] = mapped_column(Text)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<AuditLog event={self.event_type} entity={self.entity_type}:{self.entity_id}>"
