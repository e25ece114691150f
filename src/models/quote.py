"""QuoteRecord model — persisted quote snapshot.

The full quote (line items, discount state, computed totals) lives in a
JSONB snapshot; a few columns are copied out for listing and filtering.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class QuoteRecord(TimestampMixin, Base):
    """One quote, stored as its latest recalculated snapshot."""

    __tablename__ = "quotes"

    # Id used by the CRM; distinct from the row's UUID primary key
    quote_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    quote_number: Mapped[str | None] = mapped_column(String(50), index=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    discount_status: Mapped[str] = mapped_column(String(30), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    snapshot: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<QuoteRecord quote_id={self.quote_id} status={self.status}>"
