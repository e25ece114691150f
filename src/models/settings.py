"""SystemSettingRecord model — key/value settings read by the pricing engine."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class SystemSettingRecord(TimestampMixin, Base):
    """One setting, e.g. ``vat_rate`` = "5" or ``default_currency`` = "AED"."""

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(String(255))

    def __repr__(self) -> str:
        return f"<SystemSettingRecord {self.key}={self.value!r}>"
