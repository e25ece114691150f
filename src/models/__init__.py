"""SQLAlchemy ORM models for the quote store.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from src.models.audit import AuditLog
from src.models.base import Base
from src.models.quote import QuoteRecord
from src.models.settings import SystemSettingRecord

__all__ = [
    "Base",
    "AuditLog",
    "QuoteRecord",
    "SystemSettingRecord",
]
