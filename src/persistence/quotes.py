"""Quote repository — loads and stores Quote snapshots in the quotes table."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.quote import QuoteRecord
from src.schemas.quotes import Quote

logger = logging.getLogger(__name__)


def quote_from_record(record: QuoteRecord) -> Quote:
    return Quote.model_validate(record.snapshot)


class QuoteRepository:
    """Async get/save over the quotes table.

    Each call opens its own session from ``session_factory``. Last write wins;
    concurrent edits of the same quote are not coordinated here.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, quote_id: str) -> Quote | None:
        async with self._session_factory() as db:
            result = await db.execute(select(QuoteRecord).where(QuoteRecord.quote_id == quote_id))
            record = result.scalar_one_or_none()
        if record is None:
            return None
        return quote_from_record(record)

    async def save(self, quote: Quote) -> Quote:
        """Insert or update the snapshot for ``quote.id``.

        Raises:
            ValueError: The quote has no id.
        """
        if not quote.id:
            msg = "Cannot save a quote without an id"
            raise ValueError(msg)

        snapshot = quote.model_dump(mode="json")
        async with self._session_factory() as db:
            result = await db.execute(select(QuoteRecord).where(QuoteRecord.quote_id == quote.id))
            record = result.scalar_one_or_none()
            if record is None:
                record = QuoteRecord(quote_id=quote.id)
                db.add(record)

            record.quote_number = quote.quote_number
            record.status = quote.status.value
            record.discount_status = quote.discount_status.value
            record.total_amount = quote.total_amount
            record.snapshot = snapshot
            await db.commit()

        logger.debug("Quote %s saved (status=%s, total=%s)", quote.id, quote.status.value, quote.total_amount)
        return quote
