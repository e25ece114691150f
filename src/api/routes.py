"""Pricing API — stateless recalculation endpoints.

The caller sends the line item or quote together with the reference data it
should be priced against and gets the recalculated copy back. Nothing is
stored. When ``vat_rate`` is omitted, the VAT rate from the system settings
store applies.
"""

# ruff: noqa: B008
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.config import settings
from src.db.engine import async_session_factory
from src.persistence.settings import SystemSettingsRepository
from src.pricing.calculator import calculate_line_item_cost
from src.pricing.settings import SystemSettingsCache
from src.pricing.totals import recalculate_quote
from src.schemas.pricing import LookupData
from src.schemas.quotes import LineItem, Quote

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["pricing"])

settings_cache = SystemSettingsCache(
    SystemSettingsRepository(async_session_factory).load_all,
    ttl_seconds=settings.pricing.settings_cache_ttl_seconds,
    default_vat_rate=settings.pricing.default_vat_rate,
    default_currency=settings.pricing.default_currency,
)


def get_settings_cache() -> SystemSettingsCache:
    return settings_cache


class LineItemCalculationRequest(BaseModel):
    line_item: LineItem
    quote: Quote | None = None
    vat_rate: Decimal | None = Field(default=None, description="VAT %; system setting when omitted")
    lookup: LookupData = Field(default_factory=LookupData)
    as_of: date | None = None


class QuoteCalculationRequest(BaseModel):
    quote: Quote
    vat_rate: Decimal | None = Field(default=None, description="VAT %; system setting when omitted")
    lookup: LookupData = Field(default_factory=LookupData)
    as_of: date | None = None


async def _vat(requested: Decimal | None, cache: SystemSettingsCache) -> Decimal:
    return await cache.vat_rate() if requested is None else requested


@router.post("/line-items/calculate", response_model=LineItem)
async def calculate_line_item(
    body: LineItemCalculationRequest,
    cache: SystemSettingsCache = Depends(get_settings_cache),
) -> LineItem:
    """Price one line item."""
    vat_rate = await _vat(body.vat_rate, cache)
    return calculate_line_item_cost(body.line_item, body.quote, vat_rate, body.lookup, as_of=body.as_of)


@router.post("/quotes/calculate", response_model=Quote)
async def calculate_quote(
    body: QuoteCalculationRequest,
    cache: SystemSettingsCache = Depends(get_settings_cache),
) -> Quote:
    """Price every line item and refresh the quote totals."""
    quote = recalculate_quote(body.quote, await _vat(body.vat_rate, cache), body.lookup, as_of=body.as_of)
    logger.debug("Quote %s recalculated: total=%s", quote.id, quote.total_amount)
    return quote
