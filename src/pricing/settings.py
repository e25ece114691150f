"""System settings cache — VAT rate and currency from the settings store.

The cache is an explicit object: whoever needs pricing settings receives one,
and whoever edits settings calls ``invalidate()``. A snapshot is refreshed
through the injected loader once it is older than ``ttl_seconds``.

Usage:
    cache = SystemSettingsCache(load_system_settings, ttl_seconds=300)
    vat_rate = await cache.vat_rate()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from decimal import Decimal

from src.schemas.coercion import parse_decimal
from src.schemas.pricing import SystemSetting

logger = logging.getLogger(__name__)

SettingsLoader = Callable[[], Awaitable[Iterable[SystemSetting]]]

VAT_RATE_KEY = "vat_rate"
CURRENCY_KEY = "default_currency"


class SystemSettingsCache:
    """TTL cache over the system settings store."""

    def __init__(
        self,
        loader: SettingsLoader,
        ttl_seconds: float = 300,
        default_vat_rate: Decimal = Decimal("5"),
        default_currency: str = "AED",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._default_vat_rate = default_vat_rate
        self._default_currency = default_currency
        self._clock = clock
        self._values: dict[str, str | None] | None = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        """Drop the snapshot; the next read reloads."""
        self._values = None

    def _is_fresh(self) -> bool:
        return self._values is not None and self._clock() - self._loaded_at < self._ttl

    async def get_all(self) -> dict[str, str | None]:
        """Current settings as a key → value mapping.

        A loader failure keeps serving the last good snapshot (or nothing,
        so callers fall back to defaults).
        """
        if self._is_fresh():
            return dict(self._values or {})

        try:
            rows = await self._loader()
        except Exception:
            logger.exception("Failed to load system settings — serving last known values")
            return dict(self._values or {})

        self._values = {row.key: row.value for row in rows}
        self._loaded_at = self._clock()
        logger.debug("System settings loaded (%d keys)", len(self._values))
        return dict(self._values)

    async def get(self, key: str, default: str | None = None) -> str | None:
        value = (await self.get_all()).get(key)
        return default if value is None else value

    async def vat_rate(self) -> Decimal:
        """VAT percentage; the configured default when missing or not numeric."""
        number = parse_decimal(await self.get(VAT_RATE_KEY))
        if number is None:
            return self._default_vat_rate
        return number

    async def default_currency(self) -> str:
        return await self.get(CURRENCY_KEY) or self._default_currency
