"""Reference price feed with a short-lived cache and a synthetic fallback."""

from __future__ import annotations

import asyncio
import json
import math
import random
import time
from collections.abc import Callable
from typing import Any, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from app.models import PricePoint

DEFAULT_ENDPOINT = "https://www.goldapi.io/api/XAU/USD"

# Anything below this is an epoch in seconds rather than milliseconds.
_MILLIS_THRESHOLD = 1_000_000_000_000


class PriceFeedError(RuntimeError):
    """Raised by a feed adapter when no usable price could be read."""


class PriceFeed(Protocol):
    async def fetch(self) -> PricePoint: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_timestamp_ms(raw: Any, fallback_ms: int) -> int:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return fallback_ms
    if not math.isfinite(value) or value <= 0:
        return fallback_ms
    if value < _MILLIS_THRESHOLD:
        value *= 1000
    return int(value)


class GoldApiFeed:
    """goldapi.io style endpoint: GET with an access-token header, JSON body."""

    def __init__(
        self,
        api_key: str | None,
        endpoint: str = DEFAULT_ENDPOINT,
        symbol: str = "XAUUSD",
        timeout_sec: float = 10.0,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.endpoint = endpoint
        self.symbol = symbol
        self.timeout_sec = timeout_sec
        self._clock = clock

    async def fetch(self) -> PricePoint:
        if not self.api_key or "YOUR_API_KEY" in self.api_key:
            raise PriceFeedError("price feed access token is not configured")

        payload = await asyncio.to_thread(self._request)
        if not isinstance(payload, dict):
            raise PriceFeedError("price feed returned a non-object payload")

        try:
            price = float(payload.get("price"))
        except (TypeError, ValueError) as exc:
            raise PriceFeedError(f"price feed payload has no numeric price: {payload!r}") from exc
        if not math.isfinite(price) or price <= 0:
            raise PriceFeedError(f"price feed returned unusable price {price}")

        timestamp_ms = normalize_timestamp_ms(payload.get("timestamp"), self._clock())
        return PricePoint(price=price, timestamp_ms=timestamp_ms, symbol=self.symbol)

    def _request(self) -> Any:
        req = Request(
            url=self.endpoint,
            method="GET",
            headers={"x-access-token": self.api_key, "Content-Type": "application/json"},
        )
        try:
            with urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            if exc.code == 401:
                raise PriceFeedError("HTTPError 401: invalid access token") from exc
            raise PriceFeedError(f"HTTPError {exc.code}") from exc
        except URLError as exc:
            raise PriceFeedError(f"URLError: {exc}") from exc
        except TimeoutError as exc:
            raise PriceFeedError(f"timeout: {exc}") from exc

        try:
            return json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise PriceFeedError(f"price feed returned invalid JSON: {exc}") from exc


class PriceSource:
    """Process-wide holder of the last known reference price.

    ``get_current_price`` never raises: a failing feed falls back to the
    cached price, or to a synthetic one anchored at ``fallback_base_price``
    when nothing usable was ever cached. Every attempt, good or bad,
    restarts the cache window so a broken feed is retried at most once per
    ``cache_ttl_sec``.
    """

    def __init__(
        self,
        feed: PriceFeed,
        cache_ttl_sec: float = 25.0,
        fallback_base_price: float = 2050.0,
        symbol: str = "XAUUSD",
        clock: Callable[[], int] = _now_ms,
        rng: random.Random | None = None,
        logger: Any | None = None,
    ) -> None:
        self.feed = feed
        self.cache_ttl_ms = int(cache_ttl_sec * 1000)
        self.fallback_base_price = fallback_base_price
        self.symbol = symbol
        self.logger = logger
        self._clock = clock
        self._rng = rng or random.Random()
        self._cached = PricePoint(price=0.0, timestamp_ms=0, symbol=symbol)

    @property
    def cached(self) -> PricePoint:
        return self._cached

    async def get_current_price(self) -> PricePoint:
        now = self._clock()
        if now - self._cached.timestamp_ms < self.cache_ttl_ms and self._has_usable_price():
            return self._cached

        try:
            point = await self.feed.fetch()
            self._cached = PricePoint(price=point.price, timestamp_ms=point.timestamp_ms, symbol=self.symbol)
            self._debug("PriceSource: feed price={} ts={}", point.price, point.timestamp_ms)
        except Exception as exc:  # noqa: BLE001
            self._error("PriceSource: feed failed: {}", exc)
            price = self._cached.price
            if not self._has_usable_price():
                price = self.synthetic_price(now)
                self._warning("PriceSource: no cached price, using synthetic price={}", price)
            self._cached = PricePoint(price=price, timestamp_ms=now, symbol=self.symbol)

        return self._cached

    def synthetic_price(self, now_ms: int) -> float:
        """Value within ``fallback_base_price`` +/- 70."""
        variation = (self._rng.random() - 0.5) * 100
        time_variation = math.sin(now_ms / 1_000_000) * 20
        return round(self.fallback_base_price + variation + time_variation, 2)

    def _has_usable_price(self) -> bool:
        price = self._cached.price
        return not math.isnan(price) and price > 0

    def _debug(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "debug"):
            self.logger.debug(message, *args)

    def _warning(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "warning"):
            self.logger.warning(message, *args)

    def _error(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "error"):
            self.logger.error(message, *args)
