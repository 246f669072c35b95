from __future__ import annotations

import time
from datetime import UTC, datetime

import pytest

from app.models import DraftSignal, PricePoint, PublishedSignal, SignalAction, SignalStatus
from app.price_source import PriceFeedError


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class FakeFeed:
    """Feed adapter returning queued prices; ``None`` entries simulate an outage."""

    def __init__(self, prices, clock=None) -> None:
        self.prices = list(prices)
        self.clock = clock
        self.calls = 0

    async def fetch(self) -> PricePoint:
        self.calls += 1
        price = self.prices.pop(0) if len(self.prices) > 1 else self.prices[0]
        if price is None:
            raise PriceFeedError("feed down")
        now = self.clock() if self.clock is not None else int(time.time() * 1000)
        return PricePoint(price=price, timestamp_ms=now)


def make_signal(
    action: str = "BUY",
    entry_from: float | None = 2045.0,
    entry_to: float | None = 2055.0,
    stop_loss: float = 2030.0,
    tp1: float | None = 2070.0,
    tp2: float | None = 2090.0,
    tp3: float | None = 2110.0,
    status: SignalStatus = SignalStatus.ACTIVE,
    pnl: float | None = None,
    signal_id: str = "sig-1",
    notes: str | None = None,
    **extra,
) -> PublishedSignal:
    now = datetime.now(UTC)
    return PublishedSignal(
        id=signal_id,
        user_id="tester",
        symbol="XAUUSD",
        action=SignalAction(action),
        entry_from=entry_from,
        entry_to=entry_to,
        stop_loss=stop_loss,
        take_profit_1=tp1,
        take_profit_2=tp2,
        take_profit_3=tp3,
        notes=notes,
        created_at=now,
        updated_at=now,
        status=status,
        pnl=pnl,
        **extra,
    )


def make_draft(signal_id: str = "draft-1") -> DraftSignal:
    now = datetime.now(UTC)
    return DraftSignal(
        id=signal_id,
        user_id="tester",
        symbol="XAUUSD",
        action=SignalAction.BUY,
        entry_from=2000.0,
        entry_to=None,
        stop_loss=None,
        take_profit_1=None,
        take_profit_2=None,
        take_profit_3=None,
        notes="idea",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "signals.db"


@pytest.fixture(autouse=True)
def _no_feed_token(monkeypatch):
    monkeypatch.delenv("GOLD_API_KEY", raising=False)
