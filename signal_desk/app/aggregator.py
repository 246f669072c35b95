"""Summary statistics over a collection of signals."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from app.models import DraftSignal, PublishedSignal, Signal, SignalStats, SignalStatus

HistoryView = Literal["all", "active", "closed", "drafts"]


def summarize(signals: Iterable[Signal]) -> SignalStats:
    published = [s for s in signals if isinstance(s, PublishedSignal)]
    active = [s for s in published if s.status == SignalStatus.ACTIVE]
    closed = [s for s in published if s.status != SignalStatus.ACTIVE]
    winners = [s for s in closed if (s.pnl or 0) > 0]

    win_rate = f"{len(winners) / len(closed) * 100:.1f}" if closed else "0"
    total_pnl = sum((s.pnl or 0.0) for s in published)

    return SignalStats(
        total=len(published),
        active=len(active),
        win_rate=win_rate,
        total_pnl=total_pnl,
    )


def filter_signals(signals: Iterable[Signal], view: HistoryView = "all") -> list[Signal]:
    """Signals shown under one of the history tabs."""
    if view == "drafts":
        return [s for s in signals if isinstance(s, DraftSignal)]
    published = [s for s in signals if isinstance(s, PublishedSignal)]
    if view == "active":
        return [s for s in published if s.status == SignalStatus.ACTIVE]
    if view == "closed":
        return [s for s in published if s.status != SignalStatus.ACTIVE]
    if view == "all":
        return published
    raise ValueError(f"unknown history view '{view}'")
