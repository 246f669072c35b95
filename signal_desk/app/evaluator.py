"""Lifecycle evaluation of published signals against a reference price."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext

from app.models import PublishedSignal, SignalAction, SignalEvaluation, SignalStatus, is_terminal

# PnL is quoted per 100 units of the instrument.
NOTIONAL_MULTIPLIER = 100


def entry_price(signal: PublishedSignal) -> float:
    """Middle of the entry zone, or the single bound that is set."""
    low = signal.entry_from or 0.0
    high = signal.entry_to or 0.0
    if low and high:
        return (low + high) / 2
    return low or high


def evaluate(signal: PublishedSignal, current_price: float) -> SignalEvaluation:
    if is_terminal(signal.status):
        stored_price = signal.current_price if signal.current_price is not None else current_price
        return SignalEvaluation(
            signal_id=signal.id,
            status=SignalStatus(signal.status),
            current_price=stored_price,
            pnl=signal.pnl or 0.0,
            pnl_percentage=signal.pnl_percentage or 0.0,
        )

    status, exit_price = _classify(signal, current_price)
    entry = entry_price(signal)

    pnl = 0.0
    pnl_percentage = 0.0
    if entry > 0:
        if signal.action == SignalAction.BUY:
            pnl = (exit_price - entry) * NOTIONAL_MULTIPLIER
        else:
            pnl = (entry - exit_price) * NOTIONAL_MULTIPLIER
        pnl_percentage = (pnl / (entry * NOTIONAL_MULTIPLIER)) * 100

    return SignalEvaluation(
        signal_id=signal.id,
        status=status,
        current_price=current_price,
        pnl=_round2(pnl),
        pnl_percentage=_round2(pnl_percentage),
        exit_price=exit_price,
    )


def _classify(signal: PublishedSignal, current_price: float) -> tuple[SignalStatus, float]:
    stop_loss = signal.stop_loss or 0.0
    # Farthest target first so a gap through several tiers reports the best one.
    tiers = (
        (SignalStatus.TP3_HIT, signal.take_profit_3 or 0.0),
        (SignalStatus.TP2_HIT, signal.take_profit_2 or 0.0),
        (SignalStatus.TP1_HIT, signal.take_profit_1 or 0.0),
    )

    if signal.action == SignalAction.BUY:
        if current_price <= stop_loss:
            return SignalStatus.SL_HIT, stop_loss
        for status, target in tiers:
            if target > 0 and current_price >= target:
                return status, target
    else:
        if current_price >= stop_loss:
            return SignalStatus.SL_HIT, stop_loss
        for status, target in tiers:
            if target > 0 and current_price <= target:
                return status, target

    return SignalStatus.ACTIVE, current_price


def _round2(value: float) -> float:
    if not math.isfinite(value):
        return value
    with localcontext() as ctx:
        # Room for the largest finite float plus two decimals.
        ctx.prec = 400
        return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
