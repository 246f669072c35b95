"""Stop-loss and take-profit suggestions derived from an entry zone."""

from __future__ import annotations

from dataclasses import dataclass

from app.models import SignalAction, parse_action


@dataclass(slots=True, frozen=True)
class SuggestedLevels:
    entry_price: float
    stop_loss: float
    take_profit_1: float
    take_profit_2: float
    take_profit_3: float


def suggest_levels(
    action: SignalAction | str,
    entry_from: float | None,
    entry_to: float | None,
    sl_percent: float = 2.0,
    tp_pips: tuple[float, float, float] = (50.0, 100.0, 200.0),
    pip_value: float = 0.01,
) -> SuggestedLevels | None:
    """SL as a percentage of the average entry, TPs as pip distances from it.

    Returns ``None`` when the zone is incomplete.
    """
    if entry_from is None or entry_to is None:
        return None
    average = (entry_from + entry_to) / 2
    if average <= 0:
        return None

    side = 1 if parse_action(action) == SignalAction.BUY else -1
    stop_loss = average * (1 - side * sl_percent / 100)
    tp1, tp2, tp3 = (average + side * pips * pip_value for pips in tp_pips)

    return SuggestedLevels(
        entry_price=round(average, 2),
        stop_loss=round(stop_loss, 2),
        take_profit_1=round(tp1, 2),
        take_profit_2=round(tp2, 2),
        take_profit_3=round(tp3, 2),
    )
