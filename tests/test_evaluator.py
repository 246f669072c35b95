from __future__ import annotations

import math

import pytest

from app.evaluator import entry_price, evaluate
from app.models import SignalStatus
from conftest import make_signal


def test_buy_tp1_scenario():
    result = evaluate(make_signal(), 2071.0)
    assert result.status == SignalStatus.TP1_HIT
    assert result.exit_price == 2070.0
    assert result.pnl == 2000.0
    assert result.pnl_percentage == 0.98
    assert result.current_price == 2071.0


def test_buy_sl_scenario():
    result = evaluate(make_signal(), 2025.0)
    assert result.status == SignalStatus.SL_HIT
    assert result.exit_price == 2030.0
    assert result.pnl == -2000.0
    assert result.pnl_percentage == -0.98


def test_buy_still_active_reports_unrealized_pnl():
    result = evaluate(make_signal(), 2060.0)
    assert result.status == SignalStatus.ACTIVE
    assert result.exit_price == 2060.0
    assert result.pnl == 1000.0
    assert result.pnl_percentage == 0.49


def test_buy_stop_loss_wins_over_take_profit():
    signal = make_signal(stop_loss=2100.0, tp1=2060.0, tp2=None, tp3=None)
    result = evaluate(signal, 2080.0)
    assert result.status == SignalStatus.SL_HIT
    assert result.exit_price == 2100.0


@pytest.mark.parametrize(
    "price,expected,exit_price",
    [
        (2095.0, SignalStatus.TP2_HIT, 2090.0),
        (2110.0, SignalStatus.TP3_HIT, 2110.0),
        (2200.0, SignalStatus.TP3_HIT, 2110.0),
        (2030.0, SignalStatus.SL_HIT, 2030.0),
    ],
)
def test_buy_tier_boundaries(price, expected, exit_price):
    result = evaluate(make_signal(), price)
    assert result.status == expected
    assert result.exit_price == exit_price


def test_sell_scenarios():
    signal = make_signal(action="SELL", entry_from=2450.0, entry_to=2450.0, stop_loss=2500.0, tp1=2350.0, tp2=None, tp3=None)

    assert evaluate(signal, 2500.0).status == SignalStatus.SL_HIT

    hit = evaluate(signal, 2340.0)
    assert hit.status == SignalStatus.TP1_HIT
    assert hit.exit_price == 2350.0
    assert hit.pnl == 10000.0


def test_sell_farthest_tier_checked_first():
    signal = make_signal(action="SELL", entry_from=2450.0, entry_to=2450.0, stop_loss=2500.0, tp1=2400.0, tp2=2350.0, tp3=2300.0)
    result = evaluate(signal, 2290.0)
    assert result.status == SignalStatus.TP3_HIT
    assert result.exit_price == 2300.0
    assert result.pnl == 15000.0


def test_disabled_tiers_are_skipped():
    signal = make_signal(tp2=0.0, tp3=None)
    result = evaluate(signal, 2500.0)
    assert result.status == SignalStatus.TP1_HIT
    assert result.exit_price == 2070.0


def test_terminal_signal_is_not_recomputed():
    signal = make_signal(status=SignalStatus.TP1_HIT, pnl=2000.0, current_price=2071.0, pnl_percentage=0.98)

    first = evaluate(signal, 1500.0)
    second = evaluate(signal, 2600.0)

    assert first == second
    assert first.status == SignalStatus.TP1_HIT
    assert first.pnl == 2000.0
    assert first.pnl_percentage == 0.98
    assert first.current_price == 2071.0


def test_pnl_sign_convention():
    buy = evaluate(make_signal(), 2065.0)
    assert buy.status == SignalStatus.ACTIVE
    assert buy.pnl > 0

    sell = make_signal(action="SELL", entry_from=2450.0, entry_to=2450.0, stop_loss=2500.0, tp1=2350.0, tp2=None, tp3=None)
    result = evaluate(sell, 2400.0)
    assert result.status == SignalStatus.ACTIVE
    assert result.pnl > 0


@pytest.mark.parametrize("entry_from,entry_to", [(None, None), (0.0, 0.0), (0.0, None)])
def test_missing_entry_yields_zero_pnl(entry_from, entry_to):
    result = evaluate(make_signal(entry_from=entry_from, entry_to=entry_to), 2071.0)
    assert result.status == SignalStatus.TP1_HIT
    assert result.pnl == 0.0
    assert result.pnl_percentage == 0.0


def test_entry_price_uses_single_bound_when_other_missing():
    assert entry_price(make_signal(entry_from=2000.0, entry_to=None)) == 2000.0
    assert entry_price(make_signal(entry_from=None, entry_to=2010.0)) == 2010.0
    assert entry_price(make_signal()) == 2050.0


def test_huge_price_is_rounded_without_error():
    result = evaluate(make_signal(tp1=None, tp2=None, tp3=None), 1e27)
    assert result.status == SignalStatus.ACTIVE
    assert result.pnl == pytest.approx(1e29)


def test_tiny_entry_yields_unbounded_percentage_without_error():
    result = evaluate(make_signal(entry_from=5e-324, entry_to=None), 2000.0)
    assert result.status == SignalStatus.SL_HIT
    assert result.pnl == 203000.0
    assert math.isinf(result.pnl_percentage)
