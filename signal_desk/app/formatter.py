"""Outbound text rendering of a signal for chat channels."""

from __future__ import annotations

from jinja2 import Environment, StrictUndefined

from app.models import Signal, SignalAction

_TEMPLATE = """\
{{ emoji }} {{ action }} SIGNAL {{ trend }}

📊 Pair: {{ symbol }}
💰 {{ entry_label }}: {{ entry_text }}
🛑 Stop Loss: {{ stop_loss | price }}

🎯 Take Profit Targets:
{% for target in targets %}
TP{{ target.tier }}: {{ target.price | price }}{% if target.pips %} ({{ target.pips | pips }} pips){% endif %}

{% endfor %}
{% if sl_percent %}
📐 SL: {{ sl_percent | pips }}% | Risk Management
{% endif %}
{% if notes %}
📝 Notes: {{ notes }}
{% endif %}

⚠️ Always use proper risk management
💡 Trade at your own risk

#{{ symbol }} #Gold #Trading #Signals"""


def _price(value: float | None) -> str:
    if value is None:
        return "-"
    return f"${value:.2f}"


def _pips(value: float) -> str:
    return f"{value:g}"


_env = Environment(trim_blocks=True, lstrip_blocks=True, undefined=StrictUndefined, autoescape=False)
_env.filters["price"] = _price
_env.filters["pips"] = _pips
_template = _env.from_string(_TEMPLATE)


def entry_text(entry_from: float | None, entry_to: float | None) -> str:
    """Single price when the zone collapses to one value, else ``$low - $high``."""
    if entry_from is None or entry_to is None or entry_from == entry_to:
        value = entry_from if entry_from is not None else entry_to
        return _price(value)
    return f"{_price(entry_from)} - {_price(entry_to)}"


def format_signal_message(
    signal: Signal,
    sl_percent: float | None = None,
    tp_pips: tuple[float, float, float] | None = None,
) -> str:
    is_buy = signal.action == SignalAction.BUY
    single = signal.entry_from is None or signal.entry_to is None or signal.entry_from == signal.entry_to
    side = "Buy" if is_buy else "Sell"

    targets = []
    for tier, price in enumerate((signal.take_profit_1, signal.take_profit_2, signal.take_profit_3), start=1):
        if price is None or price <= 0:
            continue
        targets.append({"tier": tier, "price": price, "pips": tp_pips[tier - 1] if tp_pips else None})

    return _template.render(
        emoji="🟢" if is_buy else "🔴",
        trend="📈" if is_buy else "📉",
        action=signal.action.value,
        symbol=signal.symbol,
        entry_label=f"{side} Entry" if single else f"{side} Entry Zone",
        entry_text=entry_text(signal.entry_from, signal.entry_to),
        stop_loss=signal.stop_loss,
        targets=targets,
        sl_percent=sl_percent,
        notes=(signal.notes or "").strip(),
    )
