"""Domain models for tracked trading signals."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class SignalStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    TP1_HIT = "tp1_hit"
    TP2_HIT = "tp2_hit"
    TP3_HIT = "tp3_hit"
    SL_HIT = "sl_hit"


TERMINAL_STATUSES = frozenset(
    {SignalStatus.TP1_HIT, SignalStatus.TP2_HIT, SignalStatus.TP3_HIT, SignalStatus.SL_HIT}
)


class SignalValidationError(ValueError):
    """Raised when signal fields cannot be accepted by the store."""


@dataclass(slots=True)
class DraftSignal:
    """Unpublished signal. Never evaluated, never counted in stats."""

    id: str
    user_id: str
    symbol: str
    action: SignalAction
    entry_from: float | None
    entry_to: float | None
    stop_loss: float | None
    take_profit_1: float | None
    take_profit_2: float | None
    take_profit_3: float | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    status: SignalStatus = SignalStatus.DRAFT

    @property
    def is_draft(self) -> bool:
        return True


@dataclass(slots=True)
class PublishedSignal:
    """Signal being tracked. Stop loss is required, lifecycle fields follow the price."""

    id: str
    user_id: str
    symbol: str
    action: SignalAction
    entry_from: float | None
    entry_to: float | None
    stop_loss: float
    take_profit_1: float | None
    take_profit_2: float | None
    take_profit_3: float | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    status: SignalStatus = SignalStatus.ACTIVE
    current_price: float | None = None
    pnl: float | None = None
    pnl_percentage: float | None = None

    @property
    def is_draft(self) -> bool:
        return False


Signal = DraftSignal | PublishedSignal


@dataclass(slots=True, frozen=True)
class PricePoint:
    price: float
    timestamp_ms: int
    symbol: str = "XAUUSD"


@dataclass(slots=True, frozen=True)
class SignalEvaluation:
    signal_id: str
    status: SignalStatus
    current_price: float
    pnl: float
    pnl_percentage: float
    exit_price: float | None = None


@dataclass(slots=True, frozen=True)
class SignalStats:
    total: int
    active: int
    win_rate: str
    total_pnl: float


def is_terminal(status: SignalStatus | str) -> bool:
    return SignalStatus(status) in TERMINAL_STATUSES


def parse_action(value: SignalAction | str) -> SignalAction:
    try:
        return SignalAction(str(value.value if isinstance(value, SignalAction) else value).upper())
    except ValueError as exc:
        raise SignalValidationError(f"unknown action '{value}', expected BUY or SELL") from exc


def validate_published_fields(fields: dict[str, Any]) -> None:
    """Check the fields a signal needs before it can be evaluated."""
    parse_action(fields.get("action"))
    if fields.get("entry_from") is None and fields.get("entry_to") is None:
        raise SignalValidationError("published signal requires entry_from or entry_to")
    if fields.get("stop_loss") is None:
        raise SignalValidationError("published signal requires stop_loss")


def signal_to_payload(signal: Signal) -> dict[str, Any]:
    payload = asdict(signal)
    payload["action"] = signal.action.value
    payload["status"] = signal.status.value
    payload["is_draft"] = signal.is_draft
    payload["created_at"] = signal.created_at.isoformat()
    payload["updated_at"] = signal.updated_at.isoformat()
    if isinstance(signal, DraftSignal):
        payload.update(current_price=None, pnl=None, pnl_percentage=None)
    return payload
