"""HTTP and websocket surface for recording and tracking signals."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger as app_logger
from pydantic import BaseModel, ConfigDict, Field

from app.aggregator import filter_signals, summarize
from app.change_feed import SignalChange, SignalSubscription
from app.config import AppConfig, apply_env_overrides, load_config
from app.database import SignalStore
from app.formatter import format_signal_message
from app.levels import suggest_levels
from app.main import build_price_source
from app.models import SignalAction, SignalStatus, SignalValidationError, signal_to_payload
from app.price_source import PriceSource
from app.refresh import RefreshOrchestrator


ROOT_DIR = Path(__file__).resolve().parents[1]

LOGGER = logging.getLogger(__name__)


class SignalIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str = "XAUUSD"
    action: SignalAction
    entry_from: float | None = Field(default=None, gt=0)
    entry_to: float | None = Field(default=None, gt=0)
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit_1: float | None = None
    take_profit_2: float | None = None
    take_profit_3: float | None = None
    notes: str | None = None
    is_draft: bool = False


class SignalPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str | None = None
    action: SignalAction | None = None
    entry_from: float | None = Field(default=None, gt=0)
    entry_to: float | None = Field(default=None, gt=0)
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit_1: float | None = None
    take_profit_2: float | None = None
    take_profit_3: float | None = None
    status: SignalStatus | None = None
    notes: str | None = None


class LevelsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: SignalAction
    entry_from: float = Field(gt=0)
    entry_to: float = Field(gt=0)
    sl_percent: float | None = Field(default=None, gt=0, lt=100)
    tp_pips: tuple[float, float, float] | None = None


def _base_config() -> AppConfig:
    config_path = ROOT_DIR / "config.yml"
    if config_path.exists():
        return load_config(config_path)
    example = ROOT_DIR / "config.yml.example"
    if example.exists():
        return load_config(example)
    return apply_env_overrides(AppConfig())


def _not_found(signal_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "signal_not_found", "id": signal_id})


def _change_to_message(change: SignalChange) -> dict[str, Any]:
    return {
        "type": change.kind,
        "id": change.signal_id,
        "signal": signal_to_payload(change.signal) if change.signal is not None else None,
    }


async def _forward_changes(websocket: WebSocket, subscription: SignalSubscription) -> None:
    async for change in subscription:
        await websocket.send_json(_change_to_message(change))


def create_app(
    config: AppConfig | None = None,
    price_source: PriceSource | None = None,
    auto_refresh: bool = True,
) -> FastAPI:
    config = config or _base_config()
    db_path = Path(config.database.path)
    if not db_path.is_absolute():
        db_path = ROOT_DIR / db_path

    store = SignalStore(db_path, user_id=config.user_id)
    price_source = price_source or build_price_source(config, app_logger)
    orchestrator = RefreshOrchestrator(
        store=store,
        price_source=price_source,
        interval_sec=config.refresh.interval_sec,
        pnl_tolerance=config.refresh.pnl_tolerance,
        logger=app_logger,
    )

    app = FastAPI(title="signal_desk web")
    app.state.config = config
    app.state.store = store
    app.state.price_source = price_source
    app.state.orchestrator = orchestrator

    @app.on_event("startup")
    async def startup_event() -> None:
        await store.init_db()
        if auto_refresh:
            orchestrator.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await orchestrator.stop()
        await store.close()

    @app.exception_handler(SignalValidationError)
    async def validation_error_handler(_request, exc: SignalValidationError):
        return JSONResponse(status_code=422, content={"error": "invalid_signal", "detail": str(exc)})

    @app.get("/api/signals")
    async def list_signals(view: str = Query(default="all", pattern="^(all|active|closed|drafts)$")):
        signals = filter_signals(await store.list(), view)
        return [signal_to_payload(signal) for signal in signals]

    @app.post("/api/signals", status_code=201)
    async def create_signal(payload: SignalIn):
        signal = await store.create(**payload.model_dump(mode="json"))
        return signal_to_payload(signal)

    @app.get("/api/signals/{signal_id}")
    async def get_signal(signal_id: str):
        signal = await store.get_by_id(signal_id)
        if signal is None:
            return _not_found(signal_id)
        return signal_to_payload(signal)

    @app.patch("/api/signals/{signal_id}")
    async def update_signal(signal_id: str, payload: SignalPatch):
        signal = await store.update(signal_id, **payload.model_dump(mode="json", exclude_unset=True))
        if signal is None:
            return _not_found(signal_id)
        return signal_to_payload(signal)

    @app.post("/api/signals/{signal_id}/publish")
    async def publish_signal(signal_id: str):
        signal = await store.publish(signal_id)
        if signal is None:
            return _not_found(signal_id)
        return signal_to_payload(signal)

    @app.delete("/api/signals/{signal_id}", status_code=204)
    async def delete_signal(signal_id: str):
        if not await store.delete(signal_id):
            return _not_found(signal_id)
        return None

    @app.get("/api/signals/{signal_id}/message")
    async def signal_message(signal_id: str):
        signal = await store.get_by_id(signal_id)
        if signal is None:
            return _not_found(signal_id)
        return {"id": signal_id, "text": format_signal_message(signal)}

    @app.get("/api/stats")
    async def stats():
        return asdict(summarize(await store.list()))

    @app.get("/api/health")
    async def health():
        try:
            db_ok = await store.healthcheck()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("DB healthcheck failed: %s", exc)
            db_ok = False
        return {"db": "OK" if db_ok else "ERROR", "refresh_running": orchestrator.running}

    @app.get("/api/price")
    async def price():
        point = await price_source.get_current_price()
        return {"symbol": point.symbol, "price": point.price, "timestamp_ms": point.timestamp_ms}

    @app.post("/api/refresh")
    async def refresh():
        try:
            result = await orchestrator.refresh_once()
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Manual refresh failed: %s", exc)
            return JSONResponse(status_code=500, content={"error": "refresh_failed"})
        return {
            "price": result.price.price,
            "timestamp_ms": result.price.timestamp_ms,
            "evaluated": result.evaluated,
            "updated": result.updated,
            "failed": result.failed,
        }

    @app.post("/api/levels")
    async def levels(payload: LevelsIn):
        levels_cfg = config.levels
        suggestion = suggest_levels(
            payload.action,
            payload.entry_from,
            payload.entry_to,
            sl_percent=payload.sl_percent or levels_cfg.sl_percent,
            tp_pips=payload.tp_pips or levels_cfg.tp_pips,
            pip_value=levels_cfg.pip_value,
        )
        if suggestion is None:
            return JSONResponse(status_code=422, content={"error": "invalid_entry_zone"})
        return asdict(suggestion)

    @app.websocket("/ws/signals")
    async def ws_signals(websocket: WebSocket):
        await websocket.accept()
        subscription = store.change_feed.subscribe(store.user_id)
        forward_task: asyncio.Task[None] | None = None
        try:
            signals = await store.list()
            await websocket.send_json(
                {
                    "type": "snapshot",
                    "signals": [signal_to_payload(signal) for signal in signals],
                    "stats": asdict(summarize(signals)),
                }
            )
            forward_task = asyncio.create_task(_forward_changes(websocket, subscription), name="ws-signal-changes")
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("WS client error: %s", exc)
        finally:
            subscription.close()
            if forward_task is not None:
                forward_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await forward_task

    return app
