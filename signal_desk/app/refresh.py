"""Periodic re-evaluation of active signals against a shared price snapshot."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.database import SignalStore
from app.evaluator import evaluate
from app.models import PricePoint, PublishedSignal, Signal, SignalEvaluation, SignalStatus
from app.price_source import PriceSource


@dataclass(slots=True, frozen=True)
class RefreshResult:
    price: PricePoint
    evaluated: int
    updated: int
    failed: int


class RefreshOrchestrator:
    def __init__(
        self,
        store: SignalStore,
        price_source: PriceSource,
        interval_sec: float = 30.0,
        pnl_tolerance: float = 0.01,
        logger: Any | None = None,
    ) -> None:
        self.store = store
        self.price_source = price_source
        self.interval_sec = interval_sec
        self.pnl_tolerance = pnl_tolerance
        self.logger = logger
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Refresh now, then every ``interval_sec`` until :meth:`stop`."""
        if self.running:
            return self._task
        self._task = asyncio.create_task(self.run_loop(), name="signal-refresh")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def run_loop(self) -> None:
        while True:
            started = datetime.now(UTC)
            try:
                await self.refresh_once()
            except Exception as exc:  # noqa: BLE001
                self._error("RefreshOrchestrator cycle error: {}", exc)
            elapsed = (datetime.now(UTC) - started).total_seconds()
            if elapsed > self.interval_sec:
                self._warning("RefreshOrchestrator cycle took {:.2f}s (>{}s)", elapsed, self.interval_sec)
            await asyncio.sleep(self.interval_sec)

    async def refresh_once(self) -> RefreshResult:
        signals = await self.store.list()
        return await self.refresh_all(signals)

    async def refresh_all(self, signals: Iterable[Signal]) -> RefreshResult:
        price = await self.price_source.get_current_price()
        active = [s for s in signals if isinstance(s, PublishedSignal) and s.status == SignalStatus.ACTIVE]

        changed: list[tuple[PublishedSignal, SignalEvaluation]] = []
        failed = 0
        for signal in active:
            try:
                result = evaluate(signal, price.price)
            except Exception as exc:  # noqa: BLE001
                self._error("RefreshOrchestrator: evaluation failed signal_id={} err={}", signal.id, exc)
                failed += 1
                continue
            if self._has_changed(signal, result):
                changed.append((signal, result))

        outcomes = await asyncio.gather(*(self._persist(signal, result) for signal, result in changed))
        updated = sum(1 for ok in outcomes if ok)
        failed += len(outcomes) - updated

        self._info(
            "RefreshOrchestrator: price={} evaluated={} updated={} failed={}",
            price.price,
            len(active),
            updated,
            failed,
        )
        return RefreshResult(price=price, evaluated=len(active), updated=updated, failed=failed)

    def _has_changed(self, signal: PublishedSignal, result: SignalEvaluation) -> bool:
        if signal.status != result.status:
            return True
        return abs((signal.pnl or 0.0) - result.pnl) > self.pnl_tolerance

    async def _persist(self, signal: PublishedSignal, result: SignalEvaluation) -> bool:
        try:
            record = await self.store.update(
                signal.id,
                status=result.status.value,
                current_price=result.current_price,
                pnl=result.pnl,
                pnl_percentage=result.pnl_percentage,
            )
        except Exception as exc:  # noqa: BLE001
            self._error("RefreshOrchestrator: update failed signal_id={} err={}", signal.id, exc)
            return False
        if record is None:
            self._warning("RefreshOrchestrator: signal_id={} disappeared before update", signal.id)
            return False
        if result.status != signal.status:
            self._info(
                "RefreshOrchestrator: signal_id={} {} -> {} pnl={}",
                signal.id,
                signal.status.value,
                result.status.value,
                result.pnl,
            )
        return True

    def _info(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "info"):
            self.logger.info(message, *args)

    def _warning(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "warning"):
            self.logger.warning(message, *args)
        elif self.logger is not None and hasattr(self.logger, "info"):
            self.logger.info(message, *args)

    def _error(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "error"):
            self.logger.error(message, *args)
