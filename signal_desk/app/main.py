"""Headless tracking session: keeps stored signals in sync with the live price."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from app.aggregator import summarize
from app.change_feed import SignalChangeFeed
from app.config import AppConfig, load_config
from app.database import SignalStore
from app.logger import setup_logger
from app.price_source import GoldApiFeed, PriceSource
from app.refresh import RefreshOrchestrator


def build_price_source(config: AppConfig, logger=None) -> PriceSource:
    feed_cfg = config.price_feed
    feed = GoldApiFeed(
        api_key=feed_cfg.api_key,
        endpoint=feed_cfg.endpoint,
        symbol=feed_cfg.symbol,
        timeout_sec=feed_cfg.timeout_sec,
    )
    return PriceSource(
        feed=feed,
        cache_ttl_sec=feed_cfg.cache_ttl_sec,
        fallback_base_price=feed_cfg.fallback_base_price,
        symbol=feed_cfg.symbol,
        logger=logger,
    )


def _resolve(root_dir: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else root_dir / path


async def _log_changes(feed: SignalChangeFeed, user_id: str, logger) -> None:
    async with feed.subscribe(user_id) as changes:
        async for change in changes:
            status = change.signal.status.value if change.signal is not None else "-"
            logger.info("Signal change kind={} id={} status={}", change.kind, change.signal_id, status)


async def run() -> None:
    root_dir = Path(__file__).resolve().parents[1]
    config_path = root_dir / "config.yml"
    if not config_path.exists():
        config_path = root_dir / "config.yml.example"
    config: AppConfig = load_config(config_path)
    logger = setup_logger(_resolve(root_dir, config.logging.dir), config.logging.level)

    change_feed = SignalChangeFeed()
    store = SignalStore(_resolve(root_dir, config.database.path), user_id=config.user_id, change_feed=change_feed)
    await store.init_db()

    price_source = build_price_source(config, logger)
    orchestrator = RefreshOrchestrator(
        store=store,
        price_source=price_source,
        interval_sec=config.refresh.interval_sec,
        pnl_tolerance=config.refresh.pnl_tolerance,
        logger=logger,
    )

    logger.info("Session started user_id={} symbol={}", config.user_id, config.price_feed.symbol)
    logger.info("Database initialized at {}", _resolve(root_dir, config.database.path))
    if not config.price_feed.api_key:
        logger.warning("Price feed token is not configured, synthetic prices will be used")

    changes_task = asyncio.create_task(_log_changes(change_feed, config.user_id, logger), name="signal-changes")
    orchestrator.start()

    try:
        while True:
            await asyncio.sleep(config.refresh.interval_sec)
            stats = summarize(await store.list())
            logger.info(
                "Stats: total={} active={} win_rate={}% total_pnl={:.2f}",
                stats.total,
                stats.active,
                stats.win_rate,
                stats.total_pnl,
            )
    finally:
        await orchestrator.stop()
        changes_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await changes_task
        await store.close()
        logger.info("Session stopped")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run())
