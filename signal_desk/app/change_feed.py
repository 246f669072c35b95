"""In-process stream of signal insert/update/delete events per owner."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal

from app.models import Signal

ChangeKind = Literal["insert", "update", "delete"]


@dataclass(slots=True, frozen=True)
class SignalChange:
    kind: ChangeKind
    user_id: str
    signal_id: str
    signal: Signal | None = None


class SignalSubscription:
    """Async iterator over the changes of one owner. Use as a context manager."""

    def __init__(self, feed: SignalChangeFeed, user_id: str) -> None:
        self.user_id = user_id
        self._feed = feed
        self._queue: asyncio.Queue[SignalChange] = asyncio.Queue()

    def _push(self, change: SignalChange) -> None:
        self._queue.put_nowait(change)

    async def get(self) -> SignalChange:
        return await self._queue.get()

    def close(self) -> None:
        self._feed.unsubscribe(self)

    def __aiter__(self) -> SignalSubscription:
        return self

    async def __anext__(self) -> SignalChange:
        return await self.get()

    async def __aenter__(self) -> SignalSubscription:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self.close()


class SignalChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: dict[str, set[SignalSubscription]] = {}

    def subscribe(self, user_id: str) -> SignalSubscription:
        subscription = SignalSubscription(self, user_id)
        self._subscriptions.setdefault(user_id, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: SignalSubscription) -> None:
        owners = self._subscriptions.get(subscription.user_id)
        if owners is None:
            return
        owners.discard(subscription)
        if not owners:
            self._subscriptions.pop(subscription.user_id, None)

    def publish(self, change: SignalChange) -> None:
        for subscription in list(self._subscriptions.get(change.user_id, ())):
            subscription._push(change)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscriptions.get(user_id, ()))
