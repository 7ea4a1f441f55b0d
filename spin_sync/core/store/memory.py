from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from logging import Logger
from typing import Any

from .base import BaseStore, ChangeCallback, Unsubscribe

__all__ = [
    "MemoryStore",
]


@dataclass(eq=False)
class _Subscription:
    key: str
    on_change: ChangeCallback
    loop: asyncio.AbstractEventLoop
    active: bool = True


class MemoryStore(BaseStore):
    """
    Store kept in memory of the current process. Any number of clients may
    share one instance; each receives its own copy of every document.

    Changes are delivered via the event loop, never from within
    {obj}`MemoryStore.write`.
    """

    documents: dict[str, dict[str, Any]]
    """
    Mapping of key to document.
    """

    _subscriptions: list[_Subscription]
    _logger: Logger

    def __init__(self, *, logger: Logger | None = None):
        self.documents = dict()
        self._subscriptions = list()
        self._logger = logger or logging.getLogger()

    def __str__(self):
        return f"MemoryStore: keys={list(self.documents.keys())}"

    async def read(self, key: str) -> dict[str, Any] | None:
        document = self.documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def write(self, key: str, document: dict[str, Any]):
        self.documents[key] = copy.deepcopy(document)

        for subscription in self._subscriptions:
            if subscription.key == key:
                self._notify(subscription)

    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        subscription = _Subscription(
            key=key, on_change=on_change, loop=asyncio.get_running_loop()
        )
        self._subscriptions.append(subscription)

        # deliver current value
        self._notify(subscription)

        def unsubscribe():
            subscription.active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _notify(self, subscription: _Subscription):
        # snapshot now so later writes don't leak into this change
        document = self.documents.get(subscription.key)
        snapshot = copy.deepcopy(document) if document is not None else None

        def deliver():
            if subscription.active:
                subscription.on_change(snapshot)

        subscription.loop.call_soon(deliver)
