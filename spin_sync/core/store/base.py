from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

__all__ = [
    "SESSIONS_PATH",
    "BaseStore",
    "ChangeCallback",
    "Unsubscribe",
]

SESSIONS_PATH = "sessions"
"""
Path under which session documents are stored.
"""

ChangeCallback = Callable[[dict[str, Any] | None], None]
"""
Invoked with the current document, or `None` if absent.
"""

Unsubscribe = Callable[[], None]


class BaseStore(ABC):
    """
    Interface to the keyed document store in which sessions are kept.

    Documents are opaque JSON-compatible mappings; interpreting them is up to
    the caller. Writes overwrite the whole document. There is no merge, retry
    or compare-and-set: concurrent writers race and the last write wins.

    Failures are raised as {obj}`RemoteUnavailable`.
    """

    @abstractmethod
    async def read(self, key: str) -> dict[str, Any] | None:
        """
        Get the document stored under key, or `None` if absent.
        """
        ...

    @abstractmethod
    async def write(self, key: str, document: dict[str, Any]):
        """
        Overwrite the document stored under key.
        """
        ...

    @abstractmethod
    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        """
        Invoke `on_change` on the running event loop with the current
        document, and again upon every change including the subscriber's
        own writes.

        Must be called from a running event loop.

        :returns: Callable which cancels the subscription
        """
        ...

    async def close(self):
        """
        Release any resources held by the store.
        """
