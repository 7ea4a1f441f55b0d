import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from pytest import fixture

from spin_sync import *

logging.basicConfig(level=logging.WARNING)

KEY = "test-session"
"""
Session key used by testcases.
"""

ROSTER = ["Alpha", "Bravo", "Charlie", "Delta"]
"""
Small roster used by testcases which don't need the default one.
"""


class RecordingStore(MemoryStore):
    """
    Memory store which records writes and can be made to fail them.
    """

    writes: list[dict[str, Any]]
    fail_writes: bool = False

    def __init__(self):
        super().__init__()
        self.writes = []

    async def write(self, key: str, document: dict[str, Any]):
        if self.fail_writes:
            raise RemoteUnavailable("write", key, "store offline")

        self.writes.append(document)
        await super().write(key, document)


class DelayedStore(RecordingStore):
    """
    Recording store whose reads, and writes in turn, take a while.
    """

    read_delay: float
    write_delays: list[float]

    def __init__(
        self,
        *,
        read_delay: float = 0.0,
        write_delays: list[float] | None = None,
    ):
        super().__init__()
        self.read_delay = read_delay
        self.write_delays = list(write_delays or [])

    async def read(self, key: str) -> dict[str, Any] | None:
        await asyncio.sleep(self.read_delay)
        return await super().read(key)

    async def write(self, key: str, document: dict[str, Any]):
        # delays apply to writes in the order they're issued
        if self.write_delays:
            await asyncio.sleep(self.write_delays.pop(0))
        await super().write(key, document)


class UnresponsiveStore(MemoryStore):
    """
    Store which never responds.
    """

    async def read(self, key: str) -> dict[str, Any] | None:
        await asyncio.Event().wait()

    async def write(self, key: str, document: dict[str, Any]):
        await asyncio.Event().wait()

    def subscribe(self, key, on_change):
        return lambda: None


class UnavailableStore(MemoryStore):
    """
    Store which fails every operation.
    """

    async def read(self, key: str) -> dict[str, Any] | None:
        raise RemoteUnavailable("read", key, "connection refused")

    async def write(self, key: str, document: dict[str, Any]):
        raise RemoteUnavailable("write", key, "connection refused")

    def subscribe(self, key, on_change):
        raise RemoteUnavailable("subscribe", key, "connection refused")


@fixture
def store() -> RecordingStore:
    return RecordingStore()


@fixture
def unresponsive_store() -> UnresponsiveStore:
    return UnresponsiveStore()


@fixture
def unavailable_store() -> UnavailableStore:
    return UnavailableStore()


@fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "state.yaml"


@fixture
def settle() -> Callable[[], Awaitable[None]]:
    """
    Get a coroutine function which lets pending writes and pushes complete.
    """

    async def settle():
        for _ in range(20):
            await asyncio.sleep(0)

    return settle


@fixture
def create_sync(store: RecordingStore) -> Callable[..., Synchronizer]:
    """
    Get a factory of synchronizers using the small roster with its own
    order as priority, attached to the recording store by default.
    """

    def create_sync(**kwargs) -> Synchronizer:
        kwargs.setdefault("roster", ROSTER)
        kwargs.setdefault("policy", DrawPolicy(ROSTER))
        kwargs.setdefault("timeout", 1.0)
        return Synchronizer(kwargs.pop("store", store), KEY, **kwargs)

    return create_sync
