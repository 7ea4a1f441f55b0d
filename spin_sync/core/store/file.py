from __future__ import annotations

import asyncio
import logging
import os
import threading
from logging import Logger
from pathlib import Path
from typing import Any
from urllib.parse import quote

import yaml

from ..exceptions import RemoteUnavailable
from .base import SESSIONS_PATH, BaseStore, ChangeCallback, Unsubscribe

__all__ = [
    "FileStore",
]

POLL_INTERVAL = 0.25
"""
Seconds between checks for changed session files.
"""


class FileStore(BaseStore):
    """
    Store keeping one .yaml file per session in a folder. Multiple processes
    on the same machine may share the folder; subscriptions poll for
    changes.
    """

    _root: Path
    _poll_interval: float
    _threads: list[_Poller]
    _logger: Logger

    def __init__(
        self,
        root: Path,
        *,
        poll_interval: float = POLL_INTERVAL,
        logger: Logger | None = None,
    ):
        """
        :param root: Folder in which to keep session files; created if needed
        :param poll_interval: Seconds between checks for changes
        :param logger: Logger to use, or `None` to use default logger
        """
        self._root = root
        self._poll_interval = poll_interval
        self._threads = list()
        self._logger = logger or logging.getLogger()

    def __str__(self):
        return f"FileStore: root='{self._root}'"

    @property
    def root(self) -> Path:
        return self._root

    def get_path(self, key: str) -> Path:
        """
        Get path of file containing the document for key.
        """
        return self._root / SESSIONS_PATH / f"{quote(key, safe='')}.yaml"

    async def read(self, key: str) -> dict[str, Any] | None:
        try:
            return await asyncio.to_thread(self._load, self.get_path(key))
        except (OSError, yaml.YAMLError) as e:
            raise RemoteUnavailable("read", key, str(e))

    async def write(self, key: str, document: dict[str, Any]):
        try:
            await asyncio.to_thread(self._dump, self.get_path(key), document)
        except (OSError, yaml.YAMLError) as e:
            raise RemoteUnavailable("write", key, str(e))

    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        poller = _Poller(
            self,
            key,
            on_change,
            asyncio.get_running_loop(),
        )
        self._threads.append(poller)
        poller.start()

        def unsubscribe():
            poller.stop()
            if poller in self._threads:
                self._threads.remove(poller)

        return unsubscribe

    async def close(self):
        for poller in list(self._threads):
            poller.stop()
        self._threads.clear()

    @staticmethod
    def _load(path: Path) -> Any:
        if not path.is_file():
            return None

        with path.open() as fh:
            return yaml.safe_load(fh)

    @staticmethod
    def _dump(path: Path, document: dict[str, Any]):
        path.parent.mkdir(parents=True, exist_ok=True)

        # write to a temp file and swap it in so readers never see a
        # partially written document
        temp_path = path.with_name(
            f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp"
        )
        temp_path.write_text(
            yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
        )
        os.replace(temp_path, path)


class _Poller(threading.Thread):
    """
    Watches a session file and hands changes to the event loop.
    """

    def __init__(
        self,
        store: FileStore,
        key: str,
        on_change: ChangeCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        super().__init__(name=f"spin-sync-poll-{key}", daemon=True)
        self.store = store
        self.key = key
        self.on_change = on_change
        self.loop = loop
        self.stopped = threading.Event()

    def stop(self):
        self.stopped.set()

    def run(self):
        path = self.store.get_path(self.key)
        last_signature: tuple[int, int, int] | None | bool = False

        while not self.stopped.is_set():
            signature = self._signature(path)

            if signature != last_signature:
                try:
                    document = FileStore._load(path)
                except (OSError, yaml.YAMLError) as e:
                    self.store._logger.warning(
                        f"Failed to read session '{self.key}' from '{path}': {e}"
                    )
                else:
                    last_signature = signature
                    self._deliver(document)

            self.stopped.wait(self.store._poll_interval)

    def _deliver(self, document: Any):
        def deliver():
            if not self.stopped.is_set():
                self.on_change(document)

        try:
            self.loop.call_soon_threadsafe(deliver)
        except RuntimeError:
            # loop was closed
            self.stopped.set()

    @staticmethod
    def _signature(path: Path) -> tuple[int, int, int] | None:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        # writes swap in a new file
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)
