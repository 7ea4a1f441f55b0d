from __future__ import annotations

import asyncio
import copy
import json
import logging
import threading
from logging import Logger
from typing import Any, Iterator
from urllib.parse import quote

import requests

from ..exceptions import RemoteUnavailable
from .base import SESSIONS_PATH, BaseStore, ChangeCallback, Unsubscribe

__all__ = [
    "FirebaseStore",
]

REQUEST_TIMEOUT = 10.0
"""
Timeout for reads and writes, and for connecting a subscription.
"""

RECONNECT_DELAY = 2.0
"""
Seconds to wait before reconnecting a dropped subscription.
"""

STREAM_READ_TIMEOUT = 60.0
"""
Seconds without any event, keep-alives included, after which a subscription
is considered dropped.
"""


class FirebaseStore(BaseStore):
    """
    Store backed by a Firebase Realtime Database, accessed through its REST
    interface. Subscriptions use the server-sent events streaming endpoint
    and run in a background thread.
    """

    _url: str
    _token: str | None
    _timeout: float
    _http: requests.Session
    _streams: list[_Stream]
    _logger: Logger

    def __init__(
        self,
        url: str,
        token: str | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT,
        logger: Logger | None = None,
    ):
        """
        :param url: Database URL, e.g. `https://my-db.firebaseio.com`
        :param token: Auth token or database secret, if required by the database rules
        :param timeout: Request timeout in seconds
        :param logger: Logger to use, or `None` to use default logger
        """
        self._url = url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._http = requests.Session()
        self._streams = list()
        self._logger = logger or logging.getLogger()

    def __str__(self):
        return f"FirebaseStore: url='{self._url}'"

    @property
    def url(self) -> str:
        return self._url

    def get_url(self, key: str) -> str:
        """
        Get REST endpoint of the document for key.
        """
        return f"{self._url}/{SESSIONS_PATH}/{quote(key, safe='')}.json"

    @property
    def _params(self) -> dict[str, str]:
        return {"auth": self._token} if self._token else {}

    async def read(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._request, "read", key, "GET")

    async def write(self, key: str, document: dict[str, Any]):
        await asyncio.to_thread(
            self._request, "write", key, "PUT", json.dumps(document)
        )

    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        stream = _Stream(self, key, on_change, asyncio.get_running_loop())
        self._streams.append(stream)
        stream.start()

        def unsubscribe():
            stream.stop()
            if stream in self._streams:
                self._streams.remove(stream)

        return unsubscribe

    async def close(self):
        for stream in list(self._streams):
            stream.stop()
        self._streams.clear()
        self._http.close()

    def _request(
        self, operation: str, key: str, method: str, data: str | None = None
    ) -> Any:
        try:
            response = self._http.request(
                method,
                self.get_url(key),
                params=self._params,
                data=data,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteUnavailable(operation, key, str(e))


class _Stream(threading.Thread):
    """
    Consumes the event stream of a session and hands the resulting document
    to the event loop upon every change.
    """

    def __init__(
        self,
        store: FirebaseStore,
        key: str,
        on_change: ChangeCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        super().__init__(name=f"spin-sync-stream-{key}", daemon=True)
        self.store = store
        self.key = key
        self.on_change = on_change
        self.loop = loop
        self.stopped = threading.Event()
        self.response: requests.Response | None = None
        self.document: Any = None

    def stop(self):
        self.stopped.set()
        if self.response is not None:
            self.response.close()

    def run(self):
        while not self.stopped.is_set():
            try:
                self._consume()
            except requests.RequestException as e:
                if self.stopped.is_set():
                    break
                self.store._logger.error(
                    f"Subscription to session '{self.key}' dropped: {e}"
                )

            self.stopped.wait(RECONNECT_DELAY)

    def _consume(self):
        self.response = requests.get(
            self.store.get_url(self.key),
            params=self.store._params,
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=(self.store._timeout, STREAM_READ_TIMEOUT),
        )

        with self.response:
            self.response.raise_for_status()

            for event, data in _iter_events(self.response.iter_lines()):
                if self.stopped.is_set():
                    return

                if event in ("put", "patch"):
                    try:
                        payload = json.loads(data)
                    except ValueError as e:
                        self.store._logger.warning(
                            f"Ignoring malformed event for session '{self.key}': {e}"
                        )
                        continue

                    self.document = _apply_event(
                        self.document,
                        payload.get("path", "/"),
                        payload.get("data"),
                        merge=event == "patch",
                    )
                    self._deliver(copy.deepcopy(self.document))

                elif event in ("cancel", "auth_revoked"):
                    self.store._logger.error(
                        f"Subscription to session '{self.key}' closed by server: {event} {data}"
                    )
                    self.stop()
                    return

    def _deliver(self, document: Any):
        def deliver():
            if not self.stopped.is_set():
                self.on_change(document)

        try:
            self.loop.call_soon_threadsafe(deliver)
        except RuntimeError:
            # loop was closed
            self.stopped.set()


def _iter_events(lines: Iterator[bytes | str]) -> Iterator[tuple[str, str]]:
    """
    Parse server-sent events into (event, data) tuples.
    """
    event: str | None = None
    data: list[str] = []

    for raw in lines:
        line = raw.decode() if isinstance(raw, bytes) else raw

        if not line:
            if event is not None:
                yield event, "\n".join(data)
            event, data = None, []
        elif line.startswith("event:"):
            event = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data.append(line[len("data:") :].strip())

    if event is not None:
        yield event, "\n".join(data)


def _apply_event(document: Any, path: str, data: Any, *, merge: bool) -> Any:
    """
    Apply a `put` or `patch` event at path to the cached document.
    """
    parts = [p for p in path.split("/") if p]

    if not parts:
        if merge:
            return _merge(document, data)
        return data

    root = _as_dict(document)
    node = root

    for part in parts[:-1]:
        child = _as_dict(node.get(part))
        node[part] = child
        node = child

    last = parts[-1]
    if merge:
        node[last] = _merge(node.get(last), data)
    elif data is None:
        node.pop(last, None)
    else:
        node[last] = data

    return root


def _merge(document: Any, data: Any) -> dict[str, Any]:
    merged = _as_dict(document)
    for name, value in (data or {}).items():
        if value is None:
            merged.pop(name, None)
        else:
            merged[name] = value
    return merged


def _as_dict(value: Any) -> dict[str, Any]:
    # lists are addressed by index in event paths
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value)}
    if isinstance(value, dict):
        return dict(value)
    return {}
