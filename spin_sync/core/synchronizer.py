"""
Implementation of the shared elimination session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from logging import Logger
from typing import Any, Callable, Iterable

from ..lib.roster import DEFAULT_IMAGES, DEFAULT_ROSTER, get_display_image
from .document import Selection, SessionDocument
from .exceptions import InvalidDocument, RemoteUnavailable
from .policy import DrawPolicy
from .store.base import BaseStore, Unsubscribe

__all__ = [
    "STARTUP_TIMEOUT",
    "DISPLAY_TIMEOUT",
    "SyncState",
    "Projection",
    "SelectionResult",
    "UndoRecord",
    "Synchronizer",
]

STARTUP_TIMEOUT = 5.0
"""
Seconds to wait for the remote store before seeding the session locally.
"""

DISPLAY_TIMEOUT = 5.0
"""
Seconds after which a new selection is automatically dismissed.
"""


class SyncState(Enum):
    """
    State of a {obj}`Synchronizer`.
    """

    UNINITIALIZED = auto()
    """Not started"""

    AWAITING_REMOTE = auto()
    """Started, waiting for the session from the remote store"""

    READY = auto()
    """Session available; terminal"""


@dataclass(frozen=True, kw_only=True)
class Projection:
    """
    Read-only snapshot of a session as rendered by a presentation layer.
    """

    roster: tuple[str, ...]
    drawn_set: tuple[str, ...]
    current_selection: Selection | None
    is_awaiting_remote: bool
    can_undo: bool
    selection_visible: bool

    @property
    def remaining(self) -> tuple[str, ...]:
        """
        Identifiers not drawn yet, in roster order.
        """
        drawn = set(self.drawn_set)
        return tuple(i for i in self.roster if i not in drawn)


@dataclass(frozen=True, kw_only=True)
class SelectionResult:
    """
    Outcome of a draw.
    """

    identifier: str
    display_image: str

    wheel_index: int
    """
    Wheel segment on which a presentation layer should land.
    """

    animated: bool
    """
    Whether the wheel should spin; `False` if this was the last identifier.
    """


@dataclass(frozen=True, kw_only=True)
class UndoRecord:
    """
    Local snapshot taken just before a draw. Never synchronized.
    """

    previous_roster: tuple[str, ...]
    previous_drawn_set: tuple[str, ...]
    previous_selection: Selection | None


class Synchronizer:
    """
    Owns the local projection of a session and keeps it consistent with the
    remote store.

    Local intents ({obj}`Synchronizer.draw`, {obj}`Synchronizer.undo`,
    {obj}`Synchronizer.reset`) update the projection immediately and push the
    full session document without waiting for the write to complete. Every
    push received from the store replaces the projection. Concurrent writers
    race and the last write wins; a draw computed from a stale projection
    may be silently overwritten by another client.

    Must be used from a running event loop. For example:

    ```
    async with Synchronizer(store, "my-session") as sync:
        result = sync.draw()
    ```
    """

    _store: BaseStore
    _key: str
    _client_id: str
    _default_roster: tuple[str, ...]
    _images: dict[str, str]
    _policy: DrawPolicy
    _timeout: float
    _display_timeout: float | None
    _logger: Logger

    _state: SyncState = SyncState.UNINITIALIZED

    _roster: list[str]
    _drawn_set: list[str]
    _selection: Selection | None = None
    _selection_visible: bool = False
    _undo: UndoRecord | None = None

    _revision: int = 0
    """
    Highest revision seen or written.
    """

    _last_written: int = 0
    """
    Revision of this client's latest write.
    """

    _init_done: bool = False
    _got_push: bool = False
    _closed: bool = False

    _ready: asyncio.Event
    _startup_task: asyncio.Task | None = None
    _timeout_handle: asyncio.TimerHandle | None = None
    _display_handle: asyncio.TimerHandle | None = None
    _unsubscribe: Unsubscribe | None = None
    _writes: set[asyncio.Task]
    _write_lock: asyncio.Lock
    _listeners: list[Callable[[Projection], Any]]

    def __init__(
        self,
        store: BaseStore,
        key: str,
        *,
        roster: Iterable[str] | None = None,
        images: dict[str, str] | None = None,
        policy: DrawPolicy | None = None,
        timeout: float = STARTUP_TIMEOUT,
        display_timeout: float | None = DISPLAY_TIMEOUT,
        client_id: str | None = None,
        logger: Logger | None = None,
    ):
        """
        :param store: Remote store holding the session
        :param key: Session key as resolved by {obj}`SessionIdentityResolver`
        :param roster: Canonical roster for new and reset sessions
        :param images: Mapping of identifiers to display images
        :param policy: Policy choosing the next identifier to draw
        :param timeout: Seconds to wait for the store before seeding the session locally
        :param display_timeout: Seconds after which a selection is dismissed, or `None` to keep it until dismissed
        :param client_id: Id written along with documents, generated if not provided
        :param logger: Logger to use, or `None` to use default logger
        """
        self._store = store
        self._key = key
        self._client_id = client_id or uuid.uuid4().hex
        self._default_roster = tuple(
            dict.fromkeys(DEFAULT_ROSTER if roster is None else roster)
        )
        self._images = DEFAULT_IMAGES if images is None else images
        self._policy = policy or DrawPolicy()
        self._timeout = timeout
        self._display_timeout = display_timeout
        self._logger = logger or logging.getLogger()

        self._roster = []
        self._drawn_set = []
        self._ready = asyncio.Event()
        self._writes = set()
        self._write_lock = asyncio.Lock()
        self._listeners = list()

    def __str__(self):
        return f"Synchronizer: key='{self._key}', state={self._state.name}, drawn={len(self._drawn_set)}/{len(self._roster)}"

    async def __aenter__(self):
        self._logger.debug(f"Entering context: {self}")
        self.start()
        await self.wait_ready()
        return self

    async def __aexit__(self, exc_type, exc_val, traceback):
        if exc_type:
            self._logger.error(f"Exiting context with error: {self}")
        else:
            self._logger.debug(f"Exiting context: {self}")

        await self.close()

    @property
    def key(self) -> str:
        return self._key

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def undo_record(self) -> UndoRecord | None:
        return self._undo

    @property
    def projection(self) -> Projection:
        """
        Current projection of the session.
        """
        return Projection(
            roster=tuple(self._roster),
            drawn_set=tuple(self._drawn_set),
            current_selection=self._selection,
            is_awaiting_remote=self._state is not SyncState.READY,
            can_undo=self._undo is not None,
            selection_visible=self._selection_visible,
        )

    def start(self):
        """
        Begin joining the session. Returns immediately; use
        {obj}`Synchronizer.wait_ready` to wait until the session is
        available.
        """
        assert (
            self._state is SyncState.UNINITIALIZED
        ), f"Synchronizer already started: {self}"

        loop = asyncio.get_running_loop()

        self._set_state(SyncState.AWAITING_REMOTE)
        self._timeout_handle = loop.call_later(self._timeout, self._on_timeout)
        self._startup_task = loop.create_task(self._startup())

    async def wait_ready(self):
        """
        Wait until the session is available, either from the remote store or
        seeded locally after the startup timeout.
        """
        await self._ready.wait()

    def add_listener(
        self, listener: Callable[[Projection], Any]
    ) -> Callable[[], None]:
        """
        Register a callable to be invoked with the new projection upon every
        change.

        :returns: Callable which removes the listener
        """
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def draw(self) -> SelectionResult | None:
        """
        Draw the next identifier and push the session.

        No-op if all identifiers are drawn or the session isn't ready yet.

        :returns: Result of the draw, or `None` if nothing was drawn
        """
        if self._state is not SyncState.READY:
            self._logger.debug(f"Ignoring draw while not ready: {self}")
            return None

        remaining = self._policy.remaining(self._roster, self._drawn_set)
        if not remaining:
            self._logger.debug(f"Ignoring draw with nothing left: {self}")
            return None

        identifier = remaining[0]

        self._undo = UndoRecord(
            previous_roster=tuple(self._roster),
            previous_drawn_set=tuple(self._drawn_set),
            previous_selection=self._selection,
        )

        self._drawn_set = [identifier] + self._drawn_set
        self._selection = Selection(
            identifier=identifier,
            display_image=get_display_image(identifier, self._images),
        )
        self._show_selection()

        self._logger.debug(f"Drew '{identifier}': {self}")

        self._push()
        self._notify()

        return SelectionResult(
            identifier=identifier,
            display_image=self._selection.display_image,
            wheel_index=self._policy.wheel_index(self._roster, identifier),
            animated=len(remaining) > 1,
        )

    def undo(self) -> bool:
        """
        Revert the most recent local draw and push the session.

        No-op if there's nothing to undo, e.g. the last draw was made by
        another client.

        :returns: Whether a draw was reverted
        """
        if self._undo is None:
            self._logger.debug(f"Ignoring undo with nothing to undo: {self}")
            return False

        record = self._undo
        self._undo = None

        self._roster = list(record.previous_roster)
        self._drawn_set = list(record.previous_drawn_set)
        self._selection = record.previous_selection
        self._hide_selection()

        self._logger.debug(f"Reverted draw: {self}")

        self._push()
        self._notify()

        return True

    def reset(self):
        """
        Restore the canonical roster with nothing drawn and push the session.
        """
        self._roster = list(self._default_roster)
        self._drawn_set = []
        self._selection = None
        self._undo = None
        self._hide_selection()

        self._logger.debug(f"Reset session: {self}")

        self._push()
        self._notify()

    def dismiss_selection(self):
        """
        Hide the celebratory display of the current selection.
        """
        if not self._selection_visible:
            return

        self._hide_selection()
        self._notify()

    # names used by presentation layers
    request_draw = draw
    request_undo = undo
    request_reset = reset

    async def flush(self):
        """
        Wait for all pending writes to complete.
        """
        while self._writes:
            await asyncio.gather(*list(self._writes))

    async def close(self):
        """
        Stop synchronizing: cancel timers, unsubscribe and wait for pending
        writes. Writes still pending after the startup timeout are
        abandoned.
        """
        self._closed = True

        self._cancel_timeout()
        if self._display_handle is not None:
            self._display_handle.cancel()
            self._display_handle = None

        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._startup_task

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._writes:
            _, pending = await asyncio.wait(
                list(self._writes), timeout=self._timeout
            )

            for task in pending:
                self._logger.warning(
                    f"Abandoning write to session '{self._key}' still pending after {self._timeout}s"
                )
                task.cancel()

    async def _startup(self):
        """
        Create the session if absent, then subscribe. Subscribing only after
        creating ensures an absent session is never taken as final.
        """
        try:
            payload = await self._store.read(self._key)
        except RemoteUnavailable as e:
            self._logger.error(f"Failed to initialize session: {e}")
            self._fallback()
        else:
            if not _is_initialized(payload):
                self._logger.info(f"Creating session '{self._key}'")

                document = self._new_document(
                    roster=list(self._default_roster), drawn_set=[]
                )

                # ordered with writes of intents made after a timeout
                write = self._schedule_write(document)
                if not await asyncio.shield(write):
                    self._fallback()

        self._init_done = True

        try:
            self._unsubscribe = self._store.subscribe(self._key, self._on_push)
        except RemoteUnavailable as e:
            self._logger.error(f"Failed to subscribe to session: {e}")
            self._fallback()

        self._check_ready()

    def _on_push(self, payload: dict[str, Any] | None):
        if self._closed:
            return

        if payload is None:
            self._logger.debug(f"Ignoring push of absent session '{self._key}'")
            return

        try:
            document = SessionDocument.from_remote(payload)
        except InvalidDocument as e:
            self._logger.warning(f"Ignoring push: {e}")
            return

        # genuine remote response
        self._cancel_timeout()

        is_own = document.writer == self._client_id
        is_latest_own = is_own and document.revision >= self._last_written

        # an older own write will be superseded by one still pending
        if is_own and not is_latest_own and self._writes:
            self._logger.debug(
                f"Ignoring stale echo of revision {document.revision}"
            )
            return

        self._revision = max(self._revision, document.revision)

        previous_selection = self._selection

        self._roster = list(document.roster)
        self._drawn_set = list(document.drawn_set)
        self._selection = document.current_selection

        # undo only applies to the state this client produced last
        if not is_latest_own:
            self._undo = None

        if self._selection is None:
            self._hide_selection()
        elif self._selection != previous_selection:
            self._show_selection()

        self._logger.debug(
            f"Applied push from {'self' if is_own else document.writer}: {self}"
        )

        self._got_push = True
        self._check_ready()
        self._notify()

    def _on_timeout(self):
        self._timeout_handle = None

        if self._state is SyncState.AWAITING_REMOTE:
            self._logger.warning(
                f"No response for session '{self._key}' within {self._timeout}s, continuing locally"
            )
            self._seed_local()

    def _fallback(self):
        self._cancel_timeout()

        if self._state is SyncState.AWAITING_REMOTE:
            self._logger.warning(
                f"Session '{self._key}' unavailable, continuing locally"
            )
            self._seed_local()

    def _seed_local(self):
        self._roster = list(self._default_roster)
        self._drawn_set = []
        self._selection = None
        self._undo = None

        self._set_state(SyncState.READY)
        self._notify()

    def _check_ready(self):
        if (
            self._state is SyncState.AWAITING_REMOTE
            and self._init_done
            and self._got_push
        ):
            self._set_state(SyncState.READY)

    def _set_state(self, state: SyncState):
        self._logger.debug(
            f"Session '{self._key}': {self._state.name} -> {state.name}"
        )
        self._state = state

        if state is SyncState.READY:
            self._ready.set()

    def _cancel_timeout(self):
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _show_selection(self):
        if self._display_handle is not None:
            self._display_handle.cancel()
            self._display_handle = None

        self._selection_visible = True

        if self._display_timeout is not None:
            self._display_handle = asyncio.get_running_loop().call_later(
                self._display_timeout, self._auto_dismiss
            )

    def _hide_selection(self):
        if self._display_handle is not None:
            self._display_handle.cancel()
            self._display_handle = None

        self._selection_visible = False

    def _auto_dismiss(self):
        self._display_handle = None
        self._selection_visible = False
        self._notify()

    def _new_document(
        self,
        *,
        roster: list[str],
        drawn_set: list[str],
        current_selection: Selection | None = None,
    ) -> SessionDocument:
        self._revision += 1
        self._last_written = self._revision

        return SessionDocument(
            initialized=True,
            roster=roster,
            drawn_set=drawn_set,
            current_selection=current_selection,
            revision=self._revision,
            writer=self._client_id,
        )

    def _push(self):
        """
        Write the full session without waiting for the result.
        """
        document = self._new_document(
            roster=list(self._roster),
            drawn_set=list(self._drawn_set),
            current_selection=self._selection,
        )

        self._schedule_write(document)

    def _schedule_write(
        self, document: SessionDocument
    ) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(self._write(document))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)
        return task

    async def _write(self, document: SessionDocument) -> bool:
        # writes complete in the order they were issued
        async with self._write_lock:
            try:
                await self._store.write(self._key, document.to_remote())
            except RemoteUnavailable as e:
                # keep local state; no retry
                self._logger.error(f"Failed to push session: {e}")
                return False

        return True

    def _notify(self):
        projection = self.projection
        for listener in list(self._listeners):
            listener(projection)


def _is_initialized(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("initialized") is True
