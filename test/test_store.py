import asyncio
import logging
import os
from pathlib import Path
from typing import Any

import requests
from pytest import MonkeyPatch, raises

from spin_sync import *
from spin_sync.core.store import firebase
from spin_sync.core.store.file import _Poller
from spin_sync.core.store.firebase import (
    STREAM_READ_TIMEOUT,
    _apply_event,
    _iter_events,
    _Stream,
)

from .conftest import KEY, ROSTER


def test_memory_store():
    async def run():
        store = MemoryStore()
        changes: list[dict[str, Any] | None] = []

        assert await store.read(KEY) is None

        unsubscribe = store.subscribe(KEY, changes.append)
        assert store.subscriber_count == 1

        # current value is delivered via the loop, not inline
        assert changes == []
        await asyncio.sleep(0)
        assert changes == [None]

        document = {"initialized": True, "roster": list(ROSTER)}
        await store.write(KEY, document)
        await store.write("other-session", {"initialized": True})
        await asyncio.sleep(0)

        assert changes == [None, document]

        # stored and delivered documents are copies
        document["roster"].append("Echo")
        changes[-1]["roster"].clear()
        assert (await store.read(KEY))["roster"] == ROSTER

        unsubscribe()
        assert store.subscriber_count == 0

        await store.write(KEY, {"initialized": True})
        await asyncio.sleep(0)
        assert len(changes) == 2

    asyncio.run(run())


def test_file_store(tmp_path: Path):
    async def run():
        store = FileStore(tmp_path / "sessions", poll_interval=0.01)
        key = "group/with spaces"

        assert await store.read(key) is None

        document = SessionDocument.fresh(ROSTER).to_remote()
        await store.write(key, document)

        path = store.get_path(key)
        assert path.is_file()
        assert path.parent == tmp_path / "sessions" / "sessions"
        assert await store.read(key) == document

        await store.close()

    asyncio.run(run())


def test_file_store_subscribe(tmp_path: Path):
    async def run():
        store = FileStore(tmp_path, poll_interval=0.01)
        changes: list[dict[str, Any] | None] = []

        unsubscribe = store.subscribe(KEY, changes.append)

        async def wait_for(count: int):
            for _ in range(200):
                if len(changes) >= count:
                    return
                await asyncio.sleep(0.01)

        await wait_for(1)
        assert changes == [None]

        document = SessionDocument.fresh(ROSTER).to_remote()
        await store.write(KEY, document)
        await wait_for(2)
        assert changes[-1] == document

        unsubscribe()
        await store.close()

    asyncio.run(run())


def test_file_store_sync(tmp_path: Path):
    """
    Draw from a client attached to one file store and verify a client
    attached to another instance on the same folder follows.
    """

    async def run():
        store_1 = FileStore(tmp_path, poll_interval=0.01)
        store_2 = FileStore(tmp_path, poll_interval=0.01)

        async with Synchronizer(
            store_1, KEY, roster=ROSTER, policy=DrawPolicy(ROSTER)
        ) as client_1, Synchronizer(
            store_2, KEY, roster=ROSTER, policy=DrawPolicy(ROSTER)
        ) as client_2:
            result = client_1.draw()
            await client_1.flush()

            for _ in range(200):
                if client_2.projection.drawn_set:
                    break
                await asyncio.sleep(0.01)

            assert client_2.projection.drawn_set == (result.identifier,)
            assert not client_2.projection.can_undo

        await store_1.close()
        await store_2.close()

    asyncio.run(run())


def test_file_store_same_size_writes(tmp_path: Path):
    """
    Replace a session file with one of the same size and timestamp and verify
    the change is still detected.
    """
    store = FileStore(tmp_path)
    path = store.get_path(KEY)

    FileStore._dump(path, SessionDocument.fresh(["Alpha"]).to_remote())
    before = _Poller._signature(path)

    FileStore._dump(path, SessionDocument.fresh(["Bravo"]).to_remote())
    os.utime(path, ns=(path.stat().st_atime_ns, before[1]))
    after = _Poller._signature(path)

    assert after[1:] == before[1:]
    assert after != before


def test_file_store_unavailable(tmp_path: Path):
    # a file where the folder should be
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    async def run():
        store = FileStore(blocker)

        with raises(RemoteUnavailable) as e:
            await store.write(KEY, {"initialized": True})

        assert e.value.operation == "write"
        assert e.value.key == KEY

    asyncio.run(run())


def test_firebase_url():
    store = FirebaseStore("https://example.firebaseio.com/", "secret")

    assert store.url == "https://example.firebaseio.com"
    assert (
        store.get_url("my group")
        == "https://example.firebaseio.com/sessions/my%20group.json"
    )
    assert store._params == {"auth": "secret"}
    assert FirebaseStore("https://example.firebaseio.com")._params == {}


def test_firebase_unavailable(monkeypatch: MonkeyPatch):
    def request(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    async def run():
        store = FirebaseStore("https://example.firebaseio.com")
        monkeypatch.setattr(store._http, "request", request)

        with raises(RemoteUnavailable) as e:
            await store.read(KEY)
        assert e.value.operation == "read"
        assert "connection refused" in e.value.reason

        with raises(RemoteUnavailable):
            await store.write(KEY, {"initialized": True})

        await store.close()

    asyncio.run(run())


def test_firebase_unavailable_startup(monkeypatch: MonkeyPatch, caplog):
    """
    Join a session on an unreachable database and verify the session is
    seeded locally.
    """

    def request(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    def get(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    async def run():
        store = FirebaseStore("https://example.firebaseio.com")
        monkeypatch.setattr(store._http, "request", request)
        monkeypatch.setattr(requests, "get", get)

        with caplog.at_level(logging.ERROR):
            async with Synchronizer(store, KEY, timeout=5.0) as sync:
                assert sync.projection.roster == DEFAULT_ROSTER

        await store.close()

    asyncio.run(run())
    assert "Failed to initialize session" in caplog.text


def test_firebase_stream_timeout(monkeypatch: MonkeyPatch):
    """
    Verify a subscription stream times out when the server goes silent and
    gets reconnected.
    """
    calls: list[dict[str, Any]] = []

    def get(*args, **kwargs):
        calls.append(kwargs)

        if len(calls) == 1:
            raise requests.ReadTimeout("read timed out")

        stream.stop()
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "get", get)
    monkeypatch.setattr(firebase, "RECONNECT_DELAY", 0.01)

    store = FirebaseStore("https://example.firebaseio.com", timeout=3.0)
    loop = asyncio.new_event_loop()

    try:
        stream = _Stream(store, KEY, lambda document: None, loop)
        stream.run()
    finally:
        loop.close()

    assert len(calls) == 2
    assert calls[0]["stream"] is True
    assert calls[0]["timeout"] == (3.0, STREAM_READ_TIMEOUT)


def test_iter_events():
    lines = [
        b"event: put",
        b'data: {"path": "/", "data": {"initialized": true}}',
        b"",
        b"event: keep-alive",
        b"data: null",
        b"",
        "event: patch",
        'data: {"path": "/", "data": {"revision": 2}}',
    ]

    assert list(_iter_events(iter(lines))) == [
        ("put", '{"path": "/", "data": {"initialized": true}}'),
        ("keep-alive", "null"),
        ("patch", '{"path": "/", "data": {"revision": 2}}'),
    ]


def test_apply_event():
    document = _apply_event(
        None,
        "/",
        {"initialized": True, "roster": ["Alpha", "Bravo"]},
        merge=False,
    )
    assert document == {"initialized": True, "roster": ["Alpha", "Bravo"]}

    # set nested value addressed by list index
    document = _apply_event(document, "/drawnSet/0", "Bravo", merge=False)
    assert document["drawnSet"] == {"0": "Bravo"}

    # merge fields, removing those set to null
    document = _apply_event(
        document,
        "/",
        {"revision": 4, "initialized": None},
        merge=True,
    )
    assert document["revision"] == 4
    assert "initialized" not in document

    # remove a subtree
    document = _apply_event(document, "/drawnSet", None, merge=False)
    assert "drawnSet" not in document

    # nested lists are readable as documents
    parsed = SessionDocument.from_remote(
        _apply_event(document, "/roster/1", "Charlie", merge=False)
    )
    assert parsed.roster == ["Alpha", "Charlie"]

    # delete whole document
    assert _apply_event(document, "/", None, merge=False) is None
