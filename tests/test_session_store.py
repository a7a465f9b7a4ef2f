import asyncio
import time

import pytest

from plugins.bilibili_auth.models import CookieRecord, Identity
from plugins.bilibili_auth.session_store import NAMESPACE, SessionSnapshot, SessionStore


def _cookie(name, value, host="api.bilibili.com", expires_at=None):
    return CookieRecord(name=name, value=value, host=host, expires_at=expires_at)


def test_empty_snapshot_has_read_only_empty_maps():
    snapshot = SessionSnapshot()

    assert snapshot.cookies == {}
    assert snapshot.expires == {}
    assert snapshot.live_cookies() == {}
    assert snapshot.records_for_host("h") == []
    with pytest.raises(TypeError):
        snapshot.cookies["a"] = "1"


@pytest.mark.asyncio
async def test_save_and_load_for_host(storage):
    store = SessionStore(storage)
    await store.save({"passport.bilibili.com": [_cookie("SESSDATA", "abc", "passport.bilibili.com")]})

    records = await store.load_for_host("api.bilibili.com")

    assert [(r.name, r.value, r.host) for r in records] == [("SESSDATA", "abc", "api.bilibili.com")]


@pytest.mark.asyncio
async def test_newest_write_wins_across_hosts(storage):
    store = SessionStore(storage)
    await store.save({"a.example": [_cookie("sid", "old", "a.example")]})
    await store.save({"b.example": [_cookie("sid", "new", "b.example")]})

    assert store.current().cookies == {"sid": "new"}


@pytest.mark.asyncio
async def test_expired_cookies_excluded(storage):
    store = SessionStore(storage)
    now = time.time()
    await store.save({
        "h": [
            _cookie("gone", "1", "h", expires_at=now - 10),
            _cookie("alive", "2", "h", expires_at=now + 3600),
            _cookie("session", "3", "h"),
        ]
    })

    names = sorted(r.name for r in await store.load_for_host("h"))
    assert names == ["alive", "session"]


@pytest.mark.asyncio
async def test_identical_save_is_noop(storage, memory_adapter):
    store = SessionStore(storage)
    records = {"h": [_cookie("SESSDATA", "abc", "h")]}
    assert await store.save(records) is True
    writes = len(memory_adapter.writes)

    assert await store.save(records) is False
    assert len(memory_adapter.writes) == writes

    identity = Identity(subject_id=42, display_name="u42")
    assert await store.save_identity(identity) is True
    assert await store.save_identity(Identity(subject_id=42, display_name="u42")) is False

    assert await store.save_refresh_token("rt") is True
    assert await store.save_refresh_token("rt") is False


@pytest.mark.asyncio
async def test_state_survives_new_store_instance(storage):
    store = SessionStore(storage)
    await store.save({"h": [_cookie("SESSDATA", "abc", "h")]})
    await store.save_identity(Identity(subject_id=42, display_name="u42", tier_status=1, tier_type=2))
    await store.save_refresh_token("rt")

    restored = SessionStore(storage)
    snapshot = await restored.load()

    assert snapshot.identity == Identity(subject_id=42, display_name="u42", tier_status=1, tier_type=2)
    assert snapshot.cookies == {"SESSDATA": "abc"}
    assert await restored.load_refresh_token() == "rt"


@pytest.mark.asyncio
async def test_malformed_identity_ignored(storage):
    await storage.set(NAMESPACE, "identity", {"display_name": "no id"})
    store = SessionStore(storage)
    assert await store.load_identity() is None


@pytest.mark.asyncio
async def test_clear_removes_everything(storage):
    store = SessionStore(storage)
    await store.save({"h": [_cookie("SESSDATA", "abc", "h")]})
    await store.save_identity(Identity(subject_id=1, display_name="x"))
    await store.save_refresh_token("rt")

    await store.clear()

    assert store.current().identity is None
    assert store.current().cookies == {}
    assert await storage.list_keys(NAMESPACE) == []
    assert await SessionStore(storage).load_identity() is None


@pytest.mark.asyncio
async def test_clear_failure_keeps_old_state(storage, memory_adapter):
    store = SessionStore(storage)
    await store.save({"h": [_cookie("SESSDATA", "abc", "h")]})
    await store.save_identity(Identity(subject_id=1, display_name="x"))
    memory_adapter.fail_deletes = True

    with pytest.raises(RuntimeError):
        await store.clear()

    assert store.current().identity == Identity(subject_id=1, display_name="x")
    assert sorted(await storage.list_keys(NAMESPACE)) == ["cookies", "identity"]


@pytest.mark.asyncio
async def test_readers_see_old_or_cleared_never_mixed(storage):
    store = SessionStore(storage)
    await store.save({"h": [_cookie("SESSDATA", "abc", "h")]})
    await store.save_identity(Identity(subject_id=1, display_name="x"))

    observed = []
    done = asyncio.Event()

    async def reader():
        while not done.is_set():
            snap = store.current()
            observed.append((snap.identity is not None, bool(snap.cookies)))
            await asyncio.sleep(0)

    task = asyncio.create_task(reader())
    await asyncio.sleep(0)
    await store.clear()
    await asyncio.sleep(0)
    done.set()
    await task

    assert set(observed) <= {(True, True), (False, False)}
    assert observed[-1] == (False, False)
