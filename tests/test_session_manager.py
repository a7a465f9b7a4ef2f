import asyncio

import pytest

from adapters.sqlite_adapter import SQLiteAdapter
from core.config import Config
from core.event_bus import EventBus
from core.storage import Storage
from plugins.bilibili_auth.models import CookieRecord, Identity, PollState
from plugins.bilibili_auth.session_manager import SessionManager, SessionManagerProvider
from plugins.bilibili_auth.session_store import NAMESPACE


async def _login(manager: SessionManager) -> None:
    issued = await manager.flow.generate_code()
    outcome = await manager.flow.poll(issued.code.polling_key)
    assert outcome.state == PollState.SUCCESS


@pytest.mark.asyncio
async def test_provider_builds_single_instance_under_concurrency(storage):
    provider = SessionManagerProvider(storage, Config())

    managers = await asyncio.gather(*(provider.get() for _ in range(20)))

    assert provider.created_count == 1
    assert all(m is managers[0] for m in managers)
    await provider.close()


@pytest.mark.asyncio
async def test_logged_out_without_session(storage):
    provider = SessionManagerProvider(storage, Config())
    manager = await provider.get()

    assert manager.is_logged_in() is False
    assert manager.get_identity() is None
    assert manager.get_cookie_header_string() == ""
    await provider.close()


@pytest.mark.asyncio
async def test_cookie_header_string_format(storage):
    manager = await SessionManager.create(storage, Config())
    await manager.store.save({"h": [CookieRecord("a", "1", "h"), CookieRecord("b", "2", "h")]})

    assert manager.get_cookie_header_string() == "a=1; b=2"
    await manager.close()


@pytest.mark.asyncio
async def test_logout_clears_everything_and_resets_provider(storage, config, fake_bilibili):
    bus = EventBus()
    unlinked = []

    async def on_unlinked(event_type, data):
        unlinked.append(data)

    bus.subscribe("bilibili_auth.unlinked", on_unlinked)
    provider = SessionManagerProvider(storage, config, event_bus=bus)
    manager = await provider.get()
    await _login(manager)
    assert manager.is_logged_in() is True

    await manager.logout()

    assert manager.is_logged_in() is False
    assert manager.get_identity() is None
    assert manager.get_cookie_header_string() == ""
    assert await storage.list_keys(NAMESPACE) == []
    assert len(unlinked) == 1

    fresh = await provider.get()
    assert fresh is not manager
    assert provider.created_count == 2
    assert fresh.is_logged_in() is False
    assert fresh.get_transport().cookie_header("127.0.0.1") == ""
    await provider.close()


@pytest.mark.asyncio
async def test_logout_failure_leaves_session_intact(storage, memory_adapter, config, fake_bilibili):
    provider = SessionManagerProvider(storage, config)
    manager = await provider.get()
    await _login(manager)
    memory_adapter.fail_deletes = True

    with pytest.raises(RuntimeError):
        await manager.logout()

    assert manager.is_logged_in() is True
    assert manager.get_identity().display_name == "u42"
    assert sorted(await storage.list_keys(NAMESPACE)) == ["cookies", "identity", "refresh_token"]
    assert provider.peek() is manager
    await provider.close()


@pytest.mark.asyncio
async def test_response_during_logout_does_not_restore_session(storage, memory_adapter, config, fake_bilibili):
    provider = SessionManagerProvider(storage, config)
    manager = await provider.get()
    await _login(manager)
    jar = manager.get_transport().jar
    memory_adapter.delete_gate = asyncio.Event()

    logout = asyncio.create_task(manager.logout())
    await memory_adapter.delete_blocked.wait()
    # ответ запроса, начатого до logout
    jar.on_response_received("127.0.0.1", ["bili_jct=late; Max-Age=3600"])
    memory_adapter.delete_gate.set()
    await logout
    await jar.flush()

    assert manager.get_cookie_header_string() == ""
    assert manager.is_logged_in() is False
    assert await storage.list_keys(NAMESPACE) == []
    assert jar.cookie_header("127.0.0.1") == ""
    await provider.close()


@pytest.mark.asyncio
async def test_transport_session_carries_cookie_jar(storage, config, fake_bilibili):
    manager = await SessionManager.create(storage, config)
    try:
        await _login(manager)
        transport = manager.get_transport()
        session = transport.session
        assert session.cookie_jar is transport.jar

        async with session.post(f"{fake_bilibili.base_url}/x/v2/history/report", data={"aid": "1"}) as resp:
            assert resp.status == 200
        assert await transport.jar.flush() is True

        assert "SESSDATA=abc123" in fake_bilibili.cookie_sent_to("/x/v2/history/report")
        assert "report_seen=1" in manager.get_cookie_header_string()
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_session_survives_restart_with_sqlite(tmp_path, config, fake_bilibili):
    db_path = str(tmp_path / "auth.db")

    adapter = SQLiteAdapter(db_path)
    await adapter.initialize_schema()
    provider = SessionManagerProvider(Storage(adapter), config)
    await _login(await provider.get())
    await provider.close()
    await adapter.close()

    adapter = SQLiteAdapter(db_path)
    await adapter.initialize_schema()
    provider = SessionManagerProvider(Storage(adapter), config)
    manager = await provider.get()
    try:
        assert manager.is_logged_in() is True
        assert manager.get_identity() == Identity(
            subject_id=42,
            display_name="u42",
            avatar_url="https://i0.hdslb.com/face.jpg",
            tier_status=1,
            tier_type=2,
        )
        assert "SESSDATA=abc123" in manager.get_cookie_header_string()

        # В памяти cookies нет: запрос идёт с cookies из durable карты
        outcome = await manager.flow.refresh_identity()
        assert outcome.state == PollState.SUCCESS
        assert "SESSDATA=abc123" in fake_bilibili.cookie_sent_to("/x/web-interface/nav")
    finally:
        await provider.close()
        await adapter.close()
