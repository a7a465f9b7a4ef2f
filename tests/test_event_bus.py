import pytest

from core.event_bus import EventBus


@pytest.mark.asyncio
async def test_subscribe_and_publish():
    bus = EventBus()
    received = {}

    async def handler(event_type, data):
        received['type'] = event_type
        received['data'] = data

    bus.subscribe('bilibili_auth.linked', handler)
    await bus.publish('bilibili_auth.linked', {'subject_id': 1})

    assert received['type'] == 'bilibili_auth.linked'
    assert received['data'] == {'subject_id': 1}


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()

    async def handler(event_type, data):
        raise RuntimeError('should not be called')

    bus.subscribe('a', handler)
    bus.unsubscribe('a', handler)
    await bus.publish('a', {})
    assert bus.get_subscribers_count('a') == 0


@pytest.mark.asyncio
async def test_publish_handler_exception_ignored():
    bus = EventBus()
    called = False

    async def bad(event_type, data):
        raise ValueError('boom')

    async def good(event_type, data):
        nonlocal called
        called = True

    bus.subscribe('e', bad)
    bus.subscribe('e', good)

    await bus.publish('e', {})
    assert called is True


@pytest.mark.asyncio
async def test_publish_without_subscribers():
    bus = EventBus()
    await bus.publish('nobody.listens', {'x': 1})


def test_subscribers_count_and_clear():
    bus = EventBus()

    async def h(event_type, data):
        pass

    bus.subscribe('x', h)
    bus.subscribe('x', h)
    assert bus.get_subscribers_count('x') == 2
    bus.clear()
    assert bus.get_subscribers_count('x') == 0
