import pytest

from core.plugin_manager import PluginManager, PluginState
from plugins.base_plugin import BasePlugin, PluginMetadata


class DummyPlugin(BasePlugin):
    def __init__(self, runtime, name='dummy', deps=None, journal=None):
        super().__init__(runtime)
        self._meta = PluginMetadata(name=name, version='0.1', dependencies=(deps or []))
        self.journal = journal if journal is not None else []

    @property
    def metadata(self):
        return self._meta

    async def on_load(self):
        self.journal.append(('load', self._meta.name))
        await super().on_load()

    async def on_start(self):
        self.journal.append(('start', self._meta.name))
        await super().on_start()

    async def on_stop(self):
        self.journal.append(('stop', self._meta.name))
        await super().on_stop()

    async def on_unload(self):
        self.journal.append(('unload', self._meta.name))
        await super().on_unload()


class BadLoadPlugin(DummyPlugin):
    async def on_load(self):
        raise RuntimeError('bad')


class BadStartPlugin(DummyPlugin):
    async def on_start(self):
        raise RuntimeError('bad start')


@pytest.mark.asyncio
async def test_load_start_stop_unload():
    pm = PluginManager()
    dp = DummyPlugin(None, name='p1')
    await pm.load_plugin(dp)
    assert pm.get_plugin_state('p1') == PluginState.LOADED
    assert dp.is_loaded

    await pm.start_plugin('p1')
    assert pm.get_plugin_state('p1') == PluginState.STARTED
    assert dp.is_started

    await pm.stop_plugin('p1')
    assert pm.get_plugin_state('p1') == PluginState.STOPPED

    await pm.unload_plugin('p1')
    assert pm.get_plugin_state('p1') is None
    assert pm.get_plugin('p1') is None
    assert not dp.is_loaded


@pytest.mark.asyncio
async def test_duplicate_load_raises():
    pm = PluginManager()
    await pm.load_plugin(DummyPlugin(None, name='p'))
    with pytest.raises(ValueError):
        await pm.load_plugin(DummyPlugin(None, name='p'))


@pytest.mark.asyncio
async def test_dependency_check():
    pm = PluginManager()
    p_a = DummyPlugin(None, name='a')
    p_b = DummyPlugin(None, name='b', deps=['a'])

    # loading b before a should fail
    with pytest.raises(ValueError):
        await pm.load_plugin(p_b)

    await pm.load_plugin(p_a)
    await pm.load_plugin(p_b)
    assert pm.list_plugins() == ['a', 'b']


@pytest.mark.asyncio
async def test_load_error_sets_state():
    pm = PluginManager()
    bad = BadLoadPlugin(None, name='bad')
    with pytest.raises(RuntimeError):
        await pm.load_plugin(bad)
    assert pm.get_plugin_state('bad') == PluginState.ERROR


@pytest.mark.asyncio
async def test_start_error_wrapped():
    pm = PluginManager()
    await pm.load_plugin(BadStartPlugin(None, name='bs'))
    with pytest.raises(RuntimeError, match='bs'):
        await pm.start_plugin('bs')
    assert pm.get_plugin_state('bs') == PluginState.ERROR


@pytest.mark.asyncio
async def test_unload_all_in_reverse_order():
    journal = []
    pm = PluginManager()
    await pm.load_plugin(DummyPlugin(None, name='a', journal=journal))
    await pm.load_plugin(DummyPlugin(None, name='b', journal=journal))
    await pm.start_all()
    journal.clear()

    await pm.unload_all()

    assert journal == [('stop', 'b'), ('unload', 'b'), ('stop', 'a'), ('unload', 'a')]
    assert pm.list_plugins() == []
