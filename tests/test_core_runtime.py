import pytest

from core.runtime import CoreRuntime
from plugins.base_plugin import BasePlugin, PluginMetadata


class EchoPlugin(BasePlugin):
    @property
    def metadata(self):
        return PluginMetadata(name='echo', version='0.1')

    async def on_load(self):
        await super().on_load()

        async def echo(*, text: str, **kwargs):
            return text

        await self.runtime.service_registry.register('echo.say', echo)

    async def on_unload(self):
        await super().on_unload()
        await self.runtime.service_registry.unregister('echo.say')


@pytest.mark.asyncio
async def test_core_start_stop_shutdown(memory_adapter):
    runtime = CoreRuntime(memory_adapter)
    assert runtime.is_running is False

    await runtime.start()
    assert runtime.is_running is True

    await runtime.stop()
    assert runtime.is_running is False

    await runtime.shutdown()
    assert memory_adapter.closed is True


@pytest.mark.asyncio
async def test_plugin_services_available_and_removed(memory_adapter):
    runtime = CoreRuntime(memory_adapter)
    plugin = EchoPlugin(runtime)
    await runtime.plugin_manager.load_plugin(plugin)
    await runtime.start()

    assert plugin.is_started
    assert await runtime.service_registry.call('echo.say', text='hi') == 'hi'

    await runtime.shutdown()
    assert runtime.plugin_manager.list_plugins() == []
    assert await runtime.service_registry.list_services() == []
