"""
PluginManager - управление lifecycle плагинов.

Плагины передаются явно (без автопоиска по каталогу): порядок загрузки
задаёт вызывающая сторона, зависимости из metadata проверяются при загрузке.
"""

import logging
from enum import Enum
from typing import Optional, TYPE_CHECKING

from plugins.base_plugin import BasePlugin

if TYPE_CHECKING:
    from core.runtime import CoreRuntime

logger = logging.getLogger("runtime")


class PluginState(Enum):
    """Состояния плагина."""
    LOADED = "loaded"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


class PluginManager:
    """
    Менеджер для управления lifecycle плагинов.

    Отвечает за:
    - загрузку плагинов (с проверкой зависимостей)
    - запуск и остановку
    - выгрузку в обратном порядке
    """

    def __init__(self, runtime: Optional["CoreRuntime"] = None):
        self._runtime = runtime
        # Порядок вставки = порядок загрузки
        self._plugins: dict[str, BasePlugin] = {}
        self._states: dict[str, PluginState] = {}

    async def load_plugin(self, plugin: BasePlugin) -> None:
        """
        Загрузить плагин.

        Raises:
            ValueError: если плагин уже загружен или не хватает зависимостей
        """
        metadata = plugin.metadata
        plugin_name = metadata.name

        if plugin_name in self._plugins:
            raise ValueError(f"Плагин '{plugin_name}' уже загружен")

        for dep_name in metadata.dependencies:
            if dep_name not in self._plugins:
                raise ValueError(
                    f"Плагин '{plugin_name}' требует плагин '{dep_name}', но он не загружен"
                )

        plugin.runtime = self._runtime
        try:
            await plugin.on_load()
        except Exception:
            self._states[plugin_name] = PluginState.ERROR
            raise

        self._plugins[plugin_name] = plugin
        self._states[plugin_name] = PluginState.LOADED
        logger.debug("Plugin loaded: %s %s", plugin_name, metadata.version)

    async def start_plugin(self, plugin_name: str) -> None:
        """
        Raises:
            ValueError: если плагин не найден
            RuntimeError: если on_start упал
        """
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        if self._states[plugin_name] == PluginState.STARTED:
            return

        try:
            await plugin.on_start()
        except Exception as e:
            self._states[plugin_name] = PluginState.ERROR
            raise RuntimeError(f"Ошибка запуска плагина '{plugin_name}': {e}") from e
        self._states[plugin_name] = PluginState.STARTED

    async def stop_plugin(self, plugin_name: str) -> None:
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        if self._states[plugin_name] != PluginState.STARTED:
            return

        try:
            await plugin.on_stop()
        except Exception as e:
            self._states[plugin_name] = PluginState.ERROR
            raise RuntimeError(f"Ошибка остановки плагина '{plugin_name}': {e}") from e
        self._states[plugin_name] = PluginState.STOPPED

    async def unload_plugin(self, plugin_name: str) -> None:
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise ValueError(f"Плагин '{plugin_name}' не найден")

        await self.stop_plugin(plugin_name)
        try:
            await plugin.on_unload()
        finally:
            del self._plugins[plugin_name]
            self._states.pop(plugin_name, None)
            plugin.runtime = None

    def get_plugin(self, plugin_name: str) -> Optional[BasePlugin]:
        return self._plugins.get(plugin_name)

    def get_plugin_state(self, plugin_name: str) -> Optional[PluginState]:
        return self._states.get(plugin_name)

    def list_plugins(self) -> list[str]:
        return list(self._plugins.keys())

    async def start_all(self) -> None:
        for plugin_name in list(self._plugins):
            await self.start_plugin(plugin_name)

    async def stop_all(self) -> None:
        for plugin_name in reversed(list(self._plugins)):
            await self.stop_plugin(plugin_name)

    async def unload_all(self) -> None:
        """Выгрузить все плагины в порядке, обратном загрузке."""
        for plugin_name in reversed(list(self._plugins)):
            try:
                await self.unload_plugin(plugin_name)
            except Exception:
                logger.exception("Failed to unload plugin %s", plugin_name)
