"""
CoreRuntime - главный класс runtime.

Объединяет все компоненты:
- Config
- Storage
- EventBus
- ServiceRegistry
- PluginManager

Runtime передаётся плагинам явно и служит единственной точкой доступа к
общим ресурсам процесса: никаких глобальных синглтонов.
"""

import logging
from typing import Optional

from adapters.storage_adapter import StorageAdapter
from core.config import Config
from core.event_bus import EventBus
from core.plugin_manager import PluginManager
from core.service_registry import ServiceRegistry
from core.storage import Storage

logger = logging.getLogger("runtime")


class CoreRuntime:
    """
    Главный класс runtime.

    Координирует работу всех компонентов.
    Предоставляет единую точку доступа для плагинов.
    """

    def __init__(self, storage_adapter: StorageAdapter, config: Optional[Config] = None):
        """
        Args:
            storage_adapter: адаптер хранилища (схема уже инициализирована)
            config: конфигурация; по умолчанию значения из Config()
        """
        self.config = config or Config()
        self.event_bus = EventBus()
        self.service_registry = ServiceRegistry(default_timeout=self.config.service_call_timeout)
        self.storage = Storage(storage_adapter)
        self.plugin_manager = PluginManager(self)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запустить все загруженные плагины."""
        if self._running:
            return
        await self.plugin_manager.start_all()
        self._running = True
        logger.info("Runtime started (plugins: %s)", ", ".join(self.plugin_manager.list_plugins()) or "-")

    async def stop(self) -> None:
        """Остановить плагины (storage остаётся открытым)."""
        if not self._running:
            return
        await self.plugin_manager.stop_all()
        self._running = False
        logger.info("Runtime stopped")

    async def shutdown(self) -> None:
        """
        Полное завершение работы.

        - останавливает и выгружает плагины
        - очищает подписки и сервисы
        - закрывает storage
        """
        await self.stop()
        await self.plugin_manager.unload_all()
        self.event_bus.clear()
        await self.service_registry.clear()
        await self.storage.close()
