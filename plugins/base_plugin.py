"""
Базовый класс и интерфейс для плагинов.

Все плагины должны наследоваться от BasePlugin.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from core.runtime import CoreRuntime


@dataclass
class PluginMetadata:
    """Метаданные плагина."""

    name: str
    version: str
    description: str = ""
    author: str = ""
    dependencies: list[str] = field(default_factory=list)


class BasePlugin(ABC):
    """
    Базовый класс для всех плагинов.

    Lifecycle методы вызываются в следующем порядке:
    1. __init__() - конструктор
    2. on_load() - регистрация сервисов
    3. on_start() - запуск
    4. on_stop() - остановка
    5. on_unload() - снятие сервисов, закрытие соединений
    """

    _runtime: Optional["CoreRuntime"] = None

    @property
    def runtime(self) -> "CoreRuntime":
        # Контракт: PluginManager устанавливает runtime до вызова lifecycle-методов
        assert self._runtime is not None
        return self._runtime

    @runtime.setter
    def runtime(self, value: Optional["CoreRuntime"]) -> None:
        self._runtime = value

    def __init__(self, runtime: Optional["CoreRuntime"] = None) -> None:
        self._runtime = runtime
        self._loaded = False
        self._started = False

    def get_env_config(self, key: str, default: Optional[str] = None, prefix: Optional[str] = None) -> Optional[str]:
        """
        Получить значение конфигурации из переменных окружения.

        Ищет переменную в следующем порядке:
        1. {prefix}_{key} (prefix по умолчанию — имя плагина из metadata в UPPER_CASE)
        2. {key}

        Пример:
            # Ищет DANDANPLAY_SIGN_APP_ID, затем APP_ID
            app_id = self.get_env_config("APP_ID")
        """
        if prefix is None:
            prefix = self.metadata.name.upper().replace("-", "_")

        for env_key in (f"{prefix}_{key}", key):
            value = os.getenv(env_key)
            if value is not None:
                return value
        return default

    @property
    @abstractmethod
    def metadata(self) -> PluginMetadata:
        """Метаданные плагина."""

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_started(self) -> bool:
        return self._started

    async def on_load(self) -> None:
        """Вызывается при загрузке плагина: регистрация сервисов, подписки."""
        self._loaded = True

    async def on_start(self) -> None:
        """Вызывается при запуске плагина."""
        self._started = True

    async def on_stop(self) -> None:
        """Вызывается при остановке плагина."""
        self._started = False

    async def on_unload(self) -> None:
        """Вызывается при выгрузке плагина: удалить сервисы, закрыть соединения."""
        self._loaded = False
