"""
Абстрактный интерфейс для storage адаптеров.

Storage работает по принципу namespace + key + JSON value.
Сессионные данные (cookies, identity, refresh token) лежат в одном namespace,
поэтому адаптер обязан поддерживать транзакции: выход из аккаунта удаляет
несколько ключей за раз.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, AsyncContextManager
from contextlib import asynccontextmanager


class StorageAdapter(ABC):
    """Абстрактный адаптер для хранения данных."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        """
        Получить значение по ключу из namespace.

        Returns:
            JSON-данные или None, если не найдено
        """

    @abstractmethod
    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        """Сохранить (перезаписать) значение по ключу в namespace."""

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool:
        """
        Удалить значение по ключу из namespace.

        Returns:
            True если запись была удалена, False если не существовала
        """

    @abstractmethod
    async def list_keys(self, namespace: str) -> list[str]:
        """Получить список всех ключей в namespace."""

    @abstractmethod
    async def close(self) -> None:
        """Закрыть соединение с хранилищем."""

    @abstractmethod
    @asynccontextmanager
    async def transaction(self) -> AsyncContextManager[Any]:
        """
        Контекстный менеджер для транзакций.

        Все операции внутри блока видны другим читателям только после
        коммита. При исключении изменения откатываются.

            async with adapter.transaction():
                await adapter.delete("ns", "key1")
                await adapter.delete("ns", "key2")
        """
