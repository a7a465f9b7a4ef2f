"""
Storage API - единый интерфейс для работы с хранилищем.

Плагины работают ТОЛЬКО через этот API.
Никакого прямого доступа к БД.
"""

from typing import Any, Iterable, Optional
from contextlib import asynccontextmanager

from adapters.storage_adapter import StorageAdapter


def _check_name(kind: str, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(
            f"{kind} must be non-empty string, got {type(value).__name__}: {value!r}"
        )


class Storage:
    """
    Storage API для плагинов.

    Простой интерфейс: namespace + key + JSON value.
    Без моделей, без ORM, без схемы.
    """

    def __init__(self, adapter: StorageAdapter):
        self._adapter = adapter

    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        """
        Получить значение.

        Returns:
            Значение или None если не найдено

        Raises:
            ValueError: если namespace или key пустые или не строки
        """
        _check_name("namespace", namespace)
        _check_name("key", key)
        return await self._adapter.get(namespace, key)

    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        """
        Сохранить значение.

        Raises:
            TypeError: если value не является dict
            ValueError: если namespace или key пустые или не строки

        Пример:
            await storage.set("bilibili_auth", "identity", {"subject_id": 42})
        """
        if not isinstance(value, dict):
            raise TypeError(f"value must be dict, got {type(value).__name__}: {value}")
        _check_name("namespace", namespace)
        _check_name("key", key)
        await self._adapter.set(namespace, key, value)

    async def delete(self, namespace: str, key: str) -> bool:
        """Удалить значение. True если запись существовала."""
        _check_name("namespace", namespace)
        _check_name("key", key)
        return await self._adapter.delete(namespace, key)

    async def delete_many(self, namespace: str, keys: Iterable[str]) -> int:
        """
        Удалить несколько ключей одной транзакцией.

        Либо удаляются все ключи, либо (при ошибке) ни один.

        Returns:
            Количество реально удалённых записей
        """
        _check_name("namespace", namespace)
        keys = list(keys)
        for key in keys:
            _check_name("key", key)

        deleted = 0
        async with self._adapter.transaction():
            for key in keys:
                if await self._adapter.delete(namespace, key):
                    deleted += 1
        return deleted

    async def list_keys(self, namespace: str) -> list[str]:
        """Получить список всех ключей в namespace."""
        _check_name("namespace", namespace)
        return await self._adapter.list_keys(namespace)

    async def close(self) -> None:
        """Закрыть соединение."""
        await self._adapter.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Контекстный менеджер для транзакций.

            async with storage.transaction():
                await storage.set("ns", "key1", {"value": 1})
                await storage.set("ns", "key2", {"value": 2})
        """
        async with self._adapter.transaction():
            yield
