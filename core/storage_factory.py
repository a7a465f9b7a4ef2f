"""
Фабрика для создания storage адаптеров на основе конфигурации.
"""

from core.config import Config
from adapters.storage_adapter import StorageAdapter


async def create_storage_adapter(config: Config) -> StorageAdapter:
    """
    Создать storage адаптер и инициализировать схему.

    Args:
        config: конфигурация runtime (валидируется перед созданием адаптера)

    Raises:
        ValueError: если указан неизвестный тип адаптера или конфигурация невалидна
    """
    config.validate()

    if config.storage_type == "sqlite":
        from adapters.sqlite_adapter import SQLiteAdapter
        adapter = SQLiteAdapter(config.db_path)
        await adapter.initialize_schema()
        return adapter

    raise ValueError(
        f"Неизвестный тип storage: {config.storage_type}. Доступные типы: sqlite"
    )
