"""
SQLite адаптер для Storage API.

Простейшая реализация без ORM.
Одна таблица: namespace | key | value (JSON as TEXT).
"""

import json
import logging
import sqlite3
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Optional
import asyncio
from contextlib import asynccontextmanager

from .storage_adapter import StorageAdapter

logger = logging.getLogger("storage")

# id адаптера, транзакцию которого держит текущая задача
_transaction_owner: ContextVar[Optional[int]] = ContextVar("sqlite_transaction_owner", default=None)


class SQLiteAdapter(StorageAdapter):
    """SQLite адаптер для key-value хранилища с namespace.

    Все блокирующие операции выполняются в threadpool через `asyncio.to_thread`.
    Операции сериализуются через asyncio.Lock: пока одна задача держит
    транзакцию, чтения из других задач ждут коммита или отката и никогда не
    видят промежуточного состояния.

    Инициализация схемы не выполняется автоматически — отдельный метод
    `initialize_schema()` должен быть вызван явно.
    """

    def __init__(self, db_path: str = "data.db"):
        """
        Args:
            db_path: путь к файлу базы данных (или ':memory:' для in-memory БД)
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Создать или вернуть существующее соединение.

        `isolation_level=None` — autocommit, транзакции открываются явно
        через BEGIN в `transaction()`.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
            )
        return self._conn

    def _owns_transaction(self) -> bool:
        return _transaction_owner.get() == id(self)

    async def _run(self, func, *args):
        """Выполнить синхронную функцию в threadpool с учётом транзакции."""
        if self._owns_transaction():
            return await asyncio.to_thread(func, *args)
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    def _execute_sync(self, statement: str) -> None:
        self._get_connection().execute(statement)

    def _create_schema_sync(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS storage (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (namespace, key)
            )
        """)

    async def initialize_schema(self) -> None:
        """Явная инициализация схемы хранилища.

        Для файловой БД создаёт директорию и таблицу. Для ':memory:' просто
        создаёт таблицу в in-memory БД.
        """
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        await self._run(self._create_schema_sync)

    async def get(self, namespace: str, key: str) -> Optional[dict[str, Any]]:
        def _get_sync(ns: str, k: str):
            cursor = self._get_connection().execute(
                "SELECT value FROM storage WHERE namespace = ? AND key = ?",
                (ns, k),
            )
            row = cursor.fetchone()
            if row is None or row[0] is None:
                return None
            try:
                return json.loads(row[0])
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                # Битая запись не должна ронять чтение сессии
                logger.warning("Ошибка парсинга JSON для %s.%s: %s", ns, k, e)
                return None

        return await self._run(_get_sync, namespace, key)

    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        def _set_sync(ns: str, k: str, v: dict[str, Any]):
            self._get_connection().execute(
                "INSERT OR REPLACE INTO storage (namespace, key, value) VALUES (?, ?, ?)",
                (ns, k, json.dumps(v, ensure_ascii=False)),
            )

        await self._run(_set_sync, namespace, key, value)

    async def delete(self, namespace: str, key: str) -> bool:
        def _delete_sync(ns: str, k: str) -> bool:
            cursor = self._get_connection().execute(
                "DELETE FROM storage WHERE namespace = ? AND key = ?",
                (ns, k),
            )
            return cursor.rowcount > 0

        return await self._run(_delete_sync, namespace, key)

    async def list_keys(self, namespace: str) -> list[str]:
        def _list_keys_sync(ns: str):
            cursor = self._get_connection().execute(
                "SELECT key FROM storage WHERE namespace = ? ORDER BY key", (ns,)
            )
            return [row[0] for row in cursor.fetchall()]

        return await self._run(_list_keys_sync, namespace)

    @asynccontextmanager
    async def transaction(self):
        """
        Транзакция SQLite.

        Вложенный вызов из той же задачи присоединяется к внешней транзакции.
        """
        if self._owns_transaction():
            yield
            return

        async with self._lock:
            token = _transaction_owner.set(id(self))
            try:
                await asyncio.to_thread(self._execute_sync, "BEGIN")
                try:
                    yield
                except BaseException:
                    await asyncio.to_thread(self._execute_sync, "ROLLBACK")
                    raise
                await asyncio.to_thread(self._execute_sync, "COMMIT")
            finally:
                _transaction_owner.reset(token)

    async def close(self) -> None:
        def _close_sync():
            if self._conn:
                try:
                    self._conn.close()
                finally:
                    self._conn = None

        await self._run(_close_sync)
