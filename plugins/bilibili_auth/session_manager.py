"""
SessionManager — точка доступа к сессии Bilibili для остального приложения.

SessionManagerProvider создаёт SessionManager лениво и ровно один раз,
даже при одновременных первых обращениях. Провайдер принадлежит плагину
(или тому, кто его создал) и передаётся явно, глобального экземпляра нет.
После logout() провайдер сбрасывается и следующий get() строит чистое
состояние.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from core.config import Config
from core.storage import Storage
from .cookie_jar import CookieJar
from .models import Identity
from .pairing_flow import PairingLoginFlow
from .session_store import SessionStore
from .transport import SessionTransport

logger = logging.getLogger("bilibili_auth")

EVENT_UNLINKED = "bilibili_auth.unlinked"

LogoutCallback = Callable[["SessionManager"], Awaitable[None]]


class SessionManager:
    """Текущая сессия: статус логина, профиль, cookies, HTTP транспорт."""

    def __init__(
        self,
        store: SessionStore,
        jar: CookieJar,
        transport: SessionTransport,
        flow: PairingLoginFlow,
        on_logout: Optional[LogoutCallback] = None,
    ):
        self._store = store
        self._jar = jar
        self._transport = transport
        self._flow = flow
        self._on_logout = on_logout

    @classmethod
    async def create(
        cls,
        storage: Storage,
        config: Config,
        event_bus: Any = None,
        on_logout: Optional[LogoutCallback] = None,
    ) -> "SessionManager":
        """Собрать менеджер и прочитать сохранённую сессию из storage."""
        store = SessionStore(storage)
        await store.load()
        jar = CookieJar(store)
        transport = SessionTransport(
            jar,
            user_agent=config.user_agent,
            referer=config.referer,
            timeout=config.http_timeout,
        )
        flow = PairingLoginFlow(transport, store, config, event_bus=event_bus)
        return cls(store, jar, transport, flow, on_logout=on_logout)

    @property
    def flow(self) -> PairingLoginFlow:
        return self._flow

    @property
    def store(self) -> SessionStore:
        return self._store

    def is_logged_in(self) -> bool:
        """Есть профиль и хотя бы одна живая cookie."""
        snapshot = self._store.current()
        return snapshot.identity is not None and bool(snapshot.live_cookies())

    def get_identity(self) -> Optional[Identity]:
        return self._store.current().identity

    def get_cookie_header_string(self) -> str:
        """Cookies сессии в виде "name=value; name=value"."""
        cookies = self._store.current().live_cookies()
        return "; ".join(f"{name}={value}" for name, value in cookies.items())

    def get_transport(self) -> SessionTransport:
        """Общий транспорт; transport.session отдаёт ClientSession с установленным CookieJar."""
        return self._transport

    async def logout(self) -> None:
        """
        Удалить сессию целиком.

        Если storage не смог удалить данные, исключение пробрасывается и
        сессия остаётся прежней.
        """
        # Сначала закрыть транспорт: новых ответов от старой сессии не будет
        await self._transport.close()
        await self._jar.reset()
        await self._jar.flush()
        self._flow.reset()
        logger.info("Logged out")
        if self._on_logout is not None:
            await self._on_logout(self)

    async def close(self) -> None:
        await self._jar.flush()
        await self._transport.close()


class SessionManagerProvider:
    """Однократная ленивая инициализация SessionManager."""

    def __init__(self, storage: Storage, config: Config, event_bus: Any = None):
        self._storage = storage
        self._config = config
        self._event_bus = event_bus
        self._instance: Optional[SessionManager] = None
        self._lock = asyncio.Lock()
        self.created_count = 0

    def peek(self) -> Optional[SessionManager]:
        """Текущий экземпляр без создания."""
        return self._instance

    async def get(self) -> SessionManager:
        instance = self._instance
        if instance is not None:
            return instance
        async with self._lock:
            if self._instance is None:
                self._instance = await SessionManager.create(
                    self._storage,
                    self._config,
                    event_bus=self._event_bus,
                    on_logout=self._handle_logout,
                )
                self.created_count += 1
                logger.debug("SessionManager created")
            return self._instance

    async def _handle_logout(self, manager: SessionManager) -> None:
        async with self._lock:
            if self._instance is manager:
                self._instance = None
        if self._event_bus is not None:
            await self._event_bus.publish(EVENT_UNLINKED, {"unlinked_at": time.time()})

    async def close(self) -> None:
        async with self._lock:
            if self._instance is not None:
                await self._instance.close()
            self._instance = None
