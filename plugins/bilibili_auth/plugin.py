"""
Bilibili Auth Plugin

QR-логин Bilibili (сканирование в мобильном приложении) и постоянная
cookie-сессия.

Services:
- bilibili_auth.start — выдать QR-код
- bilibili_auth.poll — опросить статус QR (polling_key по умолчанию — текущий код)
- bilibili_auth.status — статус логина и профиль
- bilibili_auth.cookie_header — cookies сессии для заголовка Cookie
- bilibili_auth.refresh_identity — перезагрузить профиль
- bilibili_auth.logout — удалить сессию
- bilibili_auth.manager — SessionManager для прямого использования

Events:
- bilibili_auth.linked — логин завершён (partial=True если профиль не получен)
- bilibili_auth.unlinked — сессия удалена

Storage:
- bilibili_auth/cookies, bilibili_auth/identity, bilibili_auth/refresh_token
"""
from typing import Any, Dict, Optional

from plugins.base_plugin import BasePlugin, PluginMetadata
from .models import PollOutcome
from .session_manager import SessionManager, SessionManagerProvider

SERVICES = (
    "bilibili_auth.start",
    "bilibili_auth.poll",
    "bilibili_auth.status",
    "bilibili_auth.cookie_header",
    "bilibili_auth.refresh_identity",
    "bilibili_auth.logout",
    "bilibili_auth.manager",
)


class BilibiliAuthPlugin(BasePlugin):
    """Bilibili QR login plugin."""

    def __init__(self, runtime=None) -> None:
        super().__init__(runtime)
        self.provider: Optional[SessionManagerProvider] = None

    @property
    def metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name="bilibili_auth",
            version="1.0.0",
            description="Bilibili QR-code login and cookie session",
            author="media-auth-runtime",
        )

    async def on_load(self) -> None:
        """Register services."""
        await super().on_load()

        self.provider = SessionManagerProvider(
            self.runtime.storage,
            self.runtime.config,
            event_bus=self.runtime.event_bus,
        )

        async def start_login(**kwargs) -> Dict[str, Any]:
            """
            Выдать новый QR-код.

            Returns:
                {"status": "issued", "content": str, "polling_key": str, "issued_at": float}
                или {"status": "failed", "error": str, "reason": str}
            """
            manager = await self.provider.get()
            result = await manager.flow.generate_code()
            return result.to_dict()

        async def poll_login(*, polling_key: Optional[str] = None, **kwargs) -> Dict[str, Any]:
            """Один опрос статуса QR."""
            manager = await self.provider.get()
            if polling_key is None:
                code = manager.flow.current_code
                if code is None:
                    return {"status": "failed", "error": "protocol", "reason": "no QR code issued"}
                polling_key = code.polling_key
            outcome: PollOutcome = await manager.flow.poll(polling_key)
            return outcome.to_dict()

        async def login_status(**kwargs) -> Dict[str, Any]:
            manager = await self.provider.get()
            identity = manager.get_identity()
            return {
                "logged_in": manager.is_logged_in(),
                "state": manager.flow.state.value,
                "identity": identity.to_dict() if identity else None,
            }

        async def cookie_header(**kwargs) -> str:
            manager = await self.provider.get()
            return manager.get_cookie_header_string()

        async def refresh_identity(**kwargs) -> Dict[str, Any]:
            manager = await self.provider.get()
            outcome = await manager.flow.refresh_identity()
            return outcome.to_dict()

        async def logout(**kwargs) -> Dict[str, Any]:
            manager = await self.provider.get()
            await manager.logout()
            return {"status": "logged_out"}

        async def get_manager(**kwargs) -> SessionManager:
            return await self.provider.get()

        registry = self.runtime.service_registry
        await registry.register("bilibili_auth.start", start_login)
        await registry.register("bilibili_auth.poll", poll_login)
        await registry.register("bilibili_auth.status", login_status)
        await registry.register("bilibili_auth.cookie_header", cookie_header)
        await registry.register("bilibili_auth.refresh_identity", refresh_identity)
        await registry.register("bilibili_auth.logout", logout)
        await registry.register("bilibili_auth.manager", get_manager)

    async def on_unload(self) -> None:
        """Close HTTP session and unregister services."""
        await super().on_unload()
        if self.provider is not None:
            await self.provider.close()
        self.provider = None
        for name in SERVICES:
            await self.runtime.service_registry.unregister(name)
