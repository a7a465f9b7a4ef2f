"""
DanDanPlay Sign Plugin

Stateless подпись запросов к DanDanPlay open API.

Services:
- dandanplay.sign — подпись для (method, path, query)
- dandanplay.signed_headers — готовые заголовки X-AppId / X-Signature для URL
- dandanplay.session — общая aiohttp-сессия, подписывающая каждый запрос

Credentials: Config.dandanplay_app_id / dandanplay_app_secret,
переопределяются DANDANPLAY_SIGN_APP_ID / DANDANPLAY_SIGN_APP_SECRET.
"""
import logging
from typing import Any, Dict, Optional

import aiohttp
from yarl import URL

from plugins.base_plugin import BasePlugin, PluginMetadata
from .interceptor import SigningMiddleware, create_signed_session

logger = logging.getLogger("dandanplay_sign")

SERVICES = ("dandanplay.sign", "dandanplay.signed_headers", "dandanplay.session")


class DanDanPlaySignPlugin(BasePlugin):
    """DanDanPlay request signing plugin."""

    def __init__(self, runtime=None) -> None:
        super().__init__(runtime)
        self._middleware: Optional[SigningMiddleware] = None
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name="dandanplay_sign",
            version="1.0.0",
            description="DanDanPlay open API request signing",
            author="media-auth-runtime",
        )

    def _credentials(self) -> tuple[str, str]:
        cfg = self.runtime.config
        app_id = self.get_env_config("APP_ID", default=cfg.dandanplay_app_id) or ""
        app_secret = self.get_env_config("APP_SECRET", default=cfg.dandanplay_app_secret) or ""
        return app_id, app_secret

    def _require_middleware(self) -> SigningMiddleware:
        if self._middleware is None:
            raise ValueError("DanDanPlay credentials are not configured")
        return self._middleware

    async def on_load(self) -> None:
        await super().on_load()

        app_id, app_secret = self._credentials()
        if app_id and app_secret:
            self._middleware = SigningMiddleware(app_id, app_secret)
        else:
            logger.warning("DanDanPlay app id/secret not set, signing services will fail")

        async def sign_request(
            *, method: str = "GET", path: str = "/", query: Optional[Dict[str, str]] = None, **kwargs
        ) -> Dict[str, Any]:
            """Подпись для (method, path, query): {"caller_id", "signature"}."""
            middleware = self._require_middleware()
            headers = middleware.signed_headers(method, URL.build(path=path, query=query or {}))
            return {
                "caller_id": middleware.caller_id,
                "signature": headers["X-Signature"],
            }

        async def signed_headers(*, method: str = "GET", url: str, **kwargs) -> Dict[str, str]:
            """Заголовки подписи для абсолютного или относительного URL."""
            return self._require_middleware().signed_headers(method, URL(url))

        async def get_session(**kwargs) -> aiohttp.ClientSession:
            """Общая подписывающая сессия (создаётся при первом обращении)."""
            if self._session is None or self._session.closed:
                app_id, app_secret = self._credentials()
                self._require_middleware()
                self._session = create_signed_session(
                    app_id,
                    app_secret,
                    base_url=self.runtime.config.dandanplay_base_url,
                    timeout=self.runtime.config.http_timeout,
                )
            return self._session

        registry = self.runtime.service_registry
        await registry.register("dandanplay.sign", sign_request)
        await registry.register("dandanplay.signed_headers", signed_headers)
        await registry.register("dandanplay.session", get_session)

    async def on_unload(self) -> None:
        await super().on_unload()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        for name in SERVICES:
            await self.runtime.service_registry.unregister(name)
