"""
SessionTransport — HTTP клиент bilibili_auth с установленным CookieJar.

ClientSession создаётся с cookie_jar=CookieJar: cookies подставляются в каждый
запрос и принимаются с каждого ответа, включая промежуточные редиректы.
Другие компоненты берут transport.session напрямую для любых методов.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional, Union

import aiohttp
from yarl import URL

from .cookie_jar import CookieJar
from .errors import NetworkError, ProtocolError

logger = logging.getLogger("bilibili_auth")

MAX_REDIRECTS = 10


class SessionTransport:
    """Общий HTTP клиент для passport/API запросов."""

    def __init__(
        self,
        jar: CookieJar,
        user_agent: str,
        referer: str = "",
        timeout: float = 10.0,
    ):
        self._jar = jar
        self._headers = {"User-Agent": user_agent}
        if referer:
            self._headers["Referer"] = referer
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def jar(self) -> CookieJar:
        return self._jar

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.closed

    @property
    def session(self) -> aiohttp.ClientSession:
        """ClientSession с cookies сессии; после close() создаётся заново."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=self._timeout,
                cookie_jar=self._jar,
            )
        return self._session

    async def _get(self, url: URL) -> tuple[int, str]:
        try:
            async with self.session.get(url, max_redirects=MAX_REDIRECTS) as resp:
                if resp.history:
                    logger.debug("Followed %d redirect(s) from %s%s", len(resp.history), url.host, url.path)
                body = await resp.text()
                return resp.status, body
        except aiohttp.TooManyRedirects as e:
            raise ProtocolError(f"Too many redirects starting at {url.host}{url.path}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"GET {url.host}{url.path} failed: {e!r}") from e

    async def get_json(
        self,
        url: Union[str, URL],
        params: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        GET запрос с разбором JSON.

        Raises:
            NetworkError: сбой соединения или таймаут
            ProtocolError: статус не 2xx или тело не JSON
        """
        target = URL(url)
        if params:
            target = target.update_query(params)
        status, body = await self._get(target)
        if not 200 <= status < 300:
            raise ProtocolError(f"GET {target.host}{target.path} returned HTTP {status}")
        try:
            return json.loads(body)
        except ValueError as e:
            raise ProtocolError(f"GET {target.host}{target.path} returned non-JSON body") from e

    async def visit(self, url: Union[str, URL]) -> int:
        """Открыть URL (с редиректами) ради Set-Cookie. Возвращает финальный статус."""
        target = URL(url)
        status, _ = await self._get(target)
        if status >= 400:
            raise ProtocolError(f"GET {target.host}{target.path} returned HTTP {status}")
        return status

    def cookie_header(self, host: str) -> str:
        return self._jar.cookie_header(host)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
