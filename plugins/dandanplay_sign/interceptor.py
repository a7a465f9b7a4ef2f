"""
Signing interceptor для aiohttp.

Client middleware, который подписывает каждый исходящий запрос к DanDanPlay:
берёт query-параметры из URL, считает подпись и выставляет заголовки
X-AppId и X-Signature. Тело и query не меняются.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from yarl import URL

from .signature import sign

logger = logging.getLogger("dandanplay_sign")

CALLER_ID_HEADER = "X-AppId"
SIGNATURE_HEADER = "X-Signature"


class SigningMiddleware:
    """aiohttp client middleware: подпись каждого запроса."""

    def __init__(self, caller_id: str, secret: str):
        if not caller_id or not secret:
            raise ValueError("caller_id and secret are required for request signing")
        self._caller_id = caller_id
        self._secret = secret

    @property
    def caller_id(self) -> str:
        return self._caller_id

    def signed_headers(self, method: str, url: URL) -> dict[str, str]:
        """
        Заголовки подписи для запроса.

        Повторяющиеся query-ключи: в подпись идёт последнее значение.
        """
        query: dict[str, str] = {}
        for key, value in url.query.items():
            query[key] = value
        signature = sign(method, url.path, query, self._caller_id, self._secret)
        return {
            CALLER_ID_HEADER: self._caller_id,
            SIGNATURE_HEADER: signature,
        }

    async def __call__(
        self,
        req: aiohttp.ClientRequest,
        handler: Callable[[aiohttp.ClientRequest], Awaitable[aiohttp.ClientResponse]],
    ) -> aiohttp.ClientResponse:
        for name, value in self.signed_headers(req.method, req.url).items():
            req.headers[name] = value
        logger.debug("Signed %s %s", req.method, req.url.path)
        return await handler(req)


def create_signed_session(
    caller_id: str,
    secret: str,
    base_url: Optional[str] = None,
    timeout: float = 10.0,
    **session_kwargs: Any,
) -> aiohttp.ClientSession:
    """
    Создать aiohttp.ClientSession, в которой подписывается каждый запрос.

    Пример:
        async with create_signed_session(app_id, app_secret, "https://api.dandanplay.net") as s:
            async with s.get("/api/v2/comment/123", params={"withRelated": "true"}) as r:
                data = await r.json()
    """
    middleware = SigningMiddleware(caller_id, secret)
    return aiohttp.ClientSession(
        base_url=base_url,
        middlewares=(middleware,),
        timeout=aiohttp.ClientTimeout(total=timeout),
        **session_kwargs,
    )
