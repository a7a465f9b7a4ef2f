"""
SessionStore — хранилище сессии Bilibili (cookies, identity, refresh token).

Durable слой: runtime.storage, namespace "bilibili_auth":
- cookies: {"values": {name: value}, "expires": {name: ts}, "saved_at": ts}
  Плоская карта без привязки к хосту: при восстановлении после рестарта
  cookies выдаются для того хоста, который делает запрос.
- identity: Identity.to_dict()
- refresh_token: {"token": str}

In-memory слой: неизменяемый снимок (SessionSnapshot), который заменяется одной
операцией присваивания после успешной записи в storage. Читатель берёт снимок
целиком и видит либо старое, либо новое состояние, но не смесь.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from core.storage import Storage
from .models import CookieRecord, Identity

logger = logging.getLogger("bilibili_auth")

NAMESPACE = "bilibili_auth"
KEY_COOKIES = "cookies"
KEY_IDENTITY = "identity"
KEY_REFRESH_TOKEN = "refresh_token"
SESSION_KEYS = (KEY_COOKIES, KEY_IDENTITY, KEY_REFRESH_TOKEN)

# Повторный Set-Cookie с тем же Max-Age сдвигает срок на время между
# запросами; такой сдвиг изменением не считается
EXPIRY_TOLERANCE = 60.0


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


def _same_expiry(new: Mapping[str, float], old: Mapping[str, float]) -> bool:
    if new.keys() != old.keys():
        return False
    return all(abs(new[name] - old[name]) <= EXPIRY_TOLERANCE for name in new)


@dataclass(frozen=True)
class SessionSnapshot:
    """Согласованный снимок сохранённой сессии."""

    identity: Optional[Identity] = None
    cookies: Mapping[str, str] = field(default_factory=_empty_mapping)
    expires: Mapping[str, float] = field(default_factory=_empty_mapping)
    refresh_token: Optional[str] = None

    def live_cookies(self, now: Optional[float] = None) -> dict[str, str]:
        """Cookies без истёкших записей."""
        now = time.time() if now is None else now
        return {
            name: value
            for name, value in self.cookies.items()
            if name not in self.expires or self.expires[name] >= now
        }

    def records_for_host(self, host: str) -> list[CookieRecord]:
        """Живые cookies плоской карты, привязанные к запрашивающему хосту."""
        return [
            CookieRecord(name=name, value=value, host=host, expires_at=self.expires.get(name))
            for name, value in self.live_cookies().items()
        ]


class SessionStore:
    """Persistent хранилище сессии с in-memory снимком."""

    def __init__(self, storage: Storage, namespace: str = NAMESPACE):
        self._storage = storage
        self._namespace = namespace
        self._snapshot = SessionSnapshot()
        self._loaded = False
        # Один писатель за раз: read-modify-write снимка
        self._write_lock = asyncio.Lock()

    def current(self) -> SessionSnapshot:
        """Текущий снимок (без обращения к storage)."""
        return self._snapshot

    async def load(self) -> SessionSnapshot:
        """Прочитать durable состояние в память (после рестарта процесса)."""
        async with self._write_lock:
            cookies_raw = await self._storage.get(self._namespace, KEY_COOKIES) or {}
            identity_raw = await self._storage.get(self._namespace, KEY_IDENTITY)
            token_raw = await self._storage.get(self._namespace, KEY_REFRESH_TOKEN) or {}

            identity = None
            if identity_raw:
                try:
                    identity = Identity.from_dict(identity_raw)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Stored identity is malformed, ignoring: %s", e)

            values = {str(k): str(v) for k, v in (cookies_raw.get("values") or {}).items()}
            expires = {
                str(k): float(v)
                for k, v in (cookies_raw.get("expires") or {}).items()
                if k in values
            }
            self._snapshot = SessionSnapshot(
                identity=identity,
                cookies=MappingProxyType(values),
                expires=MappingProxyType(expires),
                refresh_token=token_raw.get("token") or None,
            )
            self._loaded = True
            logger.debug(
                "Session loaded: identity=%s cookies=%d",
                identity is not None, len(values),
            )
            return self._snapshot

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def save(self, cookies: Mapping[str, Iterable[CookieRecord]]) -> bool:
        """
        Слить cookies (host -> records) в плоскую durable карту.

        Последняя запись с тем же именем побеждает, независимо от хоста.

        Returns:
            True если состояние изменилось и было записано
        """
        await self._ensure_loaded()
        async with self._write_lock:
            snap = self._snapshot
            values = dict(snap.cookies)
            expires = dict(snap.expires)
            for records in cookies.values():
                for record in records:
                    values[record.name] = record.value
                    if record.expires_at is None:
                        expires.pop(record.name, None)
                    else:
                        expires[record.name] = record.expires_at

            if values == dict(snap.cookies) and _same_expiry(expires, snap.expires):
                return False

            await self._storage.set(
                self._namespace,
                KEY_COOKIES,
                {"values": values, "expires": expires, "saved_at": time.time()},
            )
            self._snapshot = replace(
                snap,
                cookies=MappingProxyType(values),
                expires=MappingProxyType(expires),
            )
            logger.debug("Cookies persisted: %d total", len(values))
            return True

    async def load_for_host(self, host: str) -> list[CookieRecord]:
        """Cookies из durable карты, привязанные к запрашивающему хосту."""
        await self._ensure_loaded()
        return self._snapshot.records_for_host(host)

    async def save_identity(self, identity: Identity) -> bool:
        """Сохранить профиль. Повторная запись того же профиля ничего не пишет."""
        await self._ensure_loaded()
        async with self._write_lock:
            if self._snapshot.identity == identity:
                return False
            await self._storage.set(self._namespace, KEY_IDENTITY, identity.to_dict())
            self._snapshot = replace(self._snapshot, identity=identity)
            return True

    async def load_identity(self) -> Optional[Identity]:
        await self._ensure_loaded()
        return self._snapshot.identity

    async def save_refresh_token(self, token: str) -> bool:
        await self._ensure_loaded()
        async with self._write_lock:
            if self._snapshot.refresh_token == token:
                return False
            await self._storage.set(
                self._namespace, KEY_REFRESH_TOKEN, {"token": token, "saved_at": time.time()}
            )
            self._snapshot = replace(self._snapshot, refresh_token=token)
            return True

    async def load_refresh_token(self) -> Optional[str]:
        await self._ensure_loaded()
        return self._snapshot.refresh_token

    async def clear(self) -> None:
        """
        Удалить identity, cookies и refresh token.

        Durable удаление идёт одной транзакцией; снимок заменяется пустым
        только после коммита. При ошибке storage состояние не меняется.
        """
        async with self._write_lock:
            await self._storage.delete_many(self._namespace, SESSION_KEYS)
            self._snapshot = SessionSnapshot()
            self._loaded = True
        logger.info("Session cleared")
