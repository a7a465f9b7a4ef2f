"""
CookieJar — cookie jar aiohttp с хранением по хостам и зеркалированием в SessionStore.

Устанавливается в ClientSession транспорта: aiohttp разбирает Set-Cookie
каждого ответа (включая промежуточные редиректы) и передаёт их в
update_cookies(), а перед каждым запросом берёт cookies через filter_cookies().

Приём cookies синхронный, запись в SessionStore идёт фоновыми задачами.
flush() дожидается всех запланированных записей и служит сигналом
готовности вместо sleep. Полный clear() начинает новое поколение: записи,
запланированные до него, в SessionStore уже не попадут.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from http.cookies import BaseCookie, CookieError, Morsel, SimpleCookie
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from aiohttp.abc import AbstractCookieJar
from aiohttp.typedefs import LooseCookies
from yarl import URL

from .models import CookieRecord
from .session_store import SessionStore

logger = logging.getLogger("bilibili_auth")

COOKIE_PATH = "/"


def record_from_morsel(host: str, morsel: "Morsel[str]", now: Optional[float] = None) -> CookieRecord:
    """
    Построить запись из Morsel, разобранного aiohttp.

    Max-Age имеет приоритет над Expires.
    """
    now = time.time() if now is None else now
    expires_at = None
    max_age = morsel.get("max-age")
    if max_age:
        try:
            seconds = int(max_age)
        except ValueError:
            seconds = None
        if seconds is not None:
            # Max-Age <= 0: удаление cookie
            expires_at = now + seconds if seconds > 0 else 0.0
    if expires_at is None and morsel.get("expires"):
        try:
            expires_at = parsedate_to_datetime(morsel["expires"]).timestamp()
        except (TypeError, ValueError):
            expires_at = None
    return CookieRecord(name=morsel.key, value=morsel.value, host=host, expires_at=expires_at)


def _to_morsel(record: CookieRecord) -> Optional["Morsel[str]"]:
    morsel: Morsel[str] = Morsel()
    try:
        morsel.set(record.name, record.value, record.value)
    except CookieError:
        logger.debug("Cookie %r can not be sent, skipped", record.name)
        return None
    morsel["domain"] = record.host
    morsel["path"] = COOKIE_PATH
    return morsel


def _domain_match(domain: str, host: str) -> bool:
    domain = domain.lower().lstrip(".")
    return host == domain or host.endswith("." + domain)


class CookieJar(AbstractCookieJar):
    """Cookies по хостам: память первична, SessionStore как fallback после рестарта."""

    def __init__(self, store: SessionStore, *, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__(loop=loop)
        self._store = store
        self._cookies: Dict[str, Dict[str, CookieRecord]] = {}
        self._lock = threading.Lock()
        self._pending: Set[asyncio.Task] = set()
        self._failed_writes = 0
        self._generation = 0
        # Фоновые записи и reset() не перемежаются
        self._write_gate = asyncio.Lock()

    # --- AbstractCookieJar ---------------------------------------------------

    @property
    def unsafe(self) -> bool:
        # Тестовые и локальные серверы адресуются по IP
        return True

    @property
    def quote_cookie(self) -> bool:
        return True

    @property
    def cookies(self) -> "MappingProxyType[Tuple[str, str], SimpleCookie]":
        result: Dict[Tuple[str, str], SimpleCookie] = {}
        for host, records in self._snapshot_memory().items():
            cookie = SimpleCookie()
            for record in records:
                morsel = _to_morsel(record)
                if morsel is not None:
                    cookie[record.name] = morsel
            result[(host, COOKIE_PATH)] = cookie
        return MappingProxyType(result)

    @property
    def host_only_cookies(self) -> frozenset:
        return frozenset(
            (host, COOKIE_PATH, record.name)
            for host, records in self._snapshot_memory().items()
            for record in records
        )

    def update_cookies(self, cookies: LooseCookies, response_url: URL = URL()) -> None:
        """
        Принять cookies ответа от response_url.

        Для одного имени побеждает последняя запись. Истёкшие cookies
        удаляются из памяти, запись в SessionStore планируется в фоне.
        """
        host = (response_url.raw_host or "").lower()
        now = time.time()
        received: Dict[str, CookieRecord] = {}
        items = cookies.items() if isinstance(cookies, Mapping) else cookies
        for name, value in items:
            if isinstance(value, Morsel):
                record = record_from_morsel(host, value, now)
            else:
                record = CookieRecord(name=name, value=str(value), host=host)
            received[record.name] = record
        if not received:
            return

        with self._lock:
            bucket = self._cookies.setdefault(host, {})
            for name, record in received.items():
                if record.is_expired(now):
                    bucket.pop(name, None)
                else:
                    bucket[name] = record
            generation = self._generation

        logger.debug("Received %d cookie(s) from %s", len(received), host)
        self._schedule_mirror(host, list(received.values()), generation)

    def filter_cookies(self, request_url: URL) -> "BaseCookie[str]":
        """Cookies для запроса: память хоста, при пустой памяти durable карта."""
        filtered: BaseCookie[str] = BaseCookie()
        for record in self.cookies_for_request(request_url.raw_host or ""):
            morsel = _to_morsel(record)
            if morsel is not None:
                filtered[record.name] = morsel
        return filtered

    def clear(self, predicate: Optional[Callable[["Morsel[str]"], bool]] = None) -> None:
        """
        Очистить память.

        Без predicate начинается новое поколение: запланированные, но ещё
        не выполненные записи в SessionStore отбрасываются. Durable копия
        не трогается (см. reset()).
        """
        with self._lock:
            if predicate is None:
                self._cookies.clear()
                self._generation += 1
                return
            for bucket in self._cookies.values():
                for name, record in list(bucket.items()):
                    morsel = _to_morsel(record)
                    if morsel is not None and predicate(morsel):
                        del bucket[name]

    def clear_domain(self, domain: str) -> None:
        with self._lock:
            for host in [h for h in self._cookies if _domain_match(domain, h)]:
                del self._cookies[host]

    def __iter__(self) -> Iterator["Morsel[str]"]:
        for records in self._snapshot_memory().values():
            for record in records:
                morsel = _to_morsel(record)
                if morsel is not None:
                    yield morsel

    def __len__(self) -> int:
        return sum(len(records) for records in self._snapshot_memory().values())

    # --- durable зеркало -----------------------------------------------------

    def on_response_received(self, host: str, set_cookie_headers: Iterable[str]) -> None:
        """Принять сырые Set-Cookie заголовки ответа от host."""
        self.update_cookies_from_headers(list(set_cookie_headers), URL.build(scheme="https", host=host))

    def _schedule_mirror(self, host: str, records: List[CookieRecord], generation: int) -> None:
        task = asyncio.get_running_loop().create_task(self._mirror(host, records, generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _mirror(self, host: str, records: List[CookieRecord], generation: int) -> None:
        async with self._write_gate:
            if generation != self._generation:
                logger.debug("Dropped %d cookie(s) from %s received before reset", len(records), host)
                return
            try:
                await self._store.save({host: records})
            except Exception as e:
                self._failed_writes += 1
                logger.error("Failed to persist cookies from %s: %s", host, e)

    async def flush(self) -> bool:
        """
        Дождаться всех запланированных записей в SessionStore.

        Returns:
            True если все записи с прошлого flush() прошли успешно
        """
        while self._pending:
            await asyncio.gather(*list(self._pending))
        ok = self._failed_writes == 0
        self._failed_writes = 0
        return ok

    async def reset(self) -> None:
        """
        Удалить сессию из SessionStore и очистить память.

        Cookies, принятые до завершения reset(), в SessionStore не вернутся.
        Если storage не смог удалить данные, jar не меняется и исключение
        пробрасывается.
        """
        async with self._write_gate:
            await self._store.clear()
            self.clear()

    # --- чтение ----------------------------------------------------------------

    def _snapshot_memory(self) -> Dict[str, List[CookieRecord]]:
        now = time.time()
        with self._lock:
            return {
                host: [record for record in bucket.values() if not record.is_expired(now)]
                for host, bucket in self._cookies.items()
            }

    def memory_cookies(self, host: str) -> List[CookieRecord]:
        now = time.time()
        with self._lock:
            bucket = self._cookies.get(host.lower(), {})
            return [record for record in bucket.values() if not record.is_expired(now)]

    def cookies_for_request(self, host: str) -> List[CookieRecord]:
        """Cookies для запроса к host: сначала память, при пустой памяти из SessionStore."""
        host = host.lower()
        records = self.memory_cookies(host)
        if records:
            return records
        return self._store.current().records_for_host(host)

    def cookie_header(self, host: str) -> str:
        return "; ".join(f"{record.name}={record.value}" for record in self.cookies_for_request(host))
