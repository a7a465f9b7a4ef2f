"""
PairingLoginFlow — QR логин Bilibili (device pairing).

Поток:
1. generate_code() — выдать QR (content + polling_key)
2. poll(polling_key) — вызывающая сторона опрашивает с нужной частотой
3. На успехе: redirect URL -> Set-Cookie -> flush в SessionStore ->
   refresh token -> профиль /x/web-interface/nav -> Identity

Таймеров внутри нет: частоту опроса и остановку решает вызывающая сторона.
Ошибки транспорта и протокола возвращаются как IssueResult / PollOutcome.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from core.config import Config
from core.logger_helper import log
from .api_models import (
    POLL_EXPIRED,
    POLL_SUCCESS,
    POLL_WAITING_CONFIRM,
    POLL_WAITING_SCAN,
    NavResponse,
    QRCodeGenerateResponse,
    QRCodePollResponse,
    VipInfo,
    parse_response,
)
from .errors import BiliAuthError, ProtocolError
from .models import (
    ErrorKind,
    Identity,
    IssueResult,
    LoginState,
    PairingCode,
    PollOutcome,
    PollState,
    SessionGrant,
)
from .session_store import SessionStore
from .transport import SessionTransport

logger = logging.getLogger("bilibili_auth")

GENERATE_PATH = "/x/passport-login/web/qrcode/generate"
POLL_PATH = "/x/passport-login/web/qrcode/poll"
NAV_PATH = "/x/web-interface/nav"

EVENT_LINKED = "bilibili_auth.linked"


class PairingLoginFlow:
    """Машина состояний одной попытки QR-логина."""

    def __init__(
        self,
        transport: SessionTransport,
        store: SessionStore,
        config: Config,
        event_bus: Any = None,
    ):
        self._transport = transport
        self._store = store
        self._passport = config.passport_base_url.rstrip("/")
        self._api = config.api_base_url.rstrip("/")
        self._settle_delay = config.settle_delay
        self._event_bus = event_bus

        self._state = LoginState.IDLE
        self._code: Optional[PairingCode] = None
        self._last_reason: Optional[str] = None
        # Разрешение успеха сериализовано: два SUCCESS не пишут одновременно
        self._resolve_lock = asyncio.Lock()

    @property
    def state(self) -> LoginState:
        return self._state

    @property
    def current_code(self) -> Optional[PairingCode]:
        return self._code

    @property
    def last_reason(self) -> Optional[str]:
        return self._last_reason

    def _is_current(self, polling_key: str) -> bool:
        return self._code is not None and self._code.polling_key == polling_key

    def _move(self, polling_key: str, state: LoginState, reason: Optional[str] = None) -> None:
        # Ответы по старым кодам не трогают состояние текущей попытки
        if self._is_current(polling_key):
            self._state = state
            self._last_reason = reason

    async def generate_code(self) -> IssueResult:
        """Запросить новый QR-код. Предыдущий код становится неактуальным."""
        try:
            payload = await self._transport.get_json(self._passport + GENERATE_PATH)
            resp = parse_response(QRCodeGenerateResponse, payload)
        except BiliAuthError as e:
            log(logger, "warning", "QR code request failed", error=e.kind.value, reason=str(e))
            if e.kind != ErrorKind.NETWORK:
                self._state = LoginState.FAILED
                self._last_reason = str(e)
            return IssueResult.fail(e.kind, str(e))

        if resp.code != 0 or resp.data is None:
            reason = f"QR code request rejected: code={resp.code} {resp.message}".strip()
            log(logger, "warning", "QR code request rejected", code=resp.code)
            self._state = LoginState.FAILED
            self._last_reason = reason
            return IssueResult.fail(ErrorKind.PROTOCOL, reason)

        self._code = PairingCode(content=resp.data.url, polling_key=resp.data.qrcode_key)
        self._state = LoginState.CODE_ISSUED
        self._last_reason = None
        log(logger, "info", "QR code issued")
        return IssueResult.issued(self._code)

    async def poll(self, polling_key: str) -> PollOutcome:
        """
        Один опрос статуса QR.

        Сетевые ошибки возвращаются как FAILED(network) и не меняют
        состояние попытки: вызывающая сторона может повторить опрос.
        """
        if not polling_key:
            return PollOutcome.failed(ErrorKind.PROTOCOL, "polling key is empty")

        try:
            payload = await self._transport.get_json(
                self._passport + POLL_PATH, params={"qrcode_key": polling_key}
            )
            resp = parse_response(QRCodePollResponse, payload)
        except BiliAuthError as e:
            log(logger, "warning", "QR poll failed", error=e.kind.value, reason=str(e))
            if e.kind != ErrorKind.NETWORK:
                self._move(polling_key, LoginState.FAILED, str(e))
            return PollOutcome.failed(e.kind, str(e))

        if resp.code != 0 or resp.data is None:
            reason = f"QR poll rejected: code={resp.code} {resp.message}".strip()
            self._move(polling_key, LoginState.FAILED, reason)
            return PollOutcome.failed(ErrorKind.PROTOCOL, reason)

        status = resp.data.code
        if status == POLL_WAITING_SCAN:
            self._move(polling_key, LoginState.WAITING_SCAN)
            return PollOutcome.waiting_scan()
        if status == POLL_WAITING_CONFIRM:
            self._move(polling_key, LoginState.WAITING_CONFIRM)
            return PollOutcome.waiting_confirm()
        if status == POLL_EXPIRED:
            self._move(polling_key, LoginState.EXPIRED, "QR code expired")
            log(logger, "info", "QR code expired")
            return PollOutcome.expired()
        if status == POLL_SUCCESS:
            grant = SessionGrant(redirect_url=resp.data.url, refresh_token=resp.data.refresh_token)
            return await self._resolve(polling_key, grant)

        reason = f"Unexpected poll status {status}: {resp.data.message}".strip()
        log(logger, "warning", "Unexpected QR poll status", status=status)
        self._move(polling_key, LoginState.FAILED, reason)
        return PollOutcome.failed(ErrorKind.PROTOCOL, reason)

    async def _settle(self) -> None:
        if self._settle_delay > 0:
            await asyncio.sleep(self._settle_delay)

    async def _resolve(self, polling_key: str, grant: SessionGrant) -> PollOutcome:
        async with self._resolve_lock:
            self._move(polling_key, LoginState.RESOLVING)

            # 1. Cookies приходят только с ответом на redirect URL
            if grant.redirect_url:
                try:
                    await self._transport.visit(grant.redirect_url)
                except BiliAuthError as e:
                    reason = f"Session redirect failed: {e}"
                    log(logger, "error", "Session redirect failed", error=e.kind.value)
                    self._move(polling_key, LoginState.FAILED, reason)
                    return PollOutcome.failed(e.kind, reason)
            if not await self._transport.jar.flush():
                log(logger, "warning", "Some cookies were not persisted")
            await self._settle()

            # 2. Refresh token
            token_changed = False
            if grant.refresh_token:
                token_changed = await self._store.save_refresh_token(grant.refresh_token)

            # 3. Профиль; ошибка здесь не откатывает шаги 1-2
            try:
                identity = await self.fetch_identity()
            except BiliAuthError as e:
                reason = f"Identity fetch failed: {e}"
                log(logger, "warning", "Logged in without identity", error=e.kind.value)
                self._state = LoginState.LOGGED_IN
                self._last_reason = reason
                if token_changed:
                    await self._publish_linked(None, partial=True)
                return PollOutcome(
                    PollState.SUCCESS, grant=grant, reason=reason, error=ErrorKind.PARTIAL_SUCCESS
                )

            identity_changed = await self._store.save_identity(identity)
            await self._settle()

            self._state = LoginState.LOGGED_IN
            self._last_reason = None
            if identity_changed or token_changed:
                log(logger, "info", "Logged in", subject_id=identity.subject_id)
                await self._publish_linked(identity, partial=False)
            else:
                logger.debug("Repeated success for the same session, nothing to apply")
            return PollOutcome(PollState.SUCCESS, grant=grant, identity=identity)

    async def fetch_identity(self) -> Identity:
        """
        Загрузить профиль с текущими cookies.

        Raises:
            NetworkError: сбой транспорта
            ProtocolError: ответ отклонён или пользователь не авторизован
        """
        payload = await self._transport.get_json(self._api + NAV_PATH)
        resp = parse_response(NavResponse, payload)
        if resp.code != 0 or resp.data is None or not resp.data.is_login:
            raise ProtocolError(f"Identity request rejected: code={resp.code} {resp.message}".strip())
        vip = resp.data.vip or VipInfo()
        return Identity(
            subject_id=resp.data.mid,
            display_name=resp.data.uname,
            avatar_url=resp.data.face,
            tier_status=vip.status,
            tier_type=vip.type,
        )

    async def refresh_identity(self) -> PollOutcome:
        """
        Повторно загрузить профиль (например после PARTIAL_SUCCESS).

        Returns:
            SUCCESS с identity или FAILED с классом ошибки
        """
        try:
            identity = await self.fetch_identity()
        except BiliAuthError as e:
            log(logger, "warning", "Identity refresh failed", error=e.kind.value)
            return PollOutcome.failed(e.kind, str(e))

        if await self._store.save_identity(identity):
            log(logger, "info", "Identity refreshed", subject_id=identity.subject_id)
            await self._publish_linked(identity, partial=False)
        self._state = LoginState.LOGGED_IN
        self._last_reason = None
        return PollOutcome(PollState.SUCCESS, identity=identity)

    async def _publish_linked(self, identity: Optional[Identity], partial: bool) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            EVENT_LINKED,
            {
                "subject_id": identity.subject_id if identity else None,
                "display_name": identity.display_name if identity else None,
                "partial": partial,
                "linked_at": time.time(),
            },
        )

    def reset(self) -> None:
        """Забыть текущий код и вернуться в IDLE."""
        self._code = None
        self._state = LoginState.IDLE
        self._last_reason = None
