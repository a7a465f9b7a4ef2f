"""
Модели bilibili_auth плагина.

PairingCode: выданный QR-код (одна попытка логина).
PollOutcome: результат одного опроса QR.
SessionGrant: данные успешного опроса (redirect URL, refresh token).
Identity: профиль авторизованного пользователя (persistent).
CookieRecord: одна cookie, уникальна по (host, name).
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class LoginState(str, Enum):
    """Состояния QR-логина."""

    IDLE = "idle"
    CODE_ISSUED = "code_issued"
    WAITING_SCAN = "waiting_scan"
    WAITING_CONFIRM = "waiting_confirm"
    RESOLVING = "resolving"
    LOGGED_IN = "logged_in"
    EXPIRED = "expired"
    FAILED = "failed"


class PollState(str, Enum):
    """Результат одного опроса."""

    WAITING_SCAN = "waiting_scan"
    WAITING_CONFIRM = "waiting_confirm"
    EXPIRED = "expired"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PollState.EXPIRED, PollState.SUCCESS, PollState.FAILED)


class ErrorKind(str, Enum):
    """Классы ошибок, которые видит вызывающая сторона."""

    NETWORK = "network"                  # транспорт / таймаут, можно повторить
    PROTOCOL = "protocol"                # неожиданный ответ сервера
    AUTH_EXPIRED = "auth_expired"        # QR истёк, нужен новый код
    PARTIAL_SUCCESS = "partial_success"  # cookies есть, identity не получен


@dataclass(frozen=True)
class PairingCode:
    content: str          # содержимое QR (URL для сканирования)
    polling_key: str      # qrcode_key для опроса
    issued_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SessionGrant:
    redirect_url: Optional[str] = None
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class Identity:
    subject_id: int
    display_name: str
    avatar_url: str = ""
    tier_status: int = 0      # статус подписки: 0 нет, 1 активна
    tier_type: int = 0        # тип подписки: 0 нет, 1 месяц, 2 год

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            subject_id=int(data["subject_id"]),
            display_name=str(data["display_name"]),
            avatar_url=str(data.get("avatar_url") or ""),
            tier_status=int(data.get("tier_status") or 0),
            tier_type=int(data.get("tier_type") or 0),
        )


@dataclass(frozen=True)
class CookieRecord:
    name: str
    value: str
    host: str
    expires_at: Optional[float] = None  # None: session cookie

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (time.time() if now is None else now)


@dataclass(frozen=True)
class IssueResult:
    """Результат выдачи QR-кода."""

    code: Optional[PairingCode] = None
    reason: Optional[str] = None
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.code is not None

    @classmethod
    def issued(cls, code: PairingCode) -> "IssueResult":
        return cls(code=code)

    @classmethod
    def fail(cls, error: ErrorKind, reason: str) -> "IssueResult":
        return cls(reason=reason, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if self.code is not None:
            return {"status": "issued", **self.code.to_dict()}
        return {"status": "failed", "error": self.error.value if self.error else None, "reason": self.reason}


@dataclass(frozen=True)
class PollOutcome:
    """
    Результат опроса QR.

    SUCCESS с error=PARTIAL_SUCCESS: сессия (cookies) получена, но профиль
    загрузить не удалось; reason содержит причину.
    """

    state: PollState
    grant: Optional[SessionGrant] = None
    identity: Optional[Identity] = None
    reason: Optional[str] = None
    error: Optional[ErrorKind] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_partial(self) -> bool:
        return self.state == PollState.SUCCESS and self.error == ErrorKind.PARTIAL_SUCCESS

    @classmethod
    def waiting_scan(cls) -> "PollOutcome":
        return cls(PollState.WAITING_SCAN)

    @classmethod
    def waiting_confirm(cls) -> "PollOutcome":
        return cls(PollState.WAITING_CONFIRM)

    @classmethod
    def expired(cls) -> "PollOutcome":
        return cls(PollState.EXPIRED, reason="QR code expired", error=ErrorKind.AUTH_EXPIRED)

    @classmethod
    def failed(cls, error: ErrorKind, reason: str) -> "PollOutcome":
        return cls(PollState.FAILED, reason=reason, error=error)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.state.value}
        if self.identity is not None:
            result["identity"] = self.identity.to_dict()
        if self.error is not None:
            result["error"] = self.error.value
        if self.reason:
            result["reason"] = self.reason
        return result
