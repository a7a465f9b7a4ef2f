"""
Bilibili Auth Plugin

QR-логин Bilibili и постоянная cookie-сессия.
"""
from .cookie_jar import CookieJar
from .errors import BiliAuthError, NetworkError, ProtocolError
from .models import (
    CookieRecord,
    ErrorKind,
    Identity,
    IssueResult,
    LoginState,
    PairingCode,
    PollOutcome,
    PollState,
    SessionGrant,
)
from .pairing_flow import PairingLoginFlow
from .plugin import BilibiliAuthPlugin
from .session_manager import SessionManager, SessionManagerProvider
from .session_store import SessionStore
from .transport import SessionTransport

__all__ = [
    "BiliAuthError",
    "BilibiliAuthPlugin",
    "CookieJar",
    "CookieRecord",
    "ErrorKind",
    "Identity",
    "IssueResult",
    "LoginState",
    "NetworkError",
    "PairingCode",
    "PairingLoginFlow",
    "PollOutcome",
    "PollState",
    "ProtocolError",
    "SessionGrant",
    "SessionManager",
    "SessionManagerProvider",
    "SessionStore",
    "SessionTransport",
]
