"""
Исключения bilibili_auth.

Поднимаются транспортом и парсерами ответов; PairingLoginFlow переводит их
в явные результаты (IssueResult / PollOutcome) и наружу не пропускает.
"""
from .models import ErrorKind


class BiliAuthError(Exception):
    """Базовая ошибка авторизации."""

    kind: ErrorKind = ErrorKind.PROTOCOL


class NetworkError(BiliAuthError):
    """Сбой транспорта или таймаут. Можно повторить."""

    kind = ErrorKind.NETWORK


class ProtocolError(BiliAuthError):
    """Неожиданный HTTP статус или форма ответа."""

    kind = ErrorKind.PROTOCOL
