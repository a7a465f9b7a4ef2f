"""
Подпись запросов DanDanPlay open API.

Канонический формат (контракт с сервером, сервер пересчитывает его так же):

    {caller_id}{key1}{value1}{key2}{value2}...{secret}

где пары query-параметров отсортированы по ключу (по возрастанию, сравнение
строк Python), без разделителей. Подпись: SHA-256 от UTF-8 байтов
канонической строки в нижнем hex.
"""

import hashlib
from typing import Mapping


def canonical_string(query_params: Mapping[str, str], caller_id: str, secret: str) -> str:
    """Собрать каноническую строку для подписи."""
    pairs = "".join(f"{key}{query_params[key]}" for key in sorted(query_params))
    return f"{caller_id}{pairs}{secret}"


def sign(
    method: str,
    path: str,
    query_params: Mapping[str, str],
    caller_id: str,
    secret: str,
) -> str:
    """
    Вычислить подпись запроса.

    method и path входят в контракт вызова, но не в каноническую строку:
    сервер проверяет только caller id, query и secret.

    Raises:
        UnicodeEncodeError: строка не кодируется в UTF-8 (ошибка вызывающего кода)
    """
    raw = canonical_string(query_params, caller_id, secret)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
