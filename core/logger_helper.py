"""
Logger Helper - настройка логирования и запись логов с контекстом.

Компоненты пишут в именованные логгеры стандартного `logging`
("runtime", "bilibili_auth", "dandanplay_sign", ...). `setup_logging()`
вешает на логгеры компонентов один общий stdout-обработчик.

Форматы:
- text (по умолчанию): [LEVEL] [logger] message (key=value ...)
- json: одна строка JSON на событие (для ELK / Loki)

Контекст передаётся через helper `log()`:
    log(logger, "info", "QR code issued", polling_key=key)
"""

import json
import logging
import sys
from typing import Any, Iterable, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

COMPONENT_LOGGERS = ("runtime", "storage", "bilibili_auth", "dandanplay_sign")


def _safe_context(record: logging.LogRecord) -> dict[str, Any]:
    context = getattr(record, "context", None) or {}
    safe: dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, (str, int, float, bool, type(None))):
            safe[key] = value
        else:
            safe[key] = str(value)
    return safe


class TextFormatter(logging.Formatter):
    """[LEVEL] [logger] message (context)"""

    def format(self, record: logging.LogRecord) -> str:
        parts = [f"[{record.levelname}]", f"[{record.name}]", record.getMessage()]
        context = _safe_context(record)
        if context:
            parts.append("(" + " ".join(f"{k}={v}" for k, v in context.items()) + ")")
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """Структурированный JSON лог (одна строка на событие)."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _safe_context(record)
        if context:
            event["context"] = context
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    fmt: str = "text",
    loggers: Iterable[str] = COMPONENT_LOGGERS,
) -> logging.Handler:
    """
    Настроить логирование компонентов.

    Не трогает root logger: обработчик вешается только на логгеры компонентов.
    Повторный вызов заменяет ранее установленный обработчик.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
    handler.set_name("media_auth")

    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    for name in loggers:
        lg = logging.getLogger(name)
        for existing in list(lg.handlers):
            if existing.get_name() == "media_auth":
                lg.removeHandler(existing)
        lg.addHandler(handler)
        lg.setLevel(numeric_level)
        lg.propagate = False
    return handler


def log(logger: logging.Logger, level: str, message: str, exc_info: Optional[bool] = None, **context: Any) -> None:
    """
    Записать лог с контекстом.

    Args:
        logger: логгер компонента
        level: уровень логирования (debug, info, warning, error)
        message: сообщение
        **context: дополнительный контекст (не передавайте сюда секреты)
    """
    lvl = _LEVELS.get((level or "info").lower(), logging.INFO)
    logger.log(lvl, message, exc_info=exc_info, extra={"context": context or None})
