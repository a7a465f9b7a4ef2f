"""
Конфигурация runtime.

Минимальные настройки: хранилище, HTTP-клиенты обоих сервисов, логирование.
"""

import os
from dataclasses import dataclass


@dataclass
class Config:
    """Конфигурация runtime."""
    # Тип адаптера: пока только "sqlite"
    storage_type: str = "sqlite"

    # Путь к файлу БД (':memory:' для тестов)
    db_path: str = "data/auth.db"

    # Bilibili: passport (QR-логин) и основной API (identity)
    passport_base_url: str = "https://passport.bilibili.com"
    api_base_url: str = "https://api.bilibili.com"
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    referer: str = "https://www.bilibili.com"

    # Тайм-аут одного HTTP запроса (секунды)
    http_timeout: float = 10.0

    # Пауза перед запросом identity после получения cookies (секунды).
    # По умолчанию 0: порядок обеспечивается ожиданием записи в storage.
    settle_delay: float = 0.0

    # Интервал опроса QR для консольного клиента (секунды)
    poll_interval: float = 2.0

    # DanDanPlay open API (подписанные запросы)
    dandanplay_base_url: str = "https://api.dandanplay.net"
    dandanplay_app_id: str = ""
    dandanplay_app_secret: str = ""

    # Тайм-аут для вызовов сервисов (секунды)
    service_call_timeout: float = 30.0

    # Тайм-аут для shutdown (секунды)
    shutdown_timeout: int = 10

    # Logging
    # "DEBUG" | "INFO" | "WARNING" | "ERROR"
    log_level: str = "INFO"
    # "text" | "json"
    log_format: str = "text"

    def validate(self) -> None:
        """
        Валидировать конфигурацию.

        Raises:
            ValueError: если конфигурация невалидна
        """
        if self.storage_type != "sqlite":
            raise ValueError(f"storage_type must be 'sqlite', got: {self.storage_type!r}")

        if not isinstance(self.db_path, str) or not self.db_path:
            raise ValueError("db_path must be non-empty string")

        for name in ("passport_base_url", "api_base_url", "dandanplay_base_url"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                raise ValueError(f"{name} must be http(s) URL, got: {value!r}")

        if not isinstance(self.http_timeout, (int, float)) or self.http_timeout <= 0:
            raise ValueError(f"http_timeout must be positive, got: {self.http_timeout}")

        if self.settle_delay < 0:
            raise ValueError(f"settle_delay must be >= 0, got: {self.settle_delay}")

        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got: {self.poll_interval}")

        if not isinstance(self.shutdown_timeout, int) or self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive integer, got: {self.shutdown_timeout}"
            )

        self.log_level = (self.log_level or "INFO").upper()
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"log_level must be DEBUG|INFO|WARNING|ERROR, got: {self.log_level!r}")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

    @classmethod
    def from_env(cls) -> "Config":
        """
        Создать конфигурацию из переменных окружения (префикс RUNTIME_).

        Raises:
            ValueError: если конфигурация невалидна
        """
        defaults = cls()
        config = cls(
            storage_type=os.getenv("RUNTIME_STORAGE_TYPE", defaults.storage_type),
            db_path=os.getenv("RUNTIME_DB_PATH", defaults.db_path),
            passport_base_url=os.getenv("RUNTIME_PASSPORT_BASE_URL", defaults.passport_base_url).rstrip("/"),
            api_base_url=os.getenv("RUNTIME_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            user_agent=os.getenv("RUNTIME_USER_AGENT", defaults.user_agent),
            referer=os.getenv("RUNTIME_REFERER", defaults.referer),
            http_timeout=float(os.getenv("RUNTIME_HTTP_TIMEOUT", str(defaults.http_timeout))),
            settle_delay=float(os.getenv("RUNTIME_SETTLE_DELAY", str(defaults.settle_delay))),
            poll_interval=float(os.getenv("RUNTIME_POLL_INTERVAL", str(defaults.poll_interval))),
            dandanplay_base_url=os.getenv("RUNTIME_DANDANPLAY_BASE_URL", defaults.dandanplay_base_url).rstrip("/"),
            dandanplay_app_id=os.getenv("RUNTIME_DANDANPLAY_APP_ID", ""),
            dandanplay_app_secret=os.getenv("RUNTIME_DANDANPLAY_APP_SECRET", ""),
            service_call_timeout=float(os.getenv("RUNTIME_SERVICE_CALL_TIMEOUT", "30.0")),
            shutdown_timeout=int(os.getenv("RUNTIME_SHUTDOWN_TIMEOUT", "10")),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            log_format=(os.getenv("RUNTIME_LOG_FORMAT") or os.getenv("LOG_FORMAT") or "text").lower(),
        )
        config.validate()
        return config
