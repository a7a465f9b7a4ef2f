"""
ServiceRegistry - реестр сервисов для вызова методов плагинов.

Плагины регистрируют свои сервисы ("bilibili_auth.poll", "dandanplay.sign").
Внешние компоненты вызывают их по имени, не импортируя плагины.
"""

import asyncio
from typing import Any, Callable, Awaitable, Optional


# Тип для сервисной функции
ServiceFunc = Callable[..., Awaitable[Any]]


class ServiceRegistry:
    """
    Реестр сервисов.

    - плагины регистрируют сервисы (async функции)
    - другие компоненты вызывают их по имени
    - вызовы защищены timeout, если он задан
    """

    def __init__(self, default_timeout: Optional[float] = None):
        """
        Args:
            default_timeout: timeout для вызовов сервисов (секунды), None — без ограничения
        """
        self._services: dict[str, ServiceFunc] = {}
        self._lock = asyncio.Lock()
        self._default_timeout: Optional[float] = default_timeout

    async def register(self, service_name: str, func: ServiceFunc) -> None:
        """
        Зарегистрировать сервис.

        Raises:
            ValueError: если сервис с таким именем уже зарегистрирован
        """
        async with self._lock:
            if service_name in self._services:
                raise ValueError(f"Сервис '{service_name}' уже зарегистрирован")
            self._services[service_name] = func

    async def unregister(self, service_name: str) -> None:
        async with self._lock:
            self._services.pop(service_name, None)

    async def call(self, service_name: str, *args, **kwargs) -> Any:
        """
        Вызвать сервис.

        Raises:
            ValueError: если сервис не найден
            asyncio.TimeoutError: если вызов превысил default_timeout

        Пример:
            status = await service_registry.call("bilibili_auth.status")
        """
        async with self._lock:
            func = self._services.get(service_name)
        if func is None:
            raise ValueError(f"Сервис '{service_name}' не найден")

        # Вызываем вне lock, чтобы не блокировать другие вызовы
        if self._default_timeout is not None:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self._default_timeout)
        return await func(*args, **kwargs)

    async def has_service(self, service_name: str) -> bool:
        async with self._lock:
            return service_name in self._services

    async def list_services(self) -> list[str]:
        async with self._lock:
            return sorted(self._services)

    async def clear(self) -> None:
        """Очистить все сервисы."""
        async with self._lock:
            self._services.clear()
