"""
EventBus - простой механизм pub/sub для событий.

Плагины публикуют события о смене состояния сессии
("bilibili_auth.linked", "bilibili_auth.unlinked"), внешние компоненты
подписываются и не знают о плагинах напрямую.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Awaitable

logger = logging.getLogger("runtime")

# Тип для обработчика событий
EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventBus:
    """
    Шина событий.

    Обработчики одного события запускаются параллельно; ошибка обработчика
    логируется и не влияет на публикующую сторону.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Подписаться на событие.

        Пример:
            async def on_linked(event_type: str, data: dict):
                print(data["display_name"])

            event_bus.subscribe("bilibili_auth.linked", on_linked)
        """
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Отписаться от события. Неизвестный обработчик игнорируется."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def publish(self, event_type: str, data: dict[str, Any]) -> None:
        """Опубликовать событие всем подписчикам."""
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event_type, data) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Event handler %s failed for %s: %s",
                    getattr(handler, "__qualname__", handler), event_type, result,
                )

    def get_subscribers_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    def clear(self) -> None:
        """Очистить все подписки."""
        self._handlers.clear()
