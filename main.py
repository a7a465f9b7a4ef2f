"""
Точка входа: консольный QR-логин Bilibili.

Поднимает runtime с плагинами bilibili_auth и dandanplay_sign, печатает
ссылку для QR-кода и опрашивает статус каждые poll_interval секунд.
Если сессия уже сохранена, просто печатает профиль.
"""

import asyncio
import signal
from pathlib import Path

from core.config import Config
from core.logger_helper import setup_logging
from core.runtime import CoreRuntime
from core.storage_factory import create_storage_adapter
from plugins.bilibili_auth import BilibiliAuthPlugin, ErrorKind, LoginState, SessionManager
from plugins.dandanplay_sign import DanDanPlaySignPlugin


def print_identity(manager: SessionManager) -> None:
    identity = manager.get_identity()
    if identity is None:
        print("[Login] Сессия есть, профиль не загружен")
        return
    print(f"[Login] {identity.display_name} (mid={identity.subject_id})")


async def run_login(runtime: CoreRuntime, stop: asyncio.Event) -> bool:
    """Провести QR-логин. Возвращает True при успехе."""
    manager: SessionManager = await runtime.service_registry.call("bilibili_auth.manager")
    if manager.is_logged_in():
        print_identity(manager)
        return True

    issued = await manager.flow.generate_code()
    if not issued.ok:
        print(f"[Login] Не удалось получить QR-код: {issued.reason}")
        return False

    print("[Login] Отсканируйте QR-код в приложении Bilibili:")
    print(issued.code.content)

    last_state = None
    while not stop.is_set():
        outcome = await manager.flow.poll(issued.code.polling_key)
        if manager.flow.state != last_state:
            last_state = manager.flow.state
            print(f"[Login] {last_state.value}")
        if outcome.error == ErrorKind.NETWORK:
            print(f"[Login] Сеть недоступна, повтор: {outcome.reason}")
        elif outcome.is_terminal:
            if manager.flow.state == LoginState.LOGGED_IN:
                if outcome.is_partial:
                    print(f"[Login] Вход выполнен, но профиль не получен: {outcome.reason}")
                else:
                    print_identity(manager)
                return True
            print(f"[Login] {outcome.reason}")
            return False
        try:
            await asyncio.wait_for(stop.wait(), timeout=runtime.config.poll_interval)
        except asyncio.TimeoutError:
            pass
    return False


async def main() -> int:
    """Главная функция."""
    config = Config.from_env()
    config.validate()
    setup_logging(config.log_level, config.log_format)

    if config.db_path != ":memory:":
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)

    storage_adapter = await create_storage_adapter(config)
    runtime = CoreRuntime(storage_adapter, config)
    await runtime.plugin_manager.load_plugin(BilibiliAuthPlugin(runtime))
    await runtime.plugin_manager.load_plugin(DanDanPlaySignPlugin(runtime))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await runtime.start()
        ok = await run_login(runtime, stop)
    finally:
        try:
            await asyncio.wait_for(runtime.shutdown(), timeout=config.shutdown_timeout)
        except asyncio.TimeoutError:
            print("[Runtime] Таймаут при остановке Runtime")
    return 0 if ok else 1


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
