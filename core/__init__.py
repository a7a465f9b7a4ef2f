"""
Core Runtime - минимальное ядро для плагинов авторизации.
"""

from .config import Config
from .event_bus import EventBus
from .logger_helper import setup_logging, log
from .plugin_manager import PluginManager
from .runtime import CoreRuntime
from .service_registry import ServiceRegistry
from .storage import Storage
from .storage_factory import create_storage_adapter

__all__ = [
    "Config",
    "CoreRuntime",
    "EventBus",
    "PluginManager",
    "ServiceRegistry",
    "Storage",
    "create_storage_adapter",
    "setup_logging",
    "log",
]
