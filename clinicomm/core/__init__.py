"""
Core components: configuration, logging, the application factory and plugins.
"""

from .app import create_app
from .config.settings import settings
from .factory import ClinicommBuilder, ClinicommPlugin
from .logging import get_app_logger, get_logger, setup_app_logging
from .plugins import CorePlugin, DatabasePlugin, MessagingPlugin, RedisPlugin

__all__ = [
    "ClinicommBuilder",
    "ClinicommPlugin",
    "CorePlugin",
    "DatabasePlugin",
    "MessagingPlugin",
    "RedisPlugin",
    "create_app",
    "get_app_logger",
    "get_logger",
    "setup_app_logging",
    "settings",
]
