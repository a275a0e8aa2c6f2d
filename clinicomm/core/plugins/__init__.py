from .core_plugin import CorePlugin
from .database_plugin import DatabasePlugin
from .messaging_plugin import MessagingPlugin
from .redis_plugin import RedisPlugin

__all__ = ["CorePlugin", "DatabasePlugin", "MessagingPlugin", "RedisPlugin"]
