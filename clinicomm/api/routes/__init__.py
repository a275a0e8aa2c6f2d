"""API routers; the /api-prefixed ones are grouped in api_routers."""

from . import conversations, health, messages, realtime, webhooks

api_routers = [messages.router, conversations.router]

__all__ = ["api_routers", "conversations", "health", "messages", "realtime", "webhooks"]
