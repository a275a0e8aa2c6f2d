"""
WhatsApp webhook parsing and inbound media re-hosting.
"""

from .events import (
    InboundMessageEvent,
    MessageStatusEvent,
    ReactionEvent,
    TemplateStatusEvent,
    WebhookEvent,
)
from .media import LocalMediaUploader, MediaRehoster, MediaUploader, ensure_extension, resolve_filename
from .parser import parse_webhook

__all__ = [
    "InboundMessageEvent",
    "LocalMediaUploader",
    "MediaRehoster",
    "MediaUploader",
    "MessageStatusEvent",
    "ReactionEvent",
    "TemplateStatusEvent",
    "WebhookEvent",
    "ensure_extension",
    "parse_webhook",
    "resolve_filename",
]
