from .adapter import WhatsAppAdapter, whatsapp_media_kind
from .client import WhatsAppClient, WhatsAppUrlBuilder
from .templates import build_template_components, build_template_payload

__all__ = [
    "WhatsAppAdapter",
    "WhatsAppClient",
    "WhatsAppUrlBuilder",
    "build_template_components",
    "build_template_payload",
    "whatsapp_media_kind",
]
