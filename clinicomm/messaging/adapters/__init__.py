from .base import AdapterRegistry, ChannelAdapter
from .email import BrevoEmailAdapter
from .sms import TwilioSmsAdapter
from .whatsapp import WhatsAppAdapter

__all__ = [
    "AdapterRegistry",
    "BrevoEmailAdapter",
    "ChannelAdapter",
    "TwilioSmsAdapter",
    "WhatsAppAdapter",
]
