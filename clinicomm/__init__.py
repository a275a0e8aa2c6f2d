"""
Clinicomm - multi-channel messaging for clinics.

Routes outgoing SMS, WhatsApp and email messages through per-clinic providers,
normalizes WhatsApp webhooks into conversation history and pushes updates to
connected clinic users in real time.
"""

from .core.app import create_app
from .core.config.settings import settings
from .core.factory import ClinicommBuilder, ClinicommPlugin

__version__ = settings.version

__all__ = ["ClinicommBuilder", "ClinicommPlugin", "create_app"]
