"""
Outbound messaging: intents, channel adapters, the dispatcher and reactions.
"""

from .adapters import AdapterRegistry, BrevoEmailAdapter, TwilioSmsAdapter, WhatsAppAdapter
from .credentials import ChannelContext, CredentialResolver
from .dispatcher import OutboundDispatcher
from .errors import (
    ClinicommError,
    ConversationNotFound,
    MessageNotFound,
    NotFoundError,
    ProviderCallFailed,
    ProviderMisconfigured,
    ProviderNotFound,
    RecipientUnavailable,
    TemplateNotFound,
    TenantMismatch,
)
from .intents import IntentType, MessageIntent, ProviderResponse, TemplateSpec
from .reactions import ReactionService
from .requests import AssignRequest, ReactionRequest, SendRequest

__all__ = [
    "AdapterRegistry",
    "AssignRequest",
    "BrevoEmailAdapter",
    "ChannelContext",
    "ClinicommError",
    "ConversationNotFound",
    "CredentialResolver",
    "IntentType",
    "MessageIntent",
    "MessageNotFound",
    "NotFoundError",
    "OutboundDispatcher",
    "ProviderCallFailed",
    "ProviderMisconfigured",
    "ProviderNotFound",
    "ProviderResponse",
    "ReactionRequest",
    "ReactionService",
    "RecipientUnavailable",
    "SendRequest",
    "TemplateNotFound",
    "TemplateSpec",
    "TenantMismatch",
    "WhatsAppAdapter",
]
