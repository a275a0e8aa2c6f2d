"""
Channel-neutral message intents and provider responses.

The dispatcher builds a MessageIntent and hands it, together with the
resolved ChannelContext, to a channel adapter. Adapters translate the intent
into their provider's wire payload and return a ProviderResponse.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from clinicomm.models.enums import Channel


class IntentType(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    TEMPLATE = "template"
    REACTION = "reaction"


class TemplateSpec(BaseModel):
    """Template reference resolved from stored Template metadata plus caller values."""

    name: str
    language: str = "en_US"
    category: str | None = None
    is_header: bool = False
    header_type: str | None = None
    header_parameters: list[str] = Field(default_factory=list)
    body_parameters: list[str] = Field(default_factory=list)
    # Link used for image/video/document headers
    media_url: str | None = None


class MessageIntent(BaseModel):
    """What to send, independent of any provider's payload format."""

    type: IntentType
    channel: Channel
    to: str
    content: str = ""
    subject: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    filename: str | None = None
    template: TemplateSpec | None = None
    reaction_message_id: str | None = None
    emoji: str | None = None
    quoted_message_id: str | None = None
    preview_url: bool = False
    # Conversational sends get typing indicators on WhatsApp, bulk sends do not
    conversational: bool = True

    @model_validator(mode="after")
    def _check_capability_fields(self) -> "MessageIntent":
        if self.type == IntentType.TEMPLATE and self.template is None:
            raise ValueError("template intents require a template")
        if self.type == IntentType.MEDIA and not self.media_url:
            raise ValueError("media intents require media_url")
        if self.type == IntentType.REACTION and not self.reaction_message_id:
            raise ValueError("reaction intents require reaction_message_id")
        return self


class ProviderResponse(BaseModel):
    """Result of one provider call."""

    success: bool
    channel: Channel
    provider_message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
