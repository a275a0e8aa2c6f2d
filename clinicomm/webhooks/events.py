"""
Typed WhatsApp webhook events.

The parser flattens the nested entry/changes/value payload into a list of
these models. The union is discriminated by the `kind` field so callers can
match on it directly.
"""

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MEDIA_MESSAGE_TYPES = frozenset({"image", "video", "sticker", "document", "audio"})


def _from_unix(value: str | int | None) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


class _WebhookEventBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class TemplateStatusEvent(_WebhookEventBase):
    """Approval status change of a message template."""

    kind: Literal["template_status"] = "template_status"
    provider_template_id: str
    event: str
    reason: str | None = None


class StatusError(BaseModel):
    code: int | str | None = None
    title: str | None = None
    message: str | None = None
    details: str | None = None

    @property
    def description(self) -> str:
        return self.details or self.message or self.title or ""


class MessageStatusEvent(_WebhookEventBase):
    """Delivery receipt for a message sent by the clinic."""

    kind: Literal["message_status"] = "message_status"
    phone_number_id: str | None = None
    provider_message_id: str
    status: str
    recipient_id: str | None = None
    timestamp: datetime | None = None
    errors: list[StatusError] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def _lower_status(cls, v: str) -> str:
        return v.lower()

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v):
        return _from_unix(v) if isinstance(v, str | int) else v


class ReactionEvent(_WebhookEventBase):
    """A lead reacted to (or un-reacted from) a message."""

    kind: Literal["reaction"] = "reaction"
    phone_number_id: str | None = None
    from_: str = Field(alias="from")
    reacted_message_id: str
    emoji: str = ""


class InboundMessageEvent(_WebhookEventBase):
    """A message sent by a lead to a clinic's WhatsApp number."""

    kind: Literal["inbound_message"] = "inbound_message"
    phone_number_id: str
    display_phone_number: str | None = None
    from_: str = Field(alias="from")
    profile_name: str | None = None
    provider_message_id: str
    type: str
    timestamp: datetime | None = None

    text: str | None = None
    caption: str | None = None
    media_id: str | None = None
    mime_type: str | None = None
    filename: str | None = None
    context_message_id: str | None = None

    location_name: str | None = None
    location_address: str | None = None
    button_text: str | None = None
    interactive_title: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v):
        return _from_unix(v) if isinstance(v, str | int) else v

    @property
    def has_media(self) -> bool:
        return self.type in MEDIA_MESSAGE_TYPES and bool(self.media_id)

    @property
    def content(self) -> str:
        """Display text for the message, empty when the type carries none."""
        if self.text:
            return self.text
        if self.caption:
            return self.caption
        if self.location_name or self.location_address:
            return ", ".join(p for p in (self.location_name, self.location_address) if p)
        return self.button_text or self.interactive_title or ""


WebhookEvent = Annotated[
    TemplateStatusEvent | MessageStatusEvent | ReactionEvent | InboundMessageEvent,
    Field(discriminator="kind"),
]
