"""
Request bodies accepted by the send and reaction endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clinicomm.models.enums import Channel, MessageKind


class SendRequest(BaseModel):
    """Outbound message request: free-form content, media or a template."""

    model_config = ConfigDict(str_strip_whitespace=True)

    conversation_id: str | None = None
    lead_id: str | None = None
    channel: Channel = Channel.WHATSAPP
    provider_id: str | None = None

    content: str = ""
    subject: str | None = Field(None, description="Email subject")
    media_url: str | None = None
    media_type: str | None = Field(
        None, description="image, video, audio, document, sticker or a MIME type"
    )
    filename: str | None = None
    preview_url: bool = Field(False, description="Let WhatsApp render a link preview")

    template_id: str | None = None
    header_parameters: list[str] = Field(default_factory=list)
    body_parameters: list[str] = Field(default_factory=list)

    reply_to_message_id: str | None = Field(
        None, description="Internal id of the message being replied to"
    )
    quoted_message_id: str | None = Field(
        None, description="Provider id to quote; defaults to the reply target's"
    )
    kind: MessageKind = MessageKind.CONVERSATIONAL

    @model_validator(mode="after")
    def _check_target_and_body(self) -> "SendRequest":
        if not self.conversation_id and not self.lead_id:
            raise ValueError("conversation_id or lead_id is required")
        if not (self.content or self.media_url or self.template_id):
            raise ValueError("content, media_url or template_id is required")
        return self


class ReactionRequest(BaseModel):
    """Reaction toggle request; completeness is checked by ReactionService."""

    model_config = ConfigDict(str_strip_whitespace=True)

    provider_message_id: str | None = None
    message_id: str | None = None
    emoji: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.provider_message_id and self.message_id and self.emoji)


class AssignRequest(BaseModel):
    """Conversation owner change; a null owner_id unassigns."""

    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: str | None = Field(None, description="Clinic user receiving the conversation")
