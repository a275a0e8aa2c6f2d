"""
Pydantic response schemas for populated messages, history pages and
conversation listings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .enums import Channel, ConversationStatus, Direction, MessageKind, MessageStatus


class PartyRef(BaseModel):
    """Sender or recipient of a message: a clinic user or a lead."""

    kind: Literal["user", "lead"]
    id: str
    name: str | None = None
    phone: str | None = None
    email: str | None = None


class ReactionEntry(BaseModel):
    emoji: str
    added_at: datetime
    user_id: str | None = None
    lead_id: str | None = None


class MessageOut(BaseModel):
    """Stored message as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    conversation_id: str
    channel: Channel
    direction: Direction
    kind: MessageKind
    content: str
    subject: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    provider_id: str | None = None
    provider_message_id: str | None = None
    template_id: str | None = None
    status: MessageStatus
    error_code: str = ""
    error_message: str = ""
    reply_to_message_id: str | None = None
    emoji: str = ""
    reactions: list[ReactionEntry] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class PopulatedMessage(MessageOut):
    """Message with sender, recipient and the replied-to message resolved."""

    sender: PartyRef | None = None
    recipient: PartyRef | None = None
    reply_to: PopulatedMessage | None = None


class Pagination(BaseModel):
    total: int
    current_page: int
    total_pages: int
    has_more: bool


class MessageGroup(BaseModel):
    """Messages of one calendar day (UTC), oldest first."""

    date: str
    messages: list[PopulatedMessage]


class MessageHistoryPage(BaseModel):
    groups: list[MessageGroup]
    pagination: Pagination


class ConversationSummary(BaseModel):
    id: str
    tenant_id: str
    lead: PartyRef
    status: ConversationStatus
    owner_id: str | None = None
    recent_message: MessageOut | None = None
    unread_count: int = 0
    updated_at: datetime


class ConversationPage(BaseModel):
    conversations: list[ConversationSummary]
    pagination: Pagination


class SessionWindow(BaseModel):
    """WhatsApp customer-service window for a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    can_send_message: bool = Field(alias="canSendMessage")
    remaining_time: str = Field(alias="remainingTime")
