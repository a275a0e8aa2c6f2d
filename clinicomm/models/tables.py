"""
Database models for leads, conversations, messages, providers and templates.

SQLModel tables portable across SQLite (aiosqlite) and PostgreSQL (asyncpg).
Enums are stored as plain strings; JSON columns hold credentials, reactions
and free-form metadata.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from .enums import Channel, ConversationStatus, Direction, MessageKind, MessageStatus

# =============================================================================
# Column helpers
# =============================================================================


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid4().hex


def enum_values(enum_cls: type[Enum]) -> list:
    """
    Extract enum values for SQLAlchemy enum configuration.

    This is a top-level function (not lambda) so it can be pickled.
    """
    return [member.value for member in enum_cls]


def get_enum_column(enum_cls: type[Enum], nullable: bool = False, **kwargs):
    """
    Create a SQLAlchemy Column for enum fields stored by value.

    Non-native enums keep the schema identical on SQLite and PostgreSQL.
    """
    return Column(
        SAEnum(
            enum_cls,
            values_callable=enum_values,
            native_enum=False,
            validate_strings=True,
            length=32,
        ),
        nullable=nullable,
        **kwargs,
    )


def timestamp_column(**kwargs) -> Column:
    return Column(DateTime(timezone=True), nullable=False, **kwargs)


# =============================================================================
# Collaborator-owned records (read-mostly for this service)
# =============================================================================


class Provider(SQLModel, table=True):
    """
    Channel credential bundle for one clinic.

    Credential keys per channel:
    - whatsapp: access_token, phone_number_id
    - sms: account_sid, auth_token, messaging_service_sid
    - email: api_key, sender_email, sender_name
    """

    __tablename__ = "providers"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    tenant_id: str = Field(index=True, max_length=64)
    channel: Channel = Field(sa_column=get_enum_column(Channel))
    name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    # WhatsApp phone-number id that webhooks carry in metadata.phone_number_id
    phone_number_id: str | None = Field(
        default=None, sa_column=Column(String(64), nullable=True, index=True)
    )
    owner_user_id: str | None = Field(default=None, max_length=64)
    credentials: dict = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class Template(SQLModel, table=True):
    """Pre-approved WhatsApp template; only status is written by this service."""

    __tablename__ = "templates"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    tenant_id: str = Field(index=True, max_length=64)
    provider_id: str | None = Field(default=None, max_length=32)
    provider_template_id: str | None = Field(
        default=None, sa_column=Column(String(64), nullable=True, index=True)
    )
    unique_name: str = Field(sa_column=Column(String(512), nullable=False))
    language: str = Field(default="en_US", max_length=16)
    category: str | None = Field(default=None, max_length=32)
    is_header: bool = Field(default=False)
    header_type: str | None = Field(default=None, max_length=16)
    body: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(default="pending", max_length=32)
    updated_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class Lead(SQLModel, table=True):
    """External party (patient or prospect) a clinic converses with."""

    __tablename__ = "leads"
    __table_args__ = (UniqueConstraint("tenant_id", "phone", name="uq_lead_tenant_phone"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    tenant_id: str = Field(index=True, max_length=64)
    name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(320), nullable=True))
    status: str = Field(default="New", max_length=32)
    source: str | None = Field(default=None, max_length=32)
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


# =============================================================================
# Conversation timeline
# =============================================================================


class Conversation(SQLModel, table=True):
    """Thread between one clinic and one lead."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "lead_id", name="uq_conversation_tenant_lead"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    tenant_id: str = Field(index=True, max_length=64)
    lead_id: str = Field(foreign_key="leads.id", max_length=32)
    recent_message_id: str | None = Field(default=None, max_length=32)
    status: ConversationStatus = Field(
        default=ConversationStatus.ACTIVE,
        sa_column=get_enum_column(ConversationStatus),
    )
    owner_id: str | None = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=timestamp_column(index=True)
    )


class ConversationUnread(SQLModel, table=True):
    """
    Unread message ids of a conversation.

    One row per unread message; appends are single inserts so concurrent
    writers never overwrite each other's entries.
    """

    __tablename__ = "conversation_unread"

    conversation_id: str = Field(
        foreign_key="conversations.id", primary_key=True, max_length=32
    )
    message_id: str = Field(primary_key=True, max_length=32)
    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


class Message(SQLModel, table=True):
    """A single unit of conversation traffic on any channel."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint(
            "provider_id", "provider_message_id", name="uq_message_provider_ref"
        ),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_status_created", "status", "created_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    tenant_id: str = Field(index=True, max_length=64)
    conversation_id: str = Field(foreign_key="conversations.id", max_length=32)

    # Outgoing: sender is a clinic user, recipient the lead.
    # Incoming: sender is the lead, recipient the owning clinic user (if known).
    sender_id: str | None = Field(default=None, max_length=64)
    recipient_id: str | None = Field(default=None, max_length=64)

    channel: Channel = Field(sa_column=get_enum_column(Channel))
    direction: Direction = Field(sa_column=get_enum_column(Direction))
    kind: MessageKind = Field(
        default=MessageKind.CONVERSATIONAL, sa_column=get_enum_column(MessageKind)
    )

    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    subject: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    media_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    media_type: str | None = Field(default=None, max_length=128)

    provider_id: str | None = Field(default=None, max_length=32)
    provider_message_id: str | None = Field(
        default=None, sa_column=Column(String(128), nullable=True, index=True)
    )
    template_id: str | None = Field(default=None, max_length=32)

    status: MessageStatus = Field(
        default=MessageStatus.SENDING, sa_column=get_enum_column(MessageStatus)
    )
    error_code: str = Field(default="", max_length=64)
    error_message: str = Field(default="", sa_column=Column(Text, nullable=False))

    reply_to_message_id: str | None = Field(default=None, max_length=32)

    # Set by inbound reaction webhooks (the lead reacting to our message)
    emoji: str = Field(default="", max_length=32)
    # Reactions sent from this clinic: [{emoji, added_at, user_id | lead_id}]
    reactions: list[dict] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    meta: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )

    created_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())
    updated_at: datetime = Field(default_factory=utc_now, sa_column=timestamp_column())


ALL_MODELS: list[type[SQLModel]] = [
    Provider,
    Template,
    Lead,
    Conversation,
    ConversationUnread,
    Message,
]
