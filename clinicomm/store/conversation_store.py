"""
Conversation/Message store.

All reads and writes of leads, conversations and messages go through
ConversationStore. Every public method opens its own session from the
injected factory, so each call is one transaction.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from clinicomm.core.logging.logger import get_logger
from clinicomm.database.adapter import SessionFactory
from clinicomm.domain.session_window import ensure_utc
from clinicomm.models.enums import (
    Channel,
    ConversationStatus,
    Direction,
    MessageKind,
    MessageStatus,
)
from clinicomm.models.schemas import (
    ConversationPage,
    ConversationSummary,
    MessageGroup,
    MessageHistoryPage,
    MessageOut,
    Pagination,
    PartyRef,
    PopulatedMessage,
)
from clinicomm.models.tables import (
    Conversation,
    ConversationUnread,
    Lead,
    Message,
    Provider,
    Template,
    utc_now,
)


def _pagination(total: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total / limit) if limit else 0
    return Pagination(
        total=total,
        current_page=page,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


def _lead_ref(lead: Lead | None, lead_id: str | None) -> PartyRef | None:
    if lead is not None:
        return PartyRef(
            kind="lead", id=lead.id, name=lead.name, phone=lead.phone, email=lead.email
        )
    if lead_id:
        return PartyRef(kind="lead", id=lead_id)
    return None


def _user_ref(user_id: str | None) -> PartyRef | None:
    return PartyRef(kind="user", id=user_id) if user_id else None


class ConversationStore:
    """
    Persistence and query layer for the conversation timeline.

    Example:
        store = ConversationStore(app.state.db_session)
        conversation, created = await store.get_or_create_conversation(tenant_id, lead.id)
    """

    def __init__(self, session_factory: SessionFactory):
        self.db = session_factory
        self.logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Providers & templates (owned by onboarding, read here)
    # ------------------------------------------------------------------

    async def find_provider(self, tenant_id: str, provider_id: str) -> Provider | None:
        async with self.db() as session:
            statement = select(Provider).where(
                Provider.id == provider_id, Provider.tenant_id == tenant_id
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def find_provider_for_channel(
        self, tenant_id: str, channel: Channel
    ) -> Provider | None:
        """Oldest provider of a clinic for a channel, used when none is named."""
        async with self.db() as session:
            statement = (
                select(Provider)
                .where(Provider.tenant_id == tenant_id, Provider.channel == channel)
                .order_by(Provider.created_at)
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def find_provider_by_phone_number_id(
        self, phone_number_id: str
    ) -> Provider | None:
        async with self.db() as session:
            statement = select(Provider).where(
                Provider.channel == Channel.WHATSAPP,
                Provider.phone_number_id == phone_number_id,
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def get_template(self, tenant_id: str, template_id: str) -> Template | None:
        async with self.db() as session:
            statement = select(Template).where(
                Template.id == template_id, Template.tenant_id == tenant_id
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def update_template_status(
        self, provider_template_id: str, status: str
    ) -> Template | None:
        """Set a template's approval status; returns None if no template matches."""
        async with self.db() as session:
            statement = select(Template).where(
                Template.provider_template_id == provider_template_id
            )
            result = await session.execute(statement)
            template = result.scalars().first()
            if template is None:
                return None
            template.status = status
            template.updated_at = utc_now()
            session.add(template)
            return template

    # ------------------------------------------------------------------
    # Leads & conversations
    # ------------------------------------------------------------------

    async def get_lead(self, lead_id: str) -> Lead | None:
        async with self.db() as session:
            return await session.get(Lead, lead_id)

    async def find_lead_by_phone(
        self, tenant_id: str, phones: Sequence[str]
    ) -> Lead | None:
        candidates = [p for p in dict.fromkeys(phones) if p]
        if not candidates:
            return None
        async with self.db() as session:
            statement = (
                select(Lead)
                .where(Lead.tenant_id == tenant_id, Lead.phone.in_(candidates))
                .order_by(Lead.created_at)
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def get_or_create_lead(
        self,
        tenant_id: str,
        phone: str,
        *,
        raw_phone: str | None = None,
        name: str | None = None,
        source: str = "WhatsApp",
    ) -> tuple[Lead, bool]:
        """
        Find a lead by normalized or raw phone, creating it on first contact.

        Returns:
            Tuple of (lead, created)
        """
        phones = [phone, raw_phone or phone]
        lead = await self.find_lead_by_phone(tenant_id, phones)
        if lead is not None:
            return lead, False

        try:
            async with self.db() as session:
                lead = Lead(
                    tenant_id=tenant_id,
                    phone=phone,
                    name=name or phone,
                    status="New",
                    source=source,
                )
                session.add(lead)
        except IntegrityError:
            # Another delivery created the same lead between lookup and insert
            self.logger.info(f"Lead for {phone} created concurrently, re-reading")
            lead = await self.find_lead_by_phone(tenant_id, phones)
            if lead is None:
                raise
            return lead, False

        self.logger.info(f"Created lead {lead.id} for {phone}")
        return lead, True

    async def get_conversation(
        self, tenant_id: str, conversation_id: str
    ) -> Conversation | None:
        async with self.db() as session:
            statement = select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def find_conversation_by_lead(
        self, tenant_id: str, lead_id: str
    ) -> Conversation | None:
        async with self.db() as session:
            statement = select(Conversation).where(
                Conversation.tenant_id == tenant_id,
                Conversation.lead_id == lead_id,
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def get_or_create_conversation(
        self, tenant_id: str, lead_id: str
    ) -> tuple[Conversation, bool]:
        """
        Find the (tenant, lead) conversation, creating it if absent.

        The unique index on (tenant_id, lead_id) turns a concurrent insert into
        an IntegrityError, after which the winner's row is returned.
        """
        conversation = await self.find_conversation_by_lead(tenant_id, lead_id)
        if conversation is not None:
            return conversation, False

        try:
            async with self.db() as session:
                conversation = Conversation(tenant_id=tenant_id, lead_id=lead_id)
                session.add(conversation)
        except IntegrityError:
            self.logger.info(
                f"Conversation for lead {lead_id} created concurrently, re-reading"
            )
            conversation = await self.find_conversation_by_lead(tenant_id, lead_id)
            if conversation is None:
                raise
            return conversation, False

        self.logger.info(f"Created conversation {conversation.id} for lead {lead_id}")
        return conversation, True

    async def mark_read(self, tenant_id: str, conversation_id: str) -> int:
        """Clear the unread list; returns the number of entries removed."""
        async with self.db() as session:
            owned = select(Conversation.id).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
            result = await session.execute(
                delete(ConversationUnread).where(
                    ConversationUnread.conversation_id.in_(owned)
                )
            )
            return result.rowcount or 0

    async def assign_owner(
        self, tenant_id: str, conversation_id: str, owner_id: str | None
    ) -> tuple[Conversation, str | None] | None:
        """
        Hand a conversation to a clinic user, or unassign it with owner_id=None.

        Incoming messages are delivered live to the owner afterwards.

        Returns:
            (conversation, previous owner id), or None if the conversation
            does not exist for this tenant

        Raises:
            ValueError: If the conversation is trashed or blocked
        """
        async with self.db() as session:
            result = await session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.tenant_id == tenant_id,
                )
            )
            conversation = result.scalars().first()
            if conversation is None:
                return None
            status = ConversationStatus(conversation.status)
            if status != ConversationStatus.ACTIVE:
                raise ValueError(f"Cannot assign conversation with status: {status.value}")

            previous_owner_id = conversation.owner_id
            if previous_owner_id != owner_id:
                conversation.owner_id = owner_id
                conversation.updated_at = utc_now()
                session.add(conversation)

        if previous_owner_id != owner_id:
            self.logger.info(
                f"Conversation {conversation_id} owner {previous_owner_id} -> {owner_id}"
            )
        return conversation, previous_owner_id

    # ------------------------------------------------------------------
    # Message writes
    # ------------------------------------------------------------------

    async def create_outgoing_message(
        self,
        conversation: Conversation,
        *,
        channel: Channel,
        sender_id: str | None,
        content: str = "",
        subject: str | None = None,
        media_url: str | None = None,
        media_type: str | None = None,
        provider_id: str | None = None,
        template_id: str | None = None,
        reply_to_message_id: str | None = None,
        kind: MessageKind = MessageKind.CONVERSATIONAL,
        meta: dict | None = None,
    ) -> Message:
        """
        Persist an outgoing message in SENDING state.

        The conversation's recent pointer moves in the same transaction, so
        the message is visible before any provider call is made.
        """
        now = utc_now()
        message = Message(
            tenant_id=conversation.tenant_id,
            conversation_id=conversation.id,
            sender_id=sender_id,
            recipient_id=conversation.lead_id,
            channel=channel,
            direction=Direction.OUTGOING,
            kind=kind,
            content=content or "",
            subject=subject,
            media_url=media_url,
            media_type=media_type,
            provider_id=provider_id,
            template_id=template_id,
            status=MessageStatus.SENDING,
            reply_to_message_id=reply_to_message_id,
            meta=meta or {},
            created_at=now,
            updated_at=now,
        )
        async with self.db() as session:
            session.add(message)
            await session.flush()
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation.id)
                .values(recent_message_id=message.id, updated_at=now)
            )
        return message

    async def create_incoming_message(
        self,
        conversation: Conversation,
        *,
        channel: Channel,
        content: str,
        provider_id: str | None,
        provider_message_id: str | None,
        recipient_id: str | None = None,
        media_url: str | None = None,
        media_type: str | None = None,
        reply_to_message_id: str | None = None,
        created_at: datetime | None = None,
        meta: dict | None = None,
    ) -> Message:
        """
        Persist an incoming message as RECEIVED.

        Moves the recent pointer and appends to the unread list in one
        transaction. The unread append is a row insert, never a read-modify-write.
        """
        timestamp = created_at or utc_now()
        message = Message(
            tenant_id=conversation.tenant_id,
            conversation_id=conversation.id,
            sender_id=conversation.lead_id,
            recipient_id=recipient_id,
            channel=channel,
            direction=Direction.INCOMING,
            kind=MessageKind.CONVERSATIONAL,
            content=content or "",
            media_url=media_url,
            media_type=media_type,
            provider_id=provider_id,
            provider_message_id=provider_message_id,
            status=MessageStatus.RECEIVED,
            reply_to_message_id=reply_to_message_id,
            meta=meta or {},
            created_at=timestamp,
            updated_at=utc_now(),
        )
        async with self.db() as session:
            session.add(message)
            await session.flush()
            session.add(
                ConversationUnread(conversation_id=conversation.id, message_id=message.id)
            )
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation.id)
                .values(recent_message_id=message.id, updated_at=utc_now())
            )
        return message

    async def mark_dispatch_result(
        self,
        message_id: str,
        *,
        status: MessageStatus,
        provider_message_id: str | None = None,
        error_code: str = "",
        error_message: str = "",
    ) -> Message | None:
        """Record the outcome of a provider call (QUEUED or FAILED)."""
        async with self.db() as session:
            message = await session.get(Message, message_id)
            if message is None:
                return None
            message.status = status
            if provider_message_id:
                message.provider_message_id = provider_message_id
            message.error_code = error_code
            message.error_message = error_message
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def apply_status_update(
        self,
        message: Message,
        status: MessageStatus,
        error_code: str = "",
        error_message: str = "",
    ) -> Message | None:
        """
        Apply a provider status to a message unless it would move it backward.

        The stored status is re-read inside the transaction; equal ranks
        overwrite (last write wins).

        Returns:
            The updated message, or None if the message is gone or the
            update was rejected
        """
        async with self.db() as session:
            current = await session.get(Message, message.id)
            if current is None:
                return None
            if not current.status.can_transition_to(status):
                self.logger.info(
                    f"Ignoring status {status.value} for message {current.id} "
                    f"already {current.status.value}"
                )
                return None
            message = current
            message.status = status
            message.error_code = error_code
            message.error_message = error_message
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def set_single_emoji(self, message_id: str, emoji: str) -> Message | None:
        async with self.db() as session:
            message = await session.get(Message, message_id)
            if message is None:
                return None
            message.emoji = emoji
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def save_reactions(
        self, message_id: str, reactions: list[dict], emoji: str
    ) -> Message | None:
        async with self.db() as session:
            message = await session.get(Message, message_id)
            if message is None:
                return None
            # Assign a new list: JSON columns do not track in-place mutation
            message.reactions = list(reactions)
            message.emoji = emoji
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def fail_stale_sending(
        self, older_than: timedelta, *, now: datetime | None = None
    ) -> int:
        """
        Mark messages stuck in SENDING as FAILED.

        A message stays in SENDING only if the process died between persisting
        it and recording the provider result.

        Returns:
            Number of messages marked failed
        """
        now = now or utc_now()
        cutoff = now - older_than
        async with self.db() as session:
            result = await session.execute(
                update(Message)
                .where(
                    Message.status == MessageStatus.SENDING,
                    Message.created_at < cutoff,
                )
                .values(
                    status=MessageStatus.FAILED,
                    error_code="stale_sending",
                    error_message="No provider result recorded before the deadline",
                    updated_at=now,
                )
            )
            count = result.rowcount or 0
        if count:
            self.logger.warning(f"Marked {count} stale sending messages as failed")
        return count

    # ------------------------------------------------------------------
    # Message reads
    # ------------------------------------------------------------------

    async def get_message(self, message_id: str) -> Message | None:
        async with self.db() as session:
            return await session.get(Message, message_id)

    async def find_message_by_provider_id(
        self, provider_message_id: str
    ) -> Message | None:
        async with self.db() as session:
            statement = select(Message).where(
                Message.provider_message_id == provider_message_id
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def find_message_by_provider_id_for_provider(
        self, provider_id: str, provider_message_id: str
    ) -> Message | None:
        async with self.db() as session:
            statement = select(Message).where(
                Message.provider_id == provider_id,
                Message.provider_message_id == provider_message_id,
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def latest_incoming_at(
        self, conversation_id: str, channel: Channel = Channel.WHATSAPP
    ) -> datetime | None:
        """Timestamp of the most recent incoming message on a channel."""
        async with self.db() as session:
            statement = select(func.max(Message.created_at)).where(
                Message.conversation_id == conversation_id,
                Message.direction == Direction.INCOMING,
                Message.channel == channel,
            )
            result = await session.execute(statement)
            latest = result.scalar()
            return ensure_utc(latest) if latest is not None else None

    async def populate(self, message: Message) -> PopulatedMessage:
        """Resolve sender, recipient and the replied-to message."""
        async with self.db() as session:
            populated = await self._populate_many(session, [message])
        return populated[0]

    async def _populate_many(
        self, session, messages: Sequence[Message]
    ) -> list[PopulatedMessage]:
        reply_ids = {m.reply_to_message_id for m in messages if m.reply_to_message_id}
        replies: dict[str, Message] = {}
        if reply_ids:
            result = await session.execute(
                select(Message).where(Message.id.in_(list(reply_ids)))
            )
            replies = {m.id: m for m in result.scalars().all()}

        lead_ids = set()
        for m in [*messages, *replies.values()]:
            lead_id = m.recipient_id if m.direction == Direction.OUTGOING else m.sender_id
            if lead_id:
                lead_ids.add(lead_id)
        leads: dict[str, Lead] = {}
        if lead_ids:
            result = await session.execute(
                select(Lead).where(Lead.id.in_(list(lead_ids)))
            )
            leads = {lead.id: lead for lead in result.scalars().all()}

        def build(message: Message, reply: Message | None) -> PopulatedMessage:
            populated = PopulatedMessage.model_validate(message, from_attributes=True)
            if message.direction == Direction.OUTGOING:
                populated.sender = _user_ref(message.sender_id)
                populated.recipient = _lead_ref(
                    leads.get(message.recipient_id), message.recipient_id
                )
            else:
                populated.sender = _lead_ref(
                    leads.get(message.sender_id), message.sender_id
                )
                populated.recipient = _user_ref(message.recipient_id)
            if reply is not None:
                populated.reply_to = build(reply, None)
            return populated

        return [
            build(m, replies.get(m.reply_to_message_id) if m.reply_to_message_id else None)
            for m in messages
        ]

    async def grouped_history(
        self,
        tenant_id: str,
        conversation_id: str,
        *,
        page: int = 1,
        limit: int = 50,
    ) -> MessageHistoryPage:
        """
        Return one page of a conversation's messages grouped by UTC date.

        Page 1 holds the newest messages. Within the page, groups are ordered
        oldest date first and each group lists its messages oldest first.
        """
        page = max(page, 1)
        async with self.db() as session:
            base = Message.conversation_id == conversation_id
            tenant = Message.tenant_id == tenant_id

            total = (
                await session.execute(
                    select(func.count()).select_from(Message).where(base, tenant)
                )
            ).scalar_one()

            statement = (
                select(Message)
                .where(base, tenant)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            result = await session.execute(statement)
            newest_first = list(result.scalars().all())
            messages = list(reversed(newest_first))
            populated = await self._populate_many(session, messages)

        groups: list[MessageGroup] = []
        for item in populated:
            day = ensure_utc(item.created_at).date().isoformat()
            if not groups or groups[-1].date != day:
                groups.append(MessageGroup(date=day, messages=[]))
            groups[-1].messages.append(item)

        return MessageHistoryPage(groups=groups, pagination=_pagination(total, page, limit))

    async def list_conversations(
        self,
        tenant_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        status: str | None = None,
        owner_id: str | None = None,
    ) -> ConversationPage:
        """
        List a clinic's conversations, most recently updated first.

        status: "all" (default, hides trashed and blocked), "read", "unread",
        or a ConversationStatus value.

        Raises:
            ValueError: If status is not recognised
        """
        page = max(page, 1)
        unread = (
            select(
                ConversationUnread.conversation_id,
                func.count().label("unread"),
            )
            .group_by(ConversationUnread.conversation_id)
            .subquery()
        )
        unread_count = func.coalesce(unread.c.unread, 0)

        filters = [Conversation.tenant_id == tenant_id]
        status = (status or "all").lower()
        if status in ("all", "read", "unread"):
            filters.append(Conversation.status == ConversationStatus.ACTIVE)
            if status == "read":
                filters.append(unread_count == 0)
            elif status == "unread":
                filters.append(unread_count > 0)
        else:
            filters.append(Conversation.status == ConversationStatus(status))
        if owner_id:
            filters.append(Conversation.owner_id == owner_id)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(or_(Lead.name.ilike(pattern), Lead.phone.ilike(pattern)))

        statement = (
            select(Conversation, Lead, unread_count.label("unread_count"))
            .join(Lead, Lead.id == Conversation.lead_id)
            .outerjoin(unread, unread.c.conversation_id == Conversation.id)
            .where(*filters)
        )

        async with self.db() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(statement.subquery())
                )
            ).scalar_one()

            rows = (
                await session.execute(
                    statement.order_by(Conversation.updated_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).all()

            recent_ids = [c.recent_message_id for c, _, _ in rows if c.recent_message_id]
            recent: dict[str, Message] = {}
            if recent_ids:
                result = await session.execute(
                    select(Message).where(Message.id.in_(recent_ids))
                )
                recent = {m.id: m for m in result.scalars().all()}

        summaries = [
            ConversationSummary(
                id=conversation.id,
                tenant_id=conversation.tenant_id,
                lead=_lead_ref(lead, lead.id),
                status=conversation.status,
                owner_id=conversation.owner_id,
                recent_message=(
                    MessageOut.model_validate(recent[conversation.recent_message_id])
                    if conversation.recent_message_id in recent
                    else None
                ),
                unread_count=count,
                updated_at=conversation.updated_at,
            )
            for conversation, lead, count in rows
        ]
        return ConversationPage(
            conversations=summaries, pagination=_pagination(total, page, limit)
        )

