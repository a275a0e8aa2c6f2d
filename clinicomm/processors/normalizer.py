"""
WhatsApp webhook normalizer.

Turns parsed webhook events into store mutations and live client updates:
template approvals, delivery receipts, lead reactions and incoming messages.
Events of a batch are handled one after another; a failing event is logged
and the rest of the batch still runs.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from clinicomm.core.logging.context import clear_request_context, set_request_context
from clinicomm.core.logging.logger import get_logger
from clinicomm.messaging.credentials import CredentialResolver, WhatsAppCredentials
from clinicomm.messaging.errors import ProviderMisconfigured
from clinicomm.models.enums import Channel, Direction, MessageStatus
from clinicomm.models.tables import Provider
from clinicomm.realtime.hub import ConnectionHub
from clinicomm.store.conversation_store import ConversationStore
from clinicomm.webhooks.events import (
    InboundMessageEvent,
    MessageStatusEvent,
    ReactionEvent,
    TemplateStatusEvent,
    WebhookEvent,
)
from clinicomm.webhooks.media import MediaRehoster
from clinicomm.webhooks.parser import parse_webhook

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """Strip a leading '+' and every non-digit character."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw).strip().removeprefix("+"))


@dataclass
class ProcessingReport:
    """Outcome counts of one webhook batch."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class WebhookUnmatched(Exception):
    """An event references a template, message or provider that does not exist."""


class WebhookNormalizer:
    """
    Applies WhatsApp webhook batches to the conversation store.

    Example:
        normalizer = WebhookNormalizer(store, hub, rehoster)
        report = await normalizer.process(payload)
    """

    def __init__(
        self,
        store: ConversationStore,
        hub: ConnectionHub | None = None,
        media_rehoster: MediaRehoster | None = None,
        resolver: CredentialResolver | None = None,
    ):
        self.store = store
        self.hub = hub
        self.media_rehoster = media_rehoster
        self.resolver = resolver or CredentialResolver()
        self.logger = get_logger(__name__)

    async def process(self, payload: dict[str, Any]) -> ProcessingReport:
        """Parse a webhook body and handle each event in order."""
        report = ProcessingReport()
        events = parse_webhook(payload)

        for event in events:
            try:
                await self.handle_event(event)
                report.processed += 1
            except WebhookUnmatched as e:
                self.logger.info(f"Unmatched {event.kind} event: {e}")
                report.skipped += 1
            except Exception as e:
                self.logger.error(f"Failed to process {event.kind} event: {e}", exc_info=True)
                report.failed += 1
                report.errors.append(f"{event.kind}: {e}")
            finally:
                clear_request_context()

        self.logger.info(
            f"Webhook batch done: {report.processed} processed, "
            f"{report.skipped} unmatched, {report.failed} failed"
        )
        return report

    async def handle_event(self, event: WebhookEvent) -> None:
        """
        Raises:
            WebhookUnmatched: If the event refers to unknown records
        """
        if isinstance(event, TemplateStatusEvent):
            await self._handle_template_status(event)
        elif isinstance(event, MessageStatusEvent):
            await self._handle_message_status(event)
        elif isinstance(event, ReactionEvent):
            await self._handle_reaction(event)
        elif isinstance(event, InboundMessageEvent):
            await self._handle_inbound_message(event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _handle_template_status(self, event: TemplateStatusEvent) -> None:
        status = event.event.lower()
        template = await self.store.update_template_status(
            event.provider_template_id, status
        )
        if template is None:
            raise WebhookUnmatched(f"No template with id {event.provider_template_id}")
        set_request_context(tenant_id=template.tenant_id)
        self.logger.info(f"Template {template.unique_name} status updated to {status}")

    async def _handle_message_status(self, event: MessageStatusEvent) -> None:
        try:
            status = MessageStatus(event.status)
        except ValueError:
            self.logger.warning(
                f"Unknown status '{event.status}' for {event.provider_message_id}, ignoring"
            )
            return

        message = await self.store.find_message_by_provider_id(event.provider_message_id)
        if message is None:
            self.logger.debug(f"No message with provider id {event.provider_message_id}")
            raise WebhookUnmatched(f"No message {event.provider_message_id}")
        set_request_context(tenant_id=message.tenant_id, user_id=message.sender_id)

        error_code, error_message = "", ""
        if event.errors:
            first = event.errors[0]
            error_code = str(first.code) if first.code is not None else ""
            error_message = first.description

        updated = await self.store.apply_status_update(
            message, status, error_code, error_message
        )
        if updated is None:
            return
        self.logger.info(f"Message {event.provider_message_id} status updated to {status.value}")

        if self.hub is not None and updated.direction == Direction.OUTGOING:
            populated = await self.store.populate(updated)
            await self.hub.emit_status_update_to_user(updated.sender_id, populated)

    async def _handle_reaction(self, event: ReactionEvent) -> None:
        message = await self.store.find_message_by_provider_id(event.reacted_message_id)
        if message is None:
            raise WebhookUnmatched(f"No message {event.reacted_message_id} to react to")
        set_request_context(tenant_id=message.tenant_id, user_id=normalize_phone(event.from_))

        updated = await self.store.set_single_emoji(message.id, event.emoji)
        self.logger.info(
            f"Reaction '{event.emoji}' from {event.from_} on message {message.id}"
            if event.emoji
            else f"Reaction cleared by {event.from_} on message {message.id}"
        )

        if self.hub is not None and updated is not None:
            populated = await self.store.populate(updated)
            recipient = message.sender_id if message.direction == Direction.OUTGOING else None
            await self.hub.emit_status_update_to_user(recipient, populated)

    async def _handle_inbound_message(self, event: InboundMessageEvent) -> None:
        provider = await self.store.find_provider_by_phone_number_id(event.phone_number_id)
        if provider is None:
            raise WebhookUnmatched(f"No provider for phone number id {event.phone_number_id}")

        phone = normalize_phone(event.from_)
        set_request_context(tenant_id=provider.tenant_id, user_id=phone)

        lead, lead_created = await self.store.get_or_create_lead(
            provider.tenant_id,
            phone,
            raw_phone=event.from_,
            name=event.profile_name or event.from_,
        )
        conversation, _ = await self.store.get_or_create_conversation(
            provider.tenant_id, lead.id
        )

        existing = await self.store.find_message_by_provider_id_for_provider(
            provider.id, event.provider_message_id
        )
        if existing is not None:
            self.logger.info(f"Duplicate delivery of {event.provider_message_id}, skipping")
            return

        media_url, media_type = None, None
        if event.has_media:
            media_url = await self._rehost_media(provider, event)
            if media_url:
                media_type = event.type

        reply_to_id = None
        if event.context_message_id:
            replied = await self.store.find_message_by_provider_id_for_provider(
                provider.id, event.context_message_id
            )
            reply_to_id = replied.id if replied else None

        recipient_id = conversation.owner_id or provider.owner_user_id
        message = await self.store.create_incoming_message(
            conversation,
            channel=Channel.WHATSAPP,
            content=event.content,
            provider_id=provider.id,
            provider_message_id=event.provider_message_id,
            recipient_id=recipient_id,
            media_url=media_url,
            media_type=media_type,
            reply_to_message_id=reply_to_id,
            created_at=event.timestamp,
            meta={"whatsapp_type": event.type},
        )
        self.logger.info(
            f"Stored incoming {event.type} message {message.id}"
            + (f" from new lead {lead.id}" if lead_created else "")
        )

        if self.hub is not None:
            populated = await self.store.populate(message)
            await self.hub.emit_incoming_message_to_user(recipient_id, populated)

    async def _rehost_media(
        self, provider: Provider, event: InboundMessageEvent
    ) -> str | None:
        if self.media_rehoster is None:
            return None
        try:
            context = self.resolver.resolve(provider, Channel.WHATSAPP)
        except ProviderMisconfigured as e:
            self.logger.warning(f"Cannot download media {event.media_id}: {e.message}")
            return None
        if not isinstance(context.credentials, WhatsAppCredentials):
            return None
        return await self.media_rehoster.rehost(
            event.media_id,
            context.credentials,
            filename=event.filename,
            mime_type=event.mime_type,
        )
