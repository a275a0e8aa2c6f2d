"""
Outbound dispatcher.

Persists an outgoing message before calling the provider, then reconciles
the provider's answer into the stored status:

    sending ──(adapter ok + provider id)──▶ queued
       └────(error / empty / timeout)────▶ failed

Later transitions (sent, delivered, read, ...) only come from webhooks.
"""

import asyncio

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger
from clinicomm.models.enums import Channel, MessageStatus
from clinicomm.models.schemas import PopulatedMessage
from clinicomm.models.tables import Conversation, Lead, Message, Provider, Template
from clinicomm.store.conversation_store import ConversationStore

from .adapters.base import AdapterRegistry
from .credentials import ChannelContext, CredentialResolver
from .errors import (
    ConversationNotFound,
    MessageNotFound,
    ProviderNotFound,
    RecipientUnavailable,
    TemplateNotFound,
)
from .intents import IntentType, MessageIntent, ProviderResponse, TemplateSpec
from .requests import SendRequest

GENERIC_SEND_ERROR = "Failed to send message"


def recipient_address(lead: Lead, channel: Channel) -> str:
    """
    Address of a lead on a channel.

    Raises:
        RecipientUnavailable: If the lead has no phone or email for the channel
    """
    if channel == Channel.EMAIL:
        if not lead.email:
            raise RecipientUnavailable(f"Lead {lead.id} has no email address")
        return lead.email
    if not lead.phone:
        raise RecipientUnavailable(f"Lead {lead.id} has no phone number")
    if channel == Channel.SMS and not lead.phone.startswith("+"):
        return f"+{lead.phone}"
    return lead.phone


class OutboundDispatcher:
    """
    Orchestrates one outgoing message from request to stored outcome.

    Depends only on the ChannelAdapter contract through the registry, so
    providers can be swapped without touching this class.
    """

    def __init__(
        self,
        store: ConversationStore,
        adapters: AdapterRegistry,
        resolver: CredentialResolver | None = None,
        send_timeout: float | None = None,
    ):
        self.store = store
        self.adapters = adapters
        self.resolver = resolver or CredentialResolver()
        self.send_timeout = send_timeout or settings.send_timeout_seconds
        self.logger = get_logger(__name__)

    async def dispatch(
        self, request: SendRequest, tenant_id: str, user_id: str | None
    ) -> PopulatedMessage:
        """
        Send one message and return it fully populated.

        Raises:
            ConversationNotFound: No conversation and no lead to derive one from
            ProviderNotFound: No provider for the channel
            ProviderMisconfigured: Provider lacks the channel's credentials
            TemplateNotFound / MessageNotFound: Referenced template or reply target missing
            RecipientUnavailable: The lead has no address on the channel
        """
        conversation = await self._resolve_conversation(request, tenant_id)
        lead = await self.store.get_lead(conversation.lead_id)
        if lead is None:
            raise ConversationNotFound(
                f"Lead {conversation.lead_id} of conversation {conversation.id} is missing"
            )

        provider = await self._resolve_provider(request, tenant_id)
        context = self.resolver.resolve(provider, request.channel)
        to = recipient_address(lead, request.channel)

        template = await self._resolve_template(request, tenant_id)
        quoted_message_id = await self._resolve_quote(request, conversation)

        message = await self.store.create_outgoing_message(
            conversation,
            channel=request.channel,
            sender_id=user_id,
            content=request.content or (template.body if template else "") or "",
            subject=request.subject,
            media_url=request.media_url,
            media_type=request.media_type,
            provider_id=provider.id,
            template_id=template.id if template else None,
            reply_to_message_id=request.reply_to_message_id,
            kind=request.kind,
        )
        self.logger.info(
            f"Message {message.id} persisted as sending on {request.channel.value}"
        )

        intent = self._build_intent(request, to, template, quoted_message_id)
        response = await self._send(intent, context, message)
        message = await self._record_outcome(message, response)

        return await self.store.populate(message)

    # ------------------------------------------------------------------
    # Resolution steps
    # ------------------------------------------------------------------

    async def _resolve_conversation(
        self, request: SendRequest, tenant_id: str
    ) -> Conversation:
        if request.conversation_id:
            conversation = await self.store.get_conversation(
                tenant_id, request.conversation_id
            )
            if conversation is not None:
                return conversation
            if not request.lead_id:
                raise ConversationNotFound(
                    f"Conversation {request.conversation_id} not found"
                )

        lead = await self.store.get_lead(request.lead_id)
        if lead is None or lead.tenant_id != tenant_id:
            raise ConversationNotFound(f"No conversation for lead {request.lead_id}")
        conversation, _ = await self.store.get_or_create_conversation(tenant_id, lead.id)
        return conversation

    async def _resolve_provider(self, request: SendRequest, tenant_id: str) -> Provider:
        if request.provider_id:
            provider = await self.store.find_provider(tenant_id, request.provider_id)
        else:
            provider = await self.store.find_provider_for_channel(
                tenant_id, request.channel
            )
        if provider is None:
            raise ProviderNotFound(
                f"No {request.channel.value} provider found for this clinic"
            )
        return provider

    async def _resolve_template(
        self, request: SendRequest, tenant_id: str
    ) -> Template | None:
        if not request.template_id:
            return None
        template = await self.store.get_template(tenant_id, request.template_id)
        if template is None:
            raise TemplateNotFound(f"Template {request.template_id} not found")
        return template

    async def _resolve_quote(
        self, request: SendRequest, conversation: Conversation
    ) -> str | None:
        """Provider id to quote, defaulting to the reply target's provider id."""
        if not request.reply_to_message_id:
            return request.quoted_message_id
        reply_to = await self.store.get_message(request.reply_to_message_id)
        if reply_to is None or reply_to.conversation_id != conversation.id:
            raise MessageNotFound(
                f"Reply target {request.reply_to_message_id} not found in conversation"
            )
        return request.quoted_message_id or reply_to.provider_message_id

    def _build_intent(
        self,
        request: SendRequest,
        to: str,
        template: Template | None,
        quoted_message_id: str | None,
    ) -> MessageIntent:
        if template is not None:
            return MessageIntent(
                type=IntentType.TEMPLATE,
                channel=request.channel,
                to=to,
                content=request.content,
                template=TemplateSpec(
                    name=template.unique_name,
                    language=template.language or "en_US",
                    category=template.category,
                    is_header=template.is_header,
                    header_type=template.header_type,
                    header_parameters=request.header_parameters,
                    body_parameters=request.body_parameters,
                    media_url=request.media_url,
                ),
                quoted_message_id=quoted_message_id,
                conversational=False,
            )

        intent_type = IntentType.MEDIA if request.media_url else IntentType.TEXT
        return MessageIntent(
            type=intent_type,
            channel=request.channel,
            to=to,
            content=request.content,
            subject=request.subject,
            media_url=request.media_url,
            media_type=request.media_type,
            filename=request.filename,
            quoted_message_id=quoted_message_id,
            preview_url=request.preview_url,
            conversational=request.kind.value == "conversational",
        )

    # ------------------------------------------------------------------
    # Provider call & reconciliation
    # ------------------------------------------------------------------

    async def _send(
        self, intent: MessageIntent, context: ChannelContext, message: Message
    ) -> ProviderResponse | None:
        adapter = self.adapters.get(intent.channel)
        try:
            async with asyncio.timeout(self.send_timeout):
                return await adapter.send(intent, context)
        except TimeoutError:
            self.logger.error(
                f"Provider call for message {message.id} timed out after {self.send_timeout}s"
            )
            return ProviderResponse(
                success=False,
                channel=intent.channel,
                error_code="timeout",
                error_message=f"Provider did not answer within {self.send_timeout}s",
            )
        except Exception as e:
            # Recorded on the message as failed; the caller still gets the message
            self.logger.error(
                f"Adapter error for message {message.id}: {e}", exc_info=True
            )
            return ProviderResponse(
                success=False,
                channel=intent.channel,
                error_code=type(e).__name__,
                error_message=str(e) or GENERIC_SEND_ERROR,
            )

    async def _record_outcome(
        self, message: Message, response: ProviderResponse | None
    ) -> Message:
        if response is not None and response.success and response.provider_message_id:
            updated = await self.store.mark_dispatch_result(
                message.id,
                status=MessageStatus.QUEUED,
                provider_message_id=response.provider_message_id,
            )
            self.logger.info(
                f"Message {message.id} queued as {response.provider_message_id}"
            )
        else:
            error_code = (response.error_code if response else None) or "send_failed"
            error_message = (
                response.error_message if response else None
            ) or GENERIC_SEND_ERROR
            updated = await self.store.mark_dispatch_result(
                message.id,
                status=MessageStatus.FAILED,
                error_code=error_code,
                error_message=error_message,
            )
            self.logger.warning(
                f"Message {message.id} failed: [{error_code}] {error_message}"
            )
        return updated or message
