"""
Outbound reactions from the clinic side.

A clinic user toggles a reaction on a conversation message; the WhatsApp
reaction is sent first and the message's reaction list is only persisted
once the provider accepted it.
"""

from typing import Any

from clinicomm.core.logging.logger import get_logger
from clinicomm.domain.reactions import ReactionChange, toggle_reaction
from clinicomm.models.enums import Channel
from clinicomm.realtime.hub import ConnectionHub
from clinicomm.store.conversation_store import ConversationStore

from .adapters.base import AdapterRegistry
from .credentials import CredentialResolver
from .errors import (
    ConversationNotFound,
    MessageNotFound,
    ProviderCallFailed,
    ProviderNotFound,
    TenantMismatch,
)
from .intents import IntentType, MessageIntent
from .requests import ReactionRequest


class ReactionService:
    """
    Toggle a clinic user's reaction on a message and mirror it to WhatsApp.

    Same emoji twice removes the reaction, a different emoji replaces it.
    """

    def __init__(
        self,
        store: ConversationStore,
        adapters: AdapterRegistry,
        hub: ConnectionHub | None = None,
        resolver: CredentialResolver | None = None,
    ):
        self.store = store
        self.adapters = adapters
        self.hub = hub
        self.resolver = resolver or CredentialResolver()
        self.logger = get_logger(__name__)

    async def toggle(
        self, request: ReactionRequest, tenant_id: str, user_id: str
    ) -> dict[str, Any]:
        """
        Returns:
            {"success": True, "message": <change description>, "data": PopulatedMessage}

        Raises:
            ValueError: If provider_message_id, message_id or emoji is missing
            MessageNotFound: If the message does not exist
            TenantMismatch: If the message belongs to another clinic
            ProviderNotFound / ProviderMisconfigured: No usable WhatsApp provider
            ProviderCallFailed: If WhatsApp rejected the reaction
        """
        if not request.is_complete:
            raise ValueError("provider_message_id, message_id and emoji are required")
        if not user_id:
            raise ValueError("A clinic user is required to react")

        message = await self.store.get_message(request.message_id)
        if message is None:
            raise MessageNotFound(f"Message {request.message_id} not found")
        if message.tenant_id != tenant_id:
            raise TenantMismatch("Message belongs to a different clinic")

        conversation = await self.store.get_conversation(
            tenant_id, message.conversation_id
        )
        if conversation is None:
            raise ConversationNotFound(
                f"Conversation {message.conversation_id} not found"
            )
        lead = await self.store.get_lead(conversation.lead_id)

        provider = None
        if message.provider_id:
            provider = await self.store.find_provider(tenant_id, message.provider_id)
        if provider is None or provider.channel != Channel.WHATSAPP:
            provider = await self.store.find_provider_for_channel(
                tenant_id, Channel.WHATSAPP
            )
        if provider is None:
            raise ProviderNotFound("No WhatsApp provider found for this clinic")
        context = self.resolver.resolve(provider, Channel.WHATSAPP)

        reactions, change = toggle_reaction(
            list(message.reactions or []), request.emoji, user_id=user_id
        )
        emoji = "" if change == ReactionChange.REMOVED else request.emoji

        intent = MessageIntent(
            type=IntentType.REACTION,
            channel=Channel.WHATSAPP,
            to=lead.phone if lead else "",
            reaction_message_id=request.provider_message_id,
            emoji=emoji,
            conversational=False,
        )
        response = await self.adapters.get(Channel.WHATSAPP).send(intent, context)
        if response is None or not response.success:
            error = response.error_message if response else None
            self.logger.error(
                f"Reaction on message {message.id} rejected by WhatsApp: {error}"
            )
            raise ProviderCallFailed(
                error or "Failed to send reaction",
                error_code=response.error_code if response else None,
            )

        updated = await self.store.save_reactions(message.id, reactions, emoji)
        populated = await self.store.populate(updated or message)
        self.logger.info(f"Reaction {change.value} on message {message.id}")

        if self.hub is not None:
            await self.hub.emit_status_update_to_user(user_id, populated)

        return {"success": True, "message": change.description, "data": populated}
