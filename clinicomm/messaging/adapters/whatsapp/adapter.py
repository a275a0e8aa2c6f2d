"""
WhatsApp channel adapter.

Translates MessageIntents into WhatsApp Cloud API payloads: text, a single
media item, templates with components, and reactions.
"""

from typing import Any

import aiohttp

from clinicomm.core.logging.logger import get_logger
from clinicomm.models.enums import Channel

from ...credentials import ChannelContext, WhatsAppCredentials
from ...errors import ProviderCallFailed, ProviderMisconfigured
from ...intents import IntentType, MessageIntent, ProviderResponse
from .client import WhatsAppClient
from .templates import build_template_payload

MEDIA_KINDS = {"image", "video", "audio", "document", "sticker"}
CAPTIONED_KINDS = {"image", "video", "document"}


def whatsapp_media_kind(media_type: str | None) -> str:
    """Map a stored media type or MIME type to a WhatsApp media kind."""
    if not media_type:
        return "document"
    kind = media_type.split("/", 1)[0].lower()
    return kind if kind in MEDIA_KINDS else "document"


class WhatsAppAdapter:
    """
    Sends messages through the WhatsApp Cloud API.

    Conversational text and media sends are wrapped in a typing indicator
    ("typing" before, "paused" after). Indicator failures are logged and never
    abort the actual send.
    """

    channel = Channel.WHATSAPP
    capabilities = frozenset(
        {IntentType.TEXT, IntentType.MEDIA, IntentType.TEMPLATE, IntentType.REACTION}
    )

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_version: str | None = None,
        base_url: str | None = None,
    ):
        self.session = session
        self.api_version = api_version
        self.base_url = base_url
        self.logger = get_logger(__name__)

    def client_for(self, context: ChannelContext) -> WhatsAppClient:
        credentials = context.credentials
        if not isinstance(credentials, WhatsAppCredentials):
            raise ProviderMisconfigured("Provider details not found")
        return WhatsAppClient(
            self.session,
            access_token=credentials.access_token,
            phone_number_id=credentials.phone_number_id,
            api_version=self.api_version,
            base_url=self.base_url,
        )

    def build_payload(self, intent: MessageIntent) -> dict[str, Any]:
        """Build the messages-endpoint payload for an intent."""
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": intent.to,
        }

        if intent.type == IntentType.REACTION:
            payload["type"] = "reaction"
            payload["reaction"] = {
                "message_id": intent.reaction_message_id,
                "emoji": intent.emoji or "",
            }
            return payload

        if intent.type == IntentType.MEDIA:
            kind = whatsapp_media_kind(intent.media_type)
            media: dict[str, Any] = {"link": intent.media_url}
            if intent.content and kind in CAPTIONED_KINDS:
                media["caption"] = intent.content
            if intent.filename and kind == "document":
                media["filename"] = intent.filename
            payload["type"] = kind
            payload[kind] = media
        elif intent.type == IntentType.TEMPLATE:
            payload["type"] = "template"
            payload["template"] = build_template_payload(intent.template)
        else:
            payload["type"] = "text"
            payload["text"] = {"preview_url": intent.preview_url, "body": intent.content}

        if intent.quoted_message_id:
            payload["context"] = {"message_id": intent.quoted_message_id}

        return payload

    async def send_typing_indicator(
        self, client: WhatsAppClient, to: str, state: str
    ) -> None:
        """Best-effort typing indicator; failures are only logged."""
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "typing_indicator",
            "typing_indicator": {"type": state},
        }
        try:
            await client.post_message(payload)
        except ProviderCallFailed as e:
            self.logger.warning(f"Typing indicator '{state}' failed for {to}: {e.message}")
        except Exception as e:
            self.logger.warning(
                f"Typing indicator '{state}' failed for {to}: {type(e).__name__}: {e}"
            )

    async def send(
        self, intent: MessageIntent, context: ChannelContext
    ) -> ProviderResponse | None:
        client = self.client_for(context)
        payload = self.build_payload(intent)
        with_typing = intent.conversational and intent.type in (
            IntentType.TEXT,
            IntentType.MEDIA,
        )

        if with_typing:
            await self.send_typing_indicator(client, intent.to, "typing")
        try:
            data = await client.post_message(payload)
        except ProviderCallFailed as e:
            self.logger.error(
                f"WhatsApp {intent.type.value} send to {intent.to} failed: {e.message}"
            )
            return ProviderResponse(
                success=False,
                channel=self.channel,
                error_code=e.error_code,
                error_message=e.message,
            )
        finally:
            if with_typing:
                await self.send_typing_indicator(client, intent.to, "paused")

        messages = data.get("messages") or []
        if not messages or not messages[0].get("id"):
            self.logger.warning(f"WhatsApp returned no message id for {intent.to}")
            return None

        return ProviderResponse(
            success=True,
            channel=self.channel,
            provider_message_id=messages[0]["id"],
            raw=data,
        )
