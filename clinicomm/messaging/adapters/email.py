"""
Email channel adapter for Brevo's transactional email REST API.

Field mapping only: intent subject/content become a single-recipient
transactional email from the clinic's configured sender.
"""

import html
from typing import Any

import aiohttp

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger
from clinicomm.models.enums import Channel

from ..credentials import ChannelContext, EmailCredentials
from ..errors import ProviderMisconfigured
from ..intents import IntentType, MessageIntent, ProviderResponse


class BrevoEmailAdapter:
    channel = Channel.EMAIL
    capabilities = frozenset({IntentType.TEXT})

    def __init__(self, session: aiohttp.ClientSession, base_url: str | None = None):
        self.session = session
        self.base_url = (base_url or settings.email_base_url).rstrip("/")
        self.logger = get_logger(__name__)

    def build_payload(
        self, intent: MessageIntent, credentials: EmailCredentials
    ) -> dict[str, Any]:
        content = intent.content or ""
        sender = {"email": credentials.sender_email}
        if credentials.sender_name:
            sender["name"] = credentials.sender_name
        return {
            "sender": sender,
            "to": [{"email": intent.to}],
            "subject": intent.subject or "(no subject)",
            "htmlContent": "<br>".join(html.escape(line) for line in content.splitlines())
            or "&nbsp;",
            "textContent": content,
        }

    async def send(
        self, intent: MessageIntent, context: ChannelContext
    ) -> ProviderResponse | None:
        credentials = context.credentials
        if not isinstance(credentials, EmailCredentials):
            raise ProviderMisconfigured("Email provider credentials missing")
        if intent.type not in self.capabilities:
            return ProviderResponse(
                success=False,
                channel=self.channel,
                error_code="unsupported",
                error_message=f"Email cannot send {intent.type.value} messages",
            )

        url = f"{self.base_url}/v3/smtp/email"
        headers = {"api-key": credentials.api_key, "accept": "application/json"}
        payload = self.build_payload(intent, credentials)

        try:
            async with self.session.post(url, json=payload, headers=headers) as response:
                body: Any = await response.json(content_type=None)
                if response.status >= 400:
                    body = body if isinstance(body, dict) else {}
                    if response.status == 401:
                        self.logger.error(
                            "🚨 Brevo API key rejected (401). Check the provider api_key."
                        )
                    else:
                        self.logger.error(
                            f"Email to {intent.to} rejected: HTTP {response.status} {body}"
                        )
                    return ProviderResponse(
                        success=False,
                        channel=self.channel,
                        error_code=str(body.get("code") or response.status),
                        error_message=body.get("message") or "Email provider error",
                        raw=body,
                    )
        except (aiohttp.ClientError, ValueError) as e:
            self.logger.error(f"Email request to {intent.to} failed: {e}")
            return ProviderResponse(
                success=False,
                channel=self.channel,
                error_code="network_error",
                error_message=str(e),
            )

        if not isinstance(body, dict) or not body.get("messageId"):
            return None
        return ProviderResponse(
            success=True,
            channel=self.channel,
            provider_message_id=body["messageId"],
            raw=body,
        )
