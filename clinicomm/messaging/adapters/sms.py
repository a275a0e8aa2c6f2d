"""
SMS channel adapter for Twilio-compatible Messages REST APIs.

Supports plain text and a single media URL (MMS). Credentials come from the
clinic's sub-account: account sid and auth token, plus a messaging service
sid or a sender number.
"""

from typing import Any

import aiohttp

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger
from clinicomm.models.enums import Channel

from ..credentials import ChannelContext, SmsCredentials
from ..errors import ProviderMisconfigured
from ..intents import IntentType, MessageIntent, ProviderResponse


class TwilioSmsAdapter:
    channel = Channel.SMS
    capabilities = frozenset({IntentType.TEXT, IntentType.MEDIA})

    def __init__(self, session: aiohttp.ClientSession, base_url: str | None = None):
        self.session = session
        self.base_url = (base_url or settings.sms_base_url).rstrip("/")
        self.logger = get_logger(__name__)

    def messages_url(self, account_sid: str) -> str:
        return f"{self.base_url}/2010-04-01/Accounts/{account_sid}/Messages.json"

    def build_form(
        self, intent: MessageIntent, credentials: SmsCredentials
    ) -> dict[str, str]:
        form = {"To": intent.to, "Body": intent.content or ""}
        if credentials.messaging_service_sid:
            form["MessagingServiceSid"] = credentials.messaging_service_sid
        else:
            form["From"] = credentials.from_number or ""
        if intent.media_url:
            form["MediaUrl"] = intent.media_url
        return form

    async def send(
        self, intent: MessageIntent, context: ChannelContext
    ) -> ProviderResponse | None:
        credentials = context.credentials
        if not isinstance(credentials, SmsCredentials):
            raise ProviderMisconfigured("SMS provider credentials missing")
        if intent.type not in self.capabilities:
            return ProviderResponse(
                success=False,
                channel=self.channel,
                error_code="unsupported",
                error_message=f"SMS cannot send {intent.type.value} messages",
            )

        url = self.messages_url(credentials.account_sid)
        form = self.build_form(intent, credentials)
        auth = aiohttp.BasicAuth(credentials.account_sid, credentials.auth_token)

        try:
            async with self.session.post(url, data=form, auth=auth) as response:
                body: Any = await response.json(content_type=None)
                if response.status >= 400:
                    body = body if isinstance(body, dict) else {}
                    self.logger.error(
                        f"SMS to {intent.to} rejected: HTTP {response.status} {body}"
                    )
                    return ProviderResponse(
                        success=False,
                        channel=self.channel,
                        error_code=str(body.get("code") or response.status),
                        error_message=body.get("message") or "SMS provider error",
                        raw=body,
                    )
        except (aiohttp.ClientError, ValueError) as e:
            self.logger.error(f"SMS request to {intent.to} failed: {e}")
            return ProviderResponse(
                success=False,
                channel=self.channel,
                error_code="network_error",
                error_message=str(e),
            )

        if not isinstance(body, dict) or not body.get("sid"):
            return None
        return ProviderResponse(
            success=True,
            channel=self.channel,
            provider_message_id=body["sid"],
            raw=body,
        )
