"""
Typed channel credentials.

A Provider row stores credentials as a loose JSON bundle. CredentialResolver
turns it into a ChannelContext with a per-channel credential model, raising
ProviderMisconfigured when required keys are missing.
"""

from pydantic import BaseModel, Field, ValidationError

from clinicomm.models.enums import Channel
from clinicomm.models.tables import Provider

from .errors import ProviderMisconfigured


class WhatsAppCredentials(BaseModel):
    access_token: str = Field(min_length=1)
    phone_number_id: str = Field(min_length=1)


class SmsCredentials(BaseModel):
    account_sid: str = Field(min_length=1)
    auth_token: str = Field(min_length=1)
    messaging_service_sid: str | None = None
    from_number: str | None = None


class EmailCredentials(BaseModel):
    api_key: str = Field(min_length=1)
    sender_email: str = Field(min_length=3)
    sender_name: str | None = None


ChannelCredentials = WhatsAppCredentials | SmsCredentials | EmailCredentials


class ChannelContext(BaseModel):
    """Everything an adapter needs to act on behalf of one clinic."""

    tenant_id: str
    provider_id: str
    channel: Channel
    credentials: ChannelCredentials


class CredentialResolver:
    """Resolve a provider's credential bundle for a channel."""

    _models: dict[Channel, type[BaseModel]] = {
        Channel.WHATSAPP: WhatsAppCredentials,
        Channel.SMS: SmsCredentials,
        Channel.EMAIL: EmailCredentials,
    }

    def resolve(self, provider: Provider, channel: Channel) -> ChannelContext:
        """
        Build the typed context for sending on channel through provider.

        Raises:
            ProviderMisconfigured: If the provider serves another channel or
                lacks a required credential
        """
        if provider.channel != channel:
            raise ProviderMisconfigured(
                f"Provider {provider.id} serves {provider.channel.value}, not {channel.value}"
            )

        data = dict(provider.credentials or {})
        if channel == Channel.WHATSAPP:
            data.setdefault("phone_number_id", provider.phone_number_id)
        elif channel == Channel.SMS:
            data.setdefault("from_number", provider.phone)

        try:
            credentials = self._models[channel].model_validate(data)
        except ValidationError as e:
            missing = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ProviderMisconfigured(
                f"Provider details not found for {channel.value}: {missing}"
            ) from e

        if (
            isinstance(credentials, SmsCredentials)
            and not credentials.messaging_service_sid
            and not credentials.from_number
        ):
            raise ProviderMisconfigured(
                "SMS provider needs a messaging service id or a sender number"
            )

        return ChannelContext(
            tenant_id=provider.tenant_id,
            provider_id=provider.id,
            channel=channel,
            credentials=credentials,
        )
