"""
Channel adapter protocol and registry.

The dispatcher only knows this contract; provider SDK or wire shapes never
leak past an adapter.
"""

from typing import Protocol

from clinicomm.models.enums import Channel

from ..credentials import ChannelContext
from ..intents import IntentType, MessageIntent, ProviderResponse


class ChannelAdapter(Protocol):
    """One provider integration for one channel."""

    channel: Channel
    capabilities: frozenset[IntentType]

    async def send(
        self, intent: MessageIntent, context: ChannelContext
    ) -> ProviderResponse | None:
        """
        Deliver an intent through the provider.

        Returns:
            ProviderResponse (success, or failure with the provider's error
            code and message), or None when the provider gave no usable answer

        Raises:
            ProviderMisconfigured: If the context carries another channel's credentials
        """
        ...


class AdapterRegistry:
    """Maps each channel to the adapter that serves it."""

    def __init__(self, adapters: list[ChannelAdapter] | None = None):
        self._adapters: dict[Channel, ChannelAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ChannelAdapter) -> None:
        self._adapters[adapter.channel] = adapter

    def get(self, channel: Channel) -> ChannelAdapter:
        """
        Raises:
            KeyError: If no adapter serves the channel
        """
        try:
            return self._adapters[channel]
        except KeyError:
            raise KeyError(f"No adapter registered for channel {channel.value}") from None

    def supports(self, channel: Channel, intent_type: IntentType) -> bool:
        adapter = self._adapters.get(channel)
        return adapter is not None and intent_type in adapter.capabilities

    @property
    def channels(self) -> list[Channel]:
        return list(self._adapters)
