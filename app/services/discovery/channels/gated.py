"""Gated channels (profile and social monitoring).

These sources need partner API access. Until it is configured they report
themselves disabled and return empty, successful output so a run is never
blocked by them.
"""

from __future__ import annotations

from app.models.candidate import ChannelType
from app.services.discovery.channels.base import (
    ActivationStatus,
    ChannelConfig,
    ChannelInput,
    ChannelOutput,
)


class GatedChannel:
    channel_type: ChannelType
    access_label: str

    def __init__(self, access_token: str | None = None) -> None:
        self._access_token = access_token

    def is_enabled(self, config: ChannelConfig | None = None) -> bool:
        if config is not None and config.activation_status is ActivationStatus.DISABLED:
            return False
        return bool(self._access_token)

    async def discover(self, channel_input: ChannelInput) -> ChannelOutput:
        if not self.is_enabled(channel_input.config):
            return ChannelOutput(
                channel_type=self.channel_type,
                metadata={
                    "status": "disabled",
                    "reason": f"{self.access_label} access is not configured",
                },
            )
        return ChannelOutput(
            channel_type=self.channel_type,
            metadata={
                "status": "no_targets",
                "reason": f"No {self.access_label} targets are monitored yet",
            },
        )


class LinkedInProfileChannel(GatedChannel):
    channel_type = ChannelType.LINKEDIN
    access_label = "LinkedIn"


class SocialMonitoringChannel(GatedChannel):
    channel_type = ChannelType.SOCIAL
    access_label = "Social monitoring"
