"""Keyword discovery channel: raw keywords delegated to the search-engine channel."""

from __future__ import annotations

import logging
from typing import assert_never

from app.models.candidate import (
    AdditionalMetadata,
    Candidate,
    ChannelType,
    CompanyCandidate,
    ContactCandidate,
    DiscoveryMetadata,
    LeadCandidate,
)
from app.services.discovery.channels.base import (
    ActivationStatus,
    ChannelConfig,
    ChannelInput,
    ChannelOutput,
    dedupe_by_website,
    normalize_criteria,
)
from app.services.discovery.channels.search_engine import SearchEngineChannel

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = (
    "Google Custom Search not configured. Keyword discovery requires Google "
    "discovery to be available."
)


class KeywordChannel:
    channel_type = ChannelType.KEYWORD

    def __init__(self, search_channel: SearchEngineChannel) -> None:
        self._search_channel = search_channel

    def is_enabled(self, config: ChannelConfig | None = None) -> bool:
        if config is not None and config.activation_status is ActivationStatus.DISABLED:
            return False
        return self._search_channel.is_enabled(ChannelConfig(channel_type=ChannelType.GOOGLE))

    async def discover(self, channel_input: ChannelInput) -> ChannelOutput:
        if not self.is_enabled(channel_input.config):
            return ChannelOutput(
                channel_type=self.channel_type,
                success=False,
                error=DISABLED_MESSAGE,
                metadata={"configuration_error": True},
            )

        keywords = normalize_criteria(channel_input.search_criteria)
        if not keywords:
            return ChannelOutput(
                channel_type=self.channel_type,
                metadata={"message": "No keywords provided"},
            )

        method = f"Keywords: {', '.join(keywords)}"
        collected: list[Candidate] = []
        errors: list[str] = []
        cancelled = False
        configuration_failed = False
        delegated_config = ChannelConfig(
            channel_type=ChannelType.GOOGLE, options=dict(channel_input.config.options)
        )

        for keyword in keywords:
            if channel_input.cancellation.is_cancelled():
                cancelled = True
                break
            output = await self._search_channel.discover(
                ChannelInput(
                    config=delegated_config,
                    search_criteria=[keyword],
                    cancellation=channel_input.cancellation,
                )
            )
            collected.extend(relabel(result, method) for result in output.results)
            if not output.success:
                errors.append(output.error or "Keyword search failed")
                logger.warning(
                    "discovery.keyword.search_failed",
                    extra={"keyword": keyword, "error": output.error},
                )
                if output.metadata.get("configuration_error"):
                    configuration_failed = True
                    break

        unique = dedupe_by_website(collected)
        metadata = {
            "keywords": keywords,
            "keywords_failed": len(errors),
            "cancelled": cancelled,
            "configuration_error": configuration_failed,
        }
        if errors and (configuration_failed or len(errors) == len(keywords)):
            return ChannelOutput(
                channel_type=self.channel_type,
                results=unique,
                success=False,
                error=errors[-1],
                metadata=metadata,
            )
        return ChannelOutput(channel_type=self.channel_type, results=unique, metadata=metadata)


def relabel(candidate: Candidate, method: str) -> Candidate:
    """Mark a delegated candidate as keyword-sourced, keeping its upstream provenance."""
    match candidate:
        case CompanyCandidate() | ContactCandidate():
            return candidate.model_copy(
                update={
                    "discovery_metadata": _relabel_metadata(candidate.discovery_metadata, method)
                }
            )
        case LeadCandidate():
            extra = candidate.additional_metadata.model_copy(
                update={"upstream_source": candidate.source}
            )
            return candidate.model_copy(
                update={"source": ChannelType.KEYWORD, "additional_metadata": extra}
            )
        case _:
            assert_never(candidate)


def _relabel_metadata(metadata: DiscoveryMetadata, method: str) -> DiscoveryMetadata:
    extra: AdditionalMetadata = metadata.additional_metadata.model_copy(
        update={
            "upstream_source": metadata.discovery_source,
            "upstream_query": metadata.discovery_method,
        }
    )
    return metadata.model_copy(
        update={
            "discovery_source": ChannelType.KEYWORD,
            "discovery_method": method,
            "additional_metadata": extra,
        }
    )
