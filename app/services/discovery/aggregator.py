"""Runs enabled channels in order and deduplicates their combined output."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, assert_never

from pydantic import BaseModel, Field

from app.models.candidate import (
    Candidate,
    ChannelType,
    CompanyCandidate,
    ContactCandidate,
    LeadCandidate,
)
from app.models.relevance import AnalysisConfig
from app.observability.metrics import MetricsReporter, metrics
from app.services.discovery.budget import CancellationToken
from app.services.discovery.channels.base import ChannelConfig, ChannelInput
from app.services.discovery.channels.factory import ChannelFactory

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS: tuple[ChannelType, ...] = (ChannelType.GOOGLE, ChannelType.KEYWORD)
SEARCH_NOT_CONFIGURED = "Google Custom Search is not configured"


@dataclass
class AggregatorRequest:
    search_criteria: list[str]
    enabled_channels: Sequence[ChannelType | str] | None = None
    analysis_config: AnalysisConfig | None = None
    enable_scraping: bool | None = None
    channel_options: dict[str, Any] = field(default_factory=dict)
    cancellation: CancellationToken = field(default_factory=CancellationToken.never)


class AggregatorResult(BaseModel):
    results: list[Candidate] = Field(default_factory=list)
    channel_results: dict[str, int] = Field(default_factory=dict)
    channel_errors: dict[str, str] = Field(default_factory=dict)
    configuration_errors: list[str] = Field(default_factory=list)
    total_before_dedupe: int = 0
    total_after_dedupe: int = 0
    success: bool = True
    error: str | None = None
    cancelled: bool = False


def dedupe_key(candidate: Candidate) -> str | None:
    """Exact-match identity for a candidate; ``None`` means it is always kept."""
    match candidate:
        case CompanyCandidate(website=website, name=name):
            if website and website.strip():
                return f"website:{_normalize(website)}"
            return f"name:{_normalize(name)}"
        case ContactCandidate(email=email):
            if email and email.strip():
                return f"email:{_normalize(email)}"
            return f"contact:{_normalize(candidate.display_name)}"
        case LeadCandidate(contact=contact, company=company):
            if contact is not None and contact.email and contact.email.strip():
                return f"lead:{_normalize(contact.email)}"
            if company is not None and company.website and company.website.strip():
                return f"lead:company:{_normalize(company.website)}"
            return None
        case _:
            assert_never(candidate)


def deduplicate(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Keep the first candidate per key, in first-seen order."""
    seen: set[str] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        key = dedupe_key(candidate)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(candidate)
    return unique


def _normalize(value: str) -> str:
    return value.strip().lower()


def _resolve_channels(requested: Sequence[ChannelType | str] | None) -> list[ChannelType]:
    resolved: list[ChannelType] = []
    for entry in requested or DEFAULT_CHANNELS:
        try:
            channel_type = ChannelType(entry)
        except ValueError:
            logger.debug("discovery.aggregator.unknown_channel", extra={"channel": entry})
            continue
        if channel_type not in resolved:
            resolved.append(channel_type)
    return resolved


class DiscoveryAggregator:
    """Runs channels sequentially; one channel failing never aborts the others."""

    def __init__(
        self, channel_factory: ChannelFactory, *, metrics_reporter: MetricsReporter | None = None
    ) -> None:
        self._factory = channel_factory
        self._metrics = metrics_reporter or metrics

    async def execute(self, request: AggregatorRequest) -> AggregatorResult:
        try:
            return await self._execute(request)
        except Exception as exc:
            logger.exception("discovery.aggregator.failed")
            return AggregatorResult(success=False, error=str(exc) or type(exc).__name__)

    async def _execute(self, request: AggregatorRequest) -> AggregatorResult:
        scraping = (
            request.enable_scraping
            if request.enable_scraping is not None
            else request.analysis_config is not None
        )
        collected: list[Candidate] = []
        channel_results: dict[str, int] = {}
        channel_errors: dict[str, str] = {}
        configuration_errors: list[str] = []
        cancelled = False

        for channel_type in _resolve_channels(request.enabled_channels):
            name = channel_type.value
            if request.cancellation.is_cancelled():
                cancelled = True
                break

            channel = self._factory.create(
                channel_type,
                analysis_config=request.analysis_config,
                enable_scraping=scraping,
            )
            config = ChannelConfig(channel_type=channel_type, options=dict(request.channel_options))
            if not channel.is_enabled(config):
                channel_results[name] = 0
                configuration_errors.append(name)
                if channel_type is ChannelType.GOOGLE:
                    channel_errors[name] = SEARCH_NOT_CONFIGURED
                logger.info("discovery.aggregator.channel_disabled", extra={"channel": name})
                continue

            try:
                output = await channel.discover(
                    ChannelInput(
                        config=config,
                        search_criteria=list(request.search_criteria),
                        cancellation=request.cancellation,
                    )
                )
            except Exception as exc:
                logger.exception("discovery.aggregator.channel_failed", extra={"channel": name})
                channel_results[name] = 0
                channel_errors[name] = str(exc) or type(exc).__name__
                self._metrics.increment("channel.error", tags={"channel": name})
                continue

            collected.extend(output.results)
            channel_results[name] = len(output.results)
            if output.error:
                channel_errors[name] = output.error
            if output.metadata.get("configuration_error"):
                configuration_errors.append(name)
            if output.metadata.get("cancelled"):
                cancelled = True
            self._metrics.gauge("channel.results", len(output.results), tags={"channel": name})
            logger.info(
                "discovery.aggregator.channel_complete",
                extra={
                    "channel": name,
                    "results": len(output.results),
                    "success": output.success,
                    "error": output.error,
                },
            )

        unique = deduplicate(collected)
        self._metrics.gauge("aggregator.deduped", len(collected) - len(unique))
        return AggregatorResult(
            results=unique,
            channel_results=channel_results,
            channel_errors=channel_errors,
            configuration_errors=configuration_errors,
            total_before_dedupe=len(collected),
            total_after_dedupe=len(unique),
            success=True,
            cancelled=cancelled or request.cancellation.is_cancelled(),
        )
