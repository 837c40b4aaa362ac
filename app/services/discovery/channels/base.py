"""Channel contract shared by every discovery source."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, assert_never

from pydantic import BaseModel, Field

from app.models.candidate import (
    Candidate,
    ChannelType,
    CompanyCandidate,
    ContactCandidate,
    LeadCandidate,
)
from app.services.discovery.budget import CancellationToken


class ActivationStatus(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


class ChannelConfig(BaseModel):
    channel_type: ChannelType
    activation_status: ActivationStatus = ActivationStatus.ENABLED
    options: dict[str, Any] = Field(default_factory=dict)


@dataclass
class ChannelInput:
    config: ChannelConfig
    search_criteria: list[str]
    cancellation: CancellationToken = field(default_factory=CancellationToken.never)


class ChannelOutput(BaseModel):
    channel_type: ChannelType
    results: list[Candidate] = Field(default_factory=list)
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DiscoveryChannel(Protocol):
    """A named source of candidates.

    ``discover`` reports failures through ``ChannelOutput.success``/``error``;
    callers still guard against unexpected exceptions.
    """

    channel_type: ChannelType

    def is_enabled(self, config: ChannelConfig) -> bool:
        ...

    async def discover(self, channel_input: ChannelInput) -> ChannelOutput:
        ...


def normalize_criteria(criteria: Sequence[str] | str | None) -> list[str]:
    if criteria is None:
        return []
    if isinstance(criteria, str):
        criteria = [criteria]
    return [entry.strip() for entry in criteria if isinstance(entry, str) and entry.strip()]


def dedupe_by_website(results: Sequence[Candidate]) -> list[Candidate]:
    """Drop companies whose website was already seen (exact, case-insensitive).

    Websiteless companies, contacts and leads are always kept.
    """
    seen: set[str] = set()
    unique: list[Candidate] = []
    for result in results:
        match result:
            case CompanyCandidate(website=website) if website:
                key = website.strip().lower()
                if key in seen:
                    continue
                seen.add(key)
                unique.append(result)
            case CompanyCandidate() | ContactCandidate() | LeadCandidate():
                unique.append(result)
            case _:
                assert_never(result)
    return unique
