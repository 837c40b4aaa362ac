"""Candidate records produced by discovery channels.

Candidates are unpersisted: channels create them, the aggregator deduplicates them
and the persistence sink turns them into durable rows. The ``type`` tag decides
which variant a payload is; consumers match on the concrete class.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from app.models.relevance import RelevanceScore


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChannelType(str, Enum):
    GOOGLE = "google"
    KEYWORD = "keyword"
    LINKEDIN = "linkedin"
    SOCIAL = "social"


class SearchResultMetadata(BaseModel):
    """What the search API said about the result that produced a candidate."""

    title: str | None = None
    snippet: str | None = None
    display_link: str | None = None
    query: str | None = None


class ScrapeMetadata(BaseModel):
    """Signals captured while fetching the candidate's website."""

    page_title: str | None = None
    page_description: str | None = None
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)
    social_links: dict[str, str] = Field(default_factory=dict)
    fetch_duration_ms: int | None = None


class AdditionalMetadata(BaseModel):
    """Typed per-producer metadata slots plus an ``other`` escape hatch."""

    search: SearchResultMetadata | None = None
    scrape: ScrapeMetadata | None = None
    scoring: RelevanceScore | None = None
    upstream_source: ChannelType | None = None
    upstream_query: str | None = None
    other: dict[str, Any] = Field(default_factory=dict)


class DiscoveryMetadata(BaseModel):
    discovery_source: ChannelType
    discovery_timestamp: datetime = Field(default_factory=_utcnow)
    discovery_method: str | None = None
    additional_metadata: AdditionalMetadata = Field(default_factory=AdditionalMetadata)


class ContactChannels(BaseModel):
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)
    social_links: dict[str, str] = Field(default_factory=dict)


class CompanyCandidate(BaseModel):
    type: Literal["company"] = "company"
    name: str = Field(min_length=1)
    website: str | None = None
    industry: str | None = None
    country: str | None = None
    services: list[str] = Field(default_factory=list)
    industries_served: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    contact_channels: ContactChannels | None = None
    discovery_metadata: DiscoveryMetadata


class ContactCandidate(BaseModel):
    type: Literal["contact"] = "contact"
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    profile_url: str | None = None
    company_name: str | None = None
    discovery_metadata: DiscoveryMetadata

    @model_validator(mode="after")
    def _require_name(self) -> ContactCandidate:
        if not self.display_name:
            raise ValueError("contact candidates need a name or first/last name")
        return self

    @property
    def display_name(self) -> str:
        if self.name and self.name.strip():
            return self.name.strip()
        parts = [part.strip() for part in (self.first_name, self.last_name) if part and part.strip()]
        return " ".join(parts)


class LeadCandidate(BaseModel):
    type: Literal["lead"] = "lead"
    source: ChannelType
    discovery_timestamp: datetime = Field(default_factory=_utcnow)
    company: CompanyCandidate | None = None
    contact: ContactCandidate | None = None
    additional_metadata: AdditionalMetadata = Field(default_factory=AdditionalMetadata)


Candidate = Annotated[
    CompanyCandidate | ContactCandidate | LeadCandidate,
    Field(discriminator="type"),
]
