"""Discovery intent templates and their resolved form."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, conint

from app.models.candidate import ChannelType


class IntentCategory(str, Enum):
    REFERRAL = "referral"
    AGENCY = "agency"
    BUYER = "buyer"
    EVENT = "event"
    SCHOOLS = "schools"
    TENDERS = "tenders"
    BUSINESS = "business"
    CUSTOM = "custom"


class IntentLimits(BaseModel):
    """Per-run ceilings. ``None`` defers to the next level of precedence."""

    model_config = ConfigDict(frozen=True)

    max_leads: conint(ge=0) | None = None
    max_companies: conint(ge=0) | None = None
    max_queries: conint(ge=0) | None = None
    time_budget_ms: conint(ge=0) | None = None


class ResolvedLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_leads: int
    max_companies: int
    max_queries: int
    time_budget_ms: int


class GeographyConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_country: str
    priority_regions: tuple[str, ...] = ()
    region_boost: float = Field(default=0.15, ge=0.0, le=1.0)


class DiscoveryIntent(BaseModel):
    """Immutable, named discovery template."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: IntentCategory
    target_countries: tuple[str, ...]
    seed_queries: tuple[str, ...]
    include_keywords: tuple[str, ...] = ()
    exclude_keywords: tuple[str, ...] = ()
    channels: tuple[ChannelType, ...] = (ChannelType.GOOGLE,)
    limits: IntentLimits = Field(default_factory=IntentLimits)
    geography: GeographyConfig | None = None
    active: bool = True


class IntentOverrides(BaseModel):
    """Caller-supplied adjustments layered on top of an intent."""

    model_config = ConfigDict(frozen=True)

    target_countries: tuple[str, ...] = ()
    additional_include_keywords: tuple[str, ...] = ()
    additional_exclude_keywords: tuple[str, ...] = ()
    channels: tuple[ChannelType, ...] = ()
    limits: IntentLimits | None = None


class ResolvedIntentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent_id: str
    intent_name: str
    category: IntentCategory
    target_countries: tuple[str, ...]
    queries: tuple[str, ...]
    include_keywords: tuple[str, ...]
    exclude_keywords: tuple[str, ...]
    channels: tuple[ChannelType, ...]
    limits: ResolvedLimits
    geography: GeographyConfig | None = None
