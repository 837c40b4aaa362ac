"""Merges an intent template with caller overrides into a concrete run configuration."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from app.models.intent import (
    DiscoveryIntent,
    IntentCategory,
    IntentLimits,
    IntentOverrides,
    ResolvedIntentConfig,
    ResolvedLimits,
)
from app.models.relevance import AnalysisConfig, GeographyBoost
from app.services.discovery.intent_catalog import (
    COUNTRY_PLACEHOLDER,
    country_name,
    get_intent,
)

DEFAULT_LIMITS = ResolvedLimits(
    max_leads=10,
    max_companies=10,
    max_queries=3,
    time_budget_ms=120_000,
)

CONTEXT_KEYWORDS: tuple[str, ...] = (
    "about us",
    "our clients",
    "our services",
    "contact us",
    "portfolio",
)

TARGET_BUSINESS_TYPES_BY_CATEGORY: dict[IntentCategory, tuple[str, ...]] = {
    IntentCategory.AGENCY: (
        "marketing agency",
        "branding agency",
        "creative agency",
        "advertising agency",
        "activation agency",
        "btl agency",
        "experiential agency",
        "promotional agency",
        "pr agency",
        "digital agency",
        "media agency",
    ),
    IntentCategory.EVENT: (
        "event management",
        "event company",
        "conference organizer",
        "exhibition company",
        "event planner",
        "expo organizer",
        "exhibitor",
        "sponsor",
        "brand activation",
        "trade show",
        "corporate event",
        "golf day",
        "exhibition",
    ),
    IntentCategory.BUYER: (
        "uniform supplier",
        "workwear manufacturer",
        "clothing supplier",
        "corporate apparel",
        "ppe supplier",
    ),
    IntentCategory.REFERRAL: (
        "supplier directory",
        "business association",
        "procurement",
        "vendor registration",
        "supplier database",
    ),
    IntentCategory.SCHOOLS: (
        "school",
        "academy",
        "college",
        "educational institution",
        "uniform supplier",
        "school uniform",
    ),
    IntentCategory.TENDERS: (
        "government department",
        "municipality",
        "state entity",
        "procurement office",
        "tender portal",
    ),
    IntentCategory.BUSINESS: (
        "corporate",
        "company",
        "business",
        "enterprise",
        "sme",
        "small business",
        "medium enterprise",
    ),
    IntentCategory.CUSTOM: (),
}

TENDER_RELEVANCE_THRESHOLD = 25
INTENT_RELEVANCE_THRESHOLD = 35


def apply_intent(
    intent: DiscoveryIntent, overrides: IntentOverrides | None = None
) -> ResolvedIntentConfig:
    """Resolve ``intent`` against ``overrides``.

    Pure and deterministic: equal inputs always produce equal configs. Countries and
    channels are replaced only by non-empty overrides; keyword overrides are appended;
    each limit resolves as override, then intent, then ``DEFAULT_LIMITS``.
    """
    overrides = overrides or IntentOverrides()
    countries = overrides.target_countries or intent.target_countries
    channels = overrides.channels or intent.channels
    return ResolvedIntentConfig(
        intent_id=intent.id,
        intent_name=intent.name,
        category=intent.category,
        target_countries=tuple(countries),
        queries=tuple(expand_queries(intent.seed_queries, countries)),
        include_keywords=(*intent.include_keywords, *overrides.additional_include_keywords),
        exclude_keywords=(*intent.exclude_keywords, *overrides.additional_exclude_keywords),
        channels=tuple(channels),
        limits=_resolve_limits(overrides.limits, intent.limits),
        geography=intent.geography,
    )


def apply_intent_by_id(
    intent_id: str, overrides: IntentOverrides | None = None
) -> ResolvedIntentConfig | None:
    intent = get_intent(intent_id)
    if intent is None:
        return None
    return apply_intent(intent, overrides)


def expand_queries(seed_queries: Sequence[str], countries: Sequence[str]) -> list[str]:
    """One query per country for templated seeds; untemplated seeds are emitted once.

    Only the first ``{country}`` in a seed is substituted.
    """
    queries: list[str] = []
    for query in seed_queries:
        if COUNTRY_PLACEHOLDER not in query:
            queries.append(query)
            continue
        for code in countries:
            queries.append(query.replace(COUNTRY_PLACEHOLDER, country_name(code), 1))
    return queries


def _resolve_limits(override: IntentLimits | None, intent_limits: IntentLimits) -> ResolvedLimits:
    def pick(field: str) -> int:
        for source in (override, intent_limits):
            value = getattr(source, field, None) if source is not None else None
            if value is not None:
                return value
        return getattr(DEFAULT_LIMITS, field)

    return ResolvedLimits(
        max_leads=pick("max_leads"),
        max_companies=pick("max_companies"),
        max_queries=pick("max_queries"),
        time_budget_ms=pick("time_budget_ms"),
    )


def build_analysis_config(
    intent: DiscoveryIntent, resolved: ResolvedIntentConfig | None = None
) -> AnalysisConfig:
    """Scorer configuration for an intent.

    When ``resolved`` is given its merged keyword lists are used, so caller-added
    keywords reach the scorer too.
    """
    include = resolved.include_keywords if resolved is not None else intent.include_keywords
    exclude = resolved.exclude_keywords if resolved is not None else intent.exclude_keywords
    geography = intent.geography
    boost = None
    if geography is not None and geography.priority_regions:
        boost = GeographyBoost(
            priority_regions=geography.priority_regions,
            boost_amount=geography.region_boost,
        )
    threshold = (
        TENDER_RELEVANCE_THRESHOLD
        if intent.category is IntentCategory.TENDERS
        else INTENT_RELEVANCE_THRESHOLD
    )
    return AnalysisConfig(
        positive_keywords=(*include, *CONTEXT_KEYWORDS),
        negative_keywords=tuple(exclude),
        target_business_types=TARGET_BUSINESS_TYPES_BY_CATEGORY.get(intent.category, ()),
        relevance_threshold=threshold,
        geography_boost=boost,
    )


def snapshot_intent_config(resolved: ResolvedIntentConfig) -> dict[str, Any]:
    """JSON-ready copy of a resolved config for run statistics."""
    return resolved.model_dump(mode="json")
