"""Content relevance scoring for fetched company websites.

Scores are additive over five independently capped sub-scores:

* keywords (0-30): +5 per distinct positive keyword, -10 per distinct negative keyword
* services (0-25): generic service language plus target business types
* business type (0-30): title noun (first match only), target types, "about us"
* content quality (0-15): company name, description, contact details, social links, length
* geography (0-15): +5 per priority region mentioned, only when regions are configured

Confidence reflects how much content was available, not the score.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from app.models.relevance import (
    AnalysisConfig,
    Confidence,
    GeographyBoost,
    RelevanceScore,
    ScoreBreakdown,
)
from app.models.web_content import FetchedContent

KEYWORD_CAP = 30
SERVICE_CAP = 25
BUSINESS_TYPE_CAP = 30
CONTENT_QUALITY_CAP = 15
GEOGRAPHY_CAP = 15
CONTACT_BLOCK_CAP = 4

SERVICE_INDICATORS = (
    "our services",
    "we offer",
    "we provide",
    "we specialize",
    "solutions",
    "what we do",
    "capabilities",
)

# Checked against the title only, in order; the first hit wins.
TITLE_BUSINESS_PATTERNS: tuple[tuple[re.Pattern[str], str, int], ...] = (
    (re.compile(r"\bagency\b", re.IGNORECASE), "agency", 15),
    (re.compile(r"\bagencies\b", re.IGNORECASE), "agency", 15),
    (re.compile(r"\bstudio\b", re.IGNORECASE), "creative studio", 12),
    (re.compile(r"\bconsultancy\b", re.IGNORECASE), "consultancy", 12),
    (re.compile(r"\bconsulting\b", re.IGNORECASE), "consulting", 10),
    (re.compile(r"\bfirm\b", re.IGNORECASE), "professional firm", 8),
    (re.compile(r"\bgroup\b", re.IGNORECASE), "group", 5),
)

IDENTITY_PHRASES = ("about us", "who we are")

# Declaration order breaks ties.
INDUSTRY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Marketing & Advertising",
        ("marketing", "advertising", "branding", "creative", "campaign", "btl", "atl"),
    ),
    ("Public Relations", ("pr", "public relations", "communications", "media relations")),
    ("Events & Exhibitions", ("events", "exhibitions", "conferences", "experiential")),
    ("Design", ("design", "graphic", "visual", "ux", "ui", "web design")),
    ("Technology", ("digital", "technology", "software", "development", "tech")),
    ("Logistics", ("logistics", "shipping", "freight", "transport", "delivery")),
    ("Mining", ("mining", "minerals", "extraction", "resources")),
    ("Finance", ("finance", "banking", "investment", "insurance")),
    ("Manufacturing", ("manufacturing", "factory", "production", "industrial")),
    ("Retail", ("retail", "store", "shop", "ecommerce")),
)


class ContentAnalyzer:
    """Scores fetched content against an ``AnalysisConfig``."""

    def analyze(self, content: FetchedContent, config: AnalysisConfig) -> RelevanceScore:
        threshold = config.relevance_threshold
        if not content.success or not content.text_content:
            return RelevanceScore(
                score=0,
                is_relevant=False,
                threshold=threshold,
                reasons=[content.error or "No content available to analyze"],
                confidence="low",
            )

        reasons: list[str] = []
        title = (content.title or "").lower()
        description = (content.description or "").lower()
        full_text = f"{title} {description} {content.text_content.lower()}"

        breakdown = ScoreBreakdown(
            keyword_score=_keyword_score(
                full_text, config.positive_keywords, config.negative_keywords, reasons
            ),
            service_score=_service_score(
                content.services, full_text, config.target_business_types, reasons
            ),
            business_type_score=_business_type_score(
                full_text, title, config.target_business_types, reasons
            ),
            content_quality_score=_content_quality_score(content, reasons),
            geography_score=_geography_score(full_text, config.geography_boost, reasons),
        )
        score = max(0, min(100, breakdown.total))
        return RelevanceScore(
            score=score,
            is_relevant=score >= threshold,
            threshold=threshold,
            breakdown=breakdown,
            reasons=reasons,
            detected_industry=detect_industry(full_text),
            confidence=_confidence(content),
        )


def detect_industry(text: str) -> str | None:
    """Return the industry with the most keyword hits; earlier entries win ties."""
    lowered = text.lower()
    best: tuple[str, int] | None = None
    for industry, keywords in INDUSTRY_KEYWORDS:
        hits = sum(1 for keyword in keywords if keyword in lowered)
        if hits and (best is None or hits > best[1]):
            best = (industry, hits)
    return best[0] if best else None


def marketing_agency_config() -> AnalysisConfig:
    return AnalysisConfig(
        positive_keywords=(
            "agency",
            "agencies",
            "studio",
            "consultancy",
            "marketing",
            "branding",
            "advertising",
            "creative",
            "brand strategy",
            "brand activation",
            "experiential",
            "btl",
            "atl",
            "through the line",
            "integrated marketing",
            "campaigns",
            "promotions",
            "events",
            "activations",
            "digital marketing",
            "social media marketing",
            "content creation",
            "design",
            "creative services",
            "our clients",
            "client list",
            "case studies",
            "portfolio",
            "brands we work with",
            "our work",
        ),
        negative_keywords=(
            "careers",
            "job posting",
            "vacancy",
            "apply now",
            "we are hiring",
            "logistics",
            "shipping",
            "freight",
            "mining",
            "oil and gas",
            "petroleum",
            "banking",
            "insurance",
            "law firm",
            "top 10",
            "top 20",
            "best agencies",
            "list of",
            "directory",
            "wikipedia",
            "from wikipedia",
        ),
        target_business_types=(
            "marketing agency",
            "branding agency",
            "creative agency",
            "advertising agency",
            "activation agency",
            "btl agency",
            "experiential agency",
            "promotional agency",
            "brand consultancy",
        ),
        relevance_threshold=35,
    )


def events_config() -> AnalysisConfig:
    return AnalysisConfig(
        positive_keywords=(
            "events",
            "conferences",
            "exhibitions",
            "expo",
            "trade show",
            "corporate events",
            "event management",
            "event planning",
            "venue",
            "mice",
            "congress",
            "convention",
            "event organizer",
            "event company",
        ),
        negative_keywords=(
            "wedding",
            "birthday",
            "party planner",
            "careers",
            "job posting",
            "vacancy",
        ),
        target_business_types=(
            "event management",
            "event company",
            "conference organizer",
            "exhibition company",
            "event planner",
        ),
        relevance_threshold=35,
    )


def _distinct(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = value.strip().lower()
        if key and key not in seen:
            seen.add(key)
            ordered.append(value.strip())
    return ordered


def _keyword_score(
    text: str,
    positive: Iterable[str],
    negative: Iterable[str],
    reasons: list[str],
) -> int:
    matched_positive = [keyword for keyword in _distinct(positive) if keyword.lower() in text]
    matched_negative = [keyword for keyword in _distinct(negative) if keyword.lower() in text]
    score = min(len(matched_positive) * 5, KEYWORD_CAP) - 10 * len(matched_negative)

    if matched_positive:
        reasons.append(f"Found relevant keywords: {', '.join(matched_positive[:5])}")
    if matched_negative:
        reasons.append(f"Found irrelevant indicators: {', '.join(matched_negative[:3])}")
    return max(0, score)


def _service_score(
    services: list[str],
    full_text: str,
    target_types: Iterable[str],
    reasons: list[str],
) -> int:
    score = 3 * sum(1 for indicator in SERVICE_INDICATORS if indicator in full_text)
    services_text = " ".join(services).lower()
    for target in _distinct(target_types):
        needle = target.lower()
        if needle in services_text or needle in full_text:
            score += 5

    if services:
        reasons.append(f"Offers services: {'; '.join(services[:3])[:100]}")
    return min(SERVICE_CAP, score)


def _business_type_score(
    full_text: str,
    title: str,
    target_types: Iterable[str],
    reasons: list[str],
) -> int:
    score = 0
    matched: list[str] = []

    for pattern, label, points in TITLE_BUSINESS_PATTERNS:
        if pattern.search(title):
            matched.append(label)
            score += points
            break

    for target in _distinct(target_types):
        if re.search(rf"\b{re.escape(target.lower())}\b", full_text):
            score += 5
            if target not in matched:
                matched.append(target)

    if any(phrase in full_text for phrase in IDENTITY_PHRASES):
        score += 3

    if matched:
        reasons.append(f"Identified as: {', '.join(matched)}")
    return min(BUSINESS_TYPE_CAP, score)


def _content_quality_score(content: FetchedContent, reasons: list[str]) -> int:
    score = 0
    if content.company_name:
        score += 3
    if content.description and len(content.description) > 50:
        score += 3

    if content.contact is not None and content.contact.has_any:
        contact_points = (
            (2 if content.contact.email else 0)
            + (2 if content.contact.phone else 0)
            + (1 if content.contact.address else 0)
        )
        score += min(CONTACT_BLOCK_CAP, contact_points)
        reasons.append("Has contact information")

    if content.social_links is not None:
        score += min(len(content.social_links.present()), 3)
        if content.social_links.linkedin:
            score += 2
            reasons.append("Has LinkedIn presence")

    if content.text_content and len(content.text_content) > 2000:
        score += 2
    return min(CONTENT_QUALITY_CAP, score)


def _geography_score(
    full_text: str, boost: GeographyBoost | None, reasons: list[str]
) -> int:
    if boost is None or not boost.priority_regions:
        return 0
    matched = [region for region in _distinct(boost.priority_regions) if region.lower() in full_text]
    if matched:
        reasons.append(f"Priority region match: {', '.join(matched[:3])}")
    return min(GEOGRAPHY_CAP, 5 * len(matched))


def _confidence(content: FetchedContent) -> Confidence:
    text_length = len(content.text_content or "")
    if text_length > 1000 and content.description:
        return "high"
    if text_length > 500 or content.description:
        return "medium"
    return "low"
