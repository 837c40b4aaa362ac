from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models.relevance import AnalysisConfig, GeographyBoost, RelevanceScore
from app.models.web_content import ContactDetails, FetchedContent, SocialLinks
from app.services.discovery.relevance import (
    ContentAnalyzer,
    detect_industry,
    events_config,
    marketing_agency_config,
)


def _page(text: str, *, title: str | None = None, **fields) -> FetchedContent:
    return FetchedContent(
        url="https://acme.example.co.za",
        success=True,
        title=title,
        text_content=text,
        **fields,
    )


def _config(**fields) -> AnalysisConfig:
    return AnalysisConfig(**{"relevance_threshold": 10, **fields})


def test_scores_sum_of_capped_sub_scores():
    content = _page("we offer branding", title="Acme Agency")
    score = ContentAnalyzer().analyze(content, _config(positive_keywords=("branding", "events")))

    assert score.breakdown.keyword_score == 5
    assert score.breakdown.service_score == 3
    assert score.breakdown.business_type_score == 15
    assert score.breakdown.content_quality_score == 0
    assert score.breakdown.geography_score == 0
    assert score.score == score.breakdown.total == 23
    assert score.is_relevant is True
    assert score.detected_industry == "Marketing & Advertising"
    assert score.confidence == "low"
    assert "Identified as: agency" in score.reasons


def test_verdict_is_inclusive_at_threshold():
    content = _page("we offer branding", title="Acme Agency")
    analyzer = ContentAnalyzer()

    at_threshold = analyzer.analyze(
        content, _config(positive_keywords=("branding",), relevance_threshold=23)
    )
    above_threshold = analyzer.analyze(
        content, _config(positive_keywords=("branding",), relevance_threshold=24)
    )

    assert at_threshold.score == 23
    assert at_threshold.is_relevant is True
    assert above_threshold.is_relevant is False
    assert above_threshold.threshold == 24


def test_failed_fetch_scores_zero_with_error_as_reason():
    content = FetchedContent.failure("https://down.example.com", "Timeout after 10000ms")

    score = ContentAnalyzer().analyze(content, _config(relevance_threshold=1))

    assert score.score == 0
    assert score.is_relevant is False
    assert score.reasons == ["Timeout after 10000ms"]
    assert score.confidence == "low"


def test_negative_keywords_floor_keyword_score_at_zero():
    content = _page("careers vacancy branding")
    config = _config(positive_keywords=("branding",), negative_keywords=("careers", "vacancy"))

    score = ContentAnalyzer().analyze(content, config)

    assert score.breakdown.keyword_score == 0
    assert any(reason.startswith("Found irrelevant indicators") for reason in score.reasons)


def test_keyword_score_caps_at_thirty_and_counts_distinct_keywords():
    words = ("alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel")
    analyzer = ContentAnalyzer()

    capped = analyzer.analyze(_page(" ".join(words)), _config(positive_keywords=words))
    duplicated = analyzer.analyze(
        _page("branding"), _config(positive_keywords=("branding", "Branding", " branding "))
    )

    assert capped.breakdown.keyword_score == 30
    assert duplicated.breakdown.keyword_score == 5


def test_only_first_title_pattern_counts():
    content = _page("nothing else", title="Creative Studio Agency Group")

    score = ContentAnalyzer().analyze(content, _config())

    assert score.breakdown.business_type_score == 15


def test_target_business_types_feed_service_and_business_type_scores():
    content = _page("about us: we are a branding agency for retailers")
    config = _config(target_business_types=("branding agency",))

    score = ContentAnalyzer().analyze(content, config)

    assert score.breakdown.service_score == 5
    # +5 target type, +3 identity phrase
    assert score.breakdown.business_type_score == 8


def test_contact_block_contributes_at_most_four_points():
    content = _page(
        "short",
        contact=ContactDetails(
            email="info@acme.co.za", phone="+27 11 555 0100", address="1 Main Rd, Sandton"
        ),
    )

    score = ContentAnalyzer().analyze(content, _config())

    assert score.breakdown.content_quality_score == 4
    assert "Has contact information" in score.reasons


def test_content_quality_caps_at_fifteen():
    content = _page(
        "x" * 2500,
        company_name="Acme",
        description="A long enough description of what Acme does for its corporate clients.",
        contact=ContactDetails(email="info@acme.co.za", phone="+27 11 555 0100"),
        social_links=SocialLinks(
            linkedin="https://linkedin.com/company/acme",
            facebook="https://facebook.com/acme",
            instagram="https://instagram.com/acme",
        ),
    )

    score = ContentAnalyzer().analyze(content, _config())

    assert score.breakdown.content_quality_score == 15
    assert score.confidence == "high"
    assert "Has LinkedIn presence" in score.reasons


def test_geography_bonus_requires_configured_regions_and_caps():
    text = "offices in sandton, midrand, pretoria and soweto"
    analyzer = ContentAnalyzer()
    boost = GeographyBoost(priority_regions=("Sandton", "Midrand", "Pretoria", "Soweto"))

    with_regions = analyzer.analyze(_page(text), _config(geography_boost=boost))
    without_regions = analyzer.analyze(_page(text), _config())

    assert with_regions.breakdown.geography_score == 15
    assert without_regions.breakdown.geography_score == 0


def test_industry_ties_resolve_to_first_declared_industry():
    assert detect_industry("marketing events") == "Marketing & Advertising"
    assert detect_industry("freight and shipping for mining") == "Logistics"
    assert detect_industry("nothing here") is None


def test_confidence_reflects_available_content():
    analyzer = ContentAnalyzer()

    medium = analyzer.analyze(_page("y" * 600), _config())
    with_description = analyzer.analyze(_page("short", description="Brief."), _config())

    assert medium.confidence == "medium"
    assert with_description.confidence == "medium"


def test_relevance_score_rejects_inconsistent_verdict():
    with pytest.raises(ValidationError):
        RelevanceScore(score=10, is_relevant=True, threshold=40)


def test_preset_configs_use_intent_threshold():
    assert marketing_agency_config().relevance_threshold == 35
    assert events_config().relevance_threshold == 35
    assert "wedding" in events_config().negative_keywords
