"""Relevance scoring models shared by the scorer, channels and run statistics."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, conint, model_validator

Confidence = Literal["low", "medium", "high"]

DEFAULT_RELEVANCE_THRESHOLD = 40


class GeographyBoost(BaseModel):
    """Priority regions that earn a bounded bonus when mentioned on a page."""

    model_config = ConfigDict(frozen=True)

    priority_regions: tuple[str, ...] = ()
    boost_amount: float = Field(default=0.15, ge=0.0, le=1.0)


class AnalysisConfig(BaseModel):
    """Keyword and business-type configuration the scorer evaluates content against."""

    model_config = ConfigDict(frozen=True)

    positive_keywords: tuple[str, ...] = ()
    negative_keywords: tuple[str, ...] = ()
    target_business_types: tuple[str, ...] = ()
    relevance_threshold: conint(ge=1, le=100) = DEFAULT_RELEVANCE_THRESHOLD
    geography_boost: GeographyBoost | None = None


class ScoreBreakdown(BaseModel):
    keyword_score: conint(ge=0, le=30) = 0
    service_score: conint(ge=0, le=25) = 0
    business_type_score: conint(ge=0, le=30) = 0
    content_quality_score: conint(ge=0, le=15) = 0
    geography_score: conint(ge=0, le=15) = 0

    @property
    def total(self) -> int:
        return (
            self.keyword_score
            + self.service_score
            + self.business_type_score
            + self.content_quality_score
            + self.geography_score
        )


class RelevanceScore(BaseModel):
    """Composite 0-100 relevance verdict for one fetched page."""

    score: conint(ge=0, le=100)
    is_relevant: bool
    threshold: conint(ge=1, le=100) = DEFAULT_RELEVANCE_THRESHOLD
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    reasons: list[str] = Field(default_factory=list)
    detected_industry: str | None = None
    confidence: Confidence = "low"

    @model_validator(mode="after")
    def _verdict_matches_threshold(self) -> RelevanceScore:
        if self.is_relevant != (self.score >= self.threshold):
            raise ValueError("is_relevant must equal score >= threshold")
        return self
