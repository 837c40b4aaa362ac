"""Structured signals extracted from a fetched web page."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ContactDetails(BaseModel):
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @property
    def has_any(self) -> bool:
        return bool(self.email or self.phone or self.address)


class SocialLinks(BaseModel):
    linkedin: str | None = None
    twitter: str | None = None
    facebook: str | None = None
    instagram: str | None = None

    def present(self) -> dict[str, str]:
        """Return only the links that were found, keyed by network."""
        return {network: url for network, url in self.model_dump().items() if url}


class FetchedContent(BaseModel):
    """Result of fetching one URL. Failures are values, never exceptions."""

    url: str
    success: bool
    title: str | None = None
    description: str | None = None
    company_name: str | None = None
    text_content: str | None = None
    contact: ContactDetails | None = None
    social_links: SocialLinks | None = None
    services: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    error: str | None = None
    fetch_duration_ms: int = 0

    @classmethod
    def failure(cls, url: str, error: str, *, duration_ms: int = 0) -> FetchedContent:
        return cls(url=url, success=False, error=error, fetch_duration_ms=duration_ms)
