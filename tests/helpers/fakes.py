from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from app.models.web_content import ContactDetails, FetchedContent, SocialLinks


def search_item(link: str, title: str, snippet: str | None = None) -> dict[str, Any]:
    item: dict[str, Any] = {"link": link, "title": title}
    if snippet is not None:
        item["snippet"] = snippet
    return item


class StubSearchClient:
    """Returns canned items per query; queued errors are raised first."""

    def __init__(
        self,
        results: Mapping[str, Sequence[dict[str, Any]]] | None = None,
        *,
        errors: Mapping[str, Sequence[Exception]] | None = None,
    ) -> None:
        self._results = {query: list(items) for query, items in (results or {}).items()}
        self._errors = {query: list(queued) for query, queued in (errors or {}).items()}
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, *, num: int = 10) -> list[dict[str, Any]]:
        self.calls.append((query, num))
        queued = self._errors.get(query)
        if queued:
            raise queued.pop(0)
        return list(self._results.get(query, []))[:num]


class StubFetcher:
    """Serves prepared pages; unknown URLs come back as HTTP 404 failures."""

    def __init__(self, pages: Mapping[str, FetchedContent] | None = None) -> None:
        self._pages = dict(pages or {})
        self.calls: list[str] = []
        self.batches: list[list[str]] = []

    async def fetch(self, url: str, *, timeout_ms: int | None = None) -> FetchedContent:
        self.calls.append(url)
        page = self._pages.get(url)
        if page is None:
            return FetchedContent.failure(url, "HTTP 404: Not Found")
        return page

    async def fetch_many(
        self,
        urls: Sequence[str],
        *,
        concurrency: int = 3,
        timeout_ms: int | None = None,
    ) -> list[FetchedContent]:
        self.batches.append(list(urls))
        return [await self.fetch(url, timeout_ms=timeout_ms) for url in urls]


class ManualClock:
    """Monotonic clock advanced explicitly by tests (seconds)."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def agency_page(url: str, *, name: str = "Brightside Creative") -> FetchedContent:
    text = (
        f"About us. {name} is a branding and marketing agency in Johannesburg, Gauteng. "
        "Our services include brand activation, experiential campaigns and creative design. "
        "We offer integrated marketing for corporate clients. Contact us for a portfolio."
    )
    return FetchedContent(
        url=url,
        success=True,
        title=f"{name} | Creative Agency",
        description="Branding, activation and experiential marketing agency based in Johannesburg.",
        company_name=name,
        text_content=text,
        contact=ContactDetails(email="hello@brightside.co.za", phone="+27 11 555 0100"),
        social_links=SocialLinks(linkedin="https://www.linkedin.com/company/brightside"),
        services=["brand activation, experiential campaigns and creative design"],
    )


async def no_sleep(_: float) -> None:
    return None
