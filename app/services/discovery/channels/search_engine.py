"""Search-engine discovery channel backed by Google Custom Search."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol
from urllib.parse import urlparse

from app.clients.backoff import exponential_backoff
from app.clients.google_search import (
    GoogleSearchConfigError,
    GoogleSearchError,
    GoogleSearchRateLimitError,
    GoogleSearchTimeoutError,
)
from app.clients.web_fetcher import DEFAULT_CONCURRENCY, ContentFetcher
from app.models.candidate import (
    AdditionalMetadata,
    Candidate,
    ChannelType,
    CompanyCandidate,
    ContactChannels,
    DiscoveryMetadata,
    ScrapeMetadata,
    SearchResultMetadata,
)
from app.models.relevance import AnalysisConfig, RelevanceScore
from app.models.web_content import FetchedContent
from app.observability.metrics import MetricsReporter, metrics
from app.services.discovery.channels.base import (
    ActivationStatus,
    ChannelConfig,
    ChannelInput,
    ChannelOutput,
    dedupe_by_website,
    normalize_criteria,
)
from app.services.discovery.relevance import ContentAnalyzer

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

DISABLED_MESSAGE = (
    "Google Custom Search not configured. Please set GOOGLE_CSE_API_KEY and "
    "GOOGLE_CSE_ID environment variables."
)

# Known non-company hosts: social networks, job boards, marketplaces, reference sites.
EXCLUDED_DOMAINS = (
    "facebook.com",
    "linkedin.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "wikipedia.org",
    "bloomberg.com",
    "crunchbase.com",
    "yelp.com",
    "indeed.com",
    "glassdoor.com",
    "careers24.com",
    "pnet.co.za",
    "jobmail.co.za",
    "gumtree.co.za",
    "amazon.com",
    "ebay.com",
    "takealot.com",
    "alibaba.com",
)

_TITLE_TRAILERS = (
    re.compile(r"\s*[-|]\s.*$"),
    re.compile(r"\s*[-|]$"),
    re.compile(r"\s*[—–]\s*.*$"),
    re.compile(r"\s+Company\b.*$", re.IGNORECASE),
    re.compile(r",?\s+Inc\.?(\s.*)?$", re.IGNORECASE),
    re.compile(r",?\s+LLC\.?(\s.*)?$", re.IGNORECASE),
    re.compile(r"\s+\(?Pty\)?\s+Ltd\.?$", re.IGNORECASE),
    re.compile(r"\s+Ltd\.?$", re.IGNORECASE),
)
_SENTENCE_SPLIT = re.compile(r"[.!?]")


class SearchClient(Protocol):
    async def search(self, query: str, *, num: int = 10) -> list[dict[str, Any]]:
        ...


def is_excluded_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return True
    return any(host == domain or host.endswith(f".{domain}") for domain in EXCLUDED_DOMAINS)


def extract_company_name(title: str, snippet: str | None = None) -> str:
    """Best-effort company name from a search result title, falling back to the snippet."""
    name = title or ""
    for pattern in _TITLE_TRAILERS:
        name = pattern.sub("", name)
    name = name.strip()

    if len(name) < 2:
        source = snippet or title or ""
        first_sentence = _SENTENCE_SPLIT.split(source)[0].strip()
        name = first_sentence if len(first_sentence) > 2 else source.strip()

    return name or (title or "").strip()


class SearchEngineChannel:
    """Queries the search API and turns results into company candidates.

    With an analysis config and a fetcher, every surviving result is fetched and
    scored and only relevant sites are kept. Without them, candidates are built
    from the search result title and snippet alone.
    """

    channel_type = ChannelType.GOOGLE

    def __init__(
        self,
        search_client: SearchClient | None,
        *,
        fetcher: ContentFetcher | None = None,
        analyzer: ContentAnalyzer | None = None,
        analysis_config: AnalysisConfig | None = None,
        enable_scraping: bool | None = None,
        results_per_query: int = 10,
        fetch_concurrency: int = DEFAULT_CONCURRENCY,
        fetch_timeout_ms: int | None = None,
        max_attempts: int = 2,
        append_company_suffix: bool = True,
        sleep: SleepFn | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._client = search_client
        self._fetcher = fetcher
        self._analyzer = analyzer or ContentAnalyzer()
        self._analysis_config = analysis_config
        wants_scraping = analysis_config is not None if enable_scraping is None else enable_scraping
        self._scraping = bool(wants_scraping and analysis_config is not None and fetcher is not None)
        self._results_per_query = results_per_query
        self._fetch_concurrency = fetch_concurrency
        self._fetch_timeout_ms = fetch_timeout_ms
        self._max_attempts = max(1, max_attempts)
        self._append_company_suffix = append_company_suffix
        self._sleep = sleep or asyncio.sleep
        self._metrics = metrics_reporter or metrics

    @property
    def scraping_enabled(self) -> bool:
        return self._scraping

    def is_enabled(self, config: ChannelConfig | None = None) -> bool:
        if config is not None and config.activation_status is ActivationStatus.DISABLED:
            return False
        return self._client is not None

    async def discover(self, channel_input: ChannelInput) -> ChannelOutput:
        if not self.is_enabled(channel_input.config):
            return ChannelOutput(
                channel_type=self.channel_type,
                success=False,
                error=DISABLED_MESSAGE,
                metadata={"configuration_error": True},
            )

        queries = normalize_criteria(channel_input.search_criteria)
        if not queries:
            return ChannelOutput(
                channel_type=self.channel_type,
                metadata={"message": "No search queries provided"},
            )

        per_query = int(
            channel_input.config.options.get("max_results_per_query", self._results_per_query)
        )
        collected: list[Candidate] = []
        query_errors: list[dict[str, str]] = []
        stats = {"total_results": 0, "filtered_domains": 0, "filtered_irrelevant": 0}
        executed = 0
        cancelled = False

        for query in queries:
            if channel_input.cancellation.is_cancelled():
                cancelled = True
                logger.info("discovery.search.cancelled", extra={"remaining_query": query})
                break
            executed += 1
            try:
                items = await self._search_with_retries(self._build_query(query), per_query)
            except GoogleSearchConfigError as exc:
                logger.error(
                    "discovery.search.config_error",
                    extra={"query": query, "code": exc.code},
                )
                self._metrics.increment("channel.error", tags={"channel": "google", "code": exc.code})
                return ChannelOutput(
                    channel_type=self.channel_type,
                    results=dedupe_by_website(collected),
                    success=False,
                    error=str(exc),
                    metadata={
                        **self._metadata(queries, stats, query_errors, cancelled),
                        "configuration_error": True,
                    },
                )
            except GoogleSearchError as exc:
                logger.warning(
                    "discovery.search.query_failed",
                    extra={"query": query, "code": exc.code, "error": str(exc)},
                )
                self._metrics.increment("channel.error", tags={"channel": "google", "code": exc.code})
                query_errors.append({"query": query, "code": exc.code, "error": str(exc)})
                continue

            stats["total_results"] += len(items)
            kept = []
            for item in items:
                link = item.get("link")
                if not isinstance(link, str) or is_excluded_url(link):
                    stats["filtered_domains"] += 1
                    continue
                kept.append(item)

            if self._scraping:
                candidates, dropped = await self._scored_candidates(kept, query)
                stats["filtered_irrelevant"] += dropped
            else:
                candidates = [self._unscored_candidate(item, query) for item in kept]
            collected.extend(candidates)

        unique = dedupe_by_website(collected)
        metadata = self._metadata(queries, stats, query_errors, cancelled)
        if executed and len(query_errors) == executed:
            return ChannelOutput(
                channel_type=self.channel_type,
                results=unique,
                success=False,
                error=query_errors[-1]["error"],
                metadata=metadata,
            )
        return ChannelOutput(channel_type=self.channel_type, results=unique, metadata=metadata)

    def _build_query(self, query: str) -> str:
        if self._append_company_suffix and "company" not in query.lower():
            return f"{query} company"
        return query

    async def _search_with_retries(self, query: str, num: int) -> list[dict[str, Any]]:
        assert self._client is not None
        for attempt, delay in exponential_backoff(max_attempts=self._max_attempts):
            try:
                return await self._client.search(query, num=num)
            except (GoogleSearchRateLimitError, GoogleSearchTimeoutError) as exc:
                if attempt >= self._max_attempts:
                    raise
                logger.warning(
                    "discovery.search.retry",
                    extra={
                        "code": exc.code,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "delay_seconds": round(delay, 2),
                        "query": query,
                    },
                )
                await self._sleep(delay)
        raise GoogleSearchError("Unable to complete search after retries.")

    def _unscored_candidate(self, item: Mapping[str, Any], query: str) -> CompanyCandidate:
        title = str(item.get("title") or "")
        snippet = item.get("snippet")
        return CompanyCandidate(
            name=extract_company_name(title, snippet) or item["link"],
            website=item["link"],
            discovery_metadata=DiscoveryMetadata(
                discovery_source=self.channel_type,
                discovery_method=query,
                additional_metadata=AdditionalMetadata(search=_search_metadata(item, query)),
            ),
        )

    async def _scored_candidates(
        self, items: list[Mapping[str, Any]], query: str
    ) -> tuple[list[CompanyCandidate], int]:
        assert self._fetcher is not None and self._analysis_config is not None
        if not items:
            return [], 0
        contents = await self._fetcher.fetch_many(
            [item["link"] for item in items],
            concurrency=self._fetch_concurrency,
            timeout_ms=self._fetch_timeout_ms,
        )
        candidates: list[CompanyCandidate] = []
        dropped = 0
        for item, content in zip(items, contents, strict=True):
            if not content.success:
                self._metrics.increment("fetch.failed", tags={"channel": "google"})
            score = self._analyzer.analyze(content, self._analysis_config)
            if not score.is_relevant:
                dropped += 1
                logger.debug(
                    "discovery.search.irrelevant",
                    extra={"url": item["link"], "score": score.score},
                )
                continue
            candidates.append(self._scored_candidate(item, query, content, score))
        return candidates, dropped

    def _scored_candidate(
        self,
        item: Mapping[str, Any],
        query: str,
        content: FetchedContent,
        score: RelevanceScore,
    ) -> CompanyCandidate:
        title = str(item.get("title") or "")
        name = content.company_name or extract_company_name(title, item.get("snippet"))
        contact = content.contact
        social = content.social_links.present() if content.social_links else {}
        emails = [contact.email] if contact and contact.email else []
        phones = [contact.phone] if contact and contact.phone else []
        channels = (
            ContactChannels(emails=emails, phones=phones, social_links=social)
            if emails or phones or social
            else None
        )
        return CompanyCandidate(
            name=name or item["link"],
            website=item["link"],
            industry=score.detected_industry,
            services=list(content.services),
            locations=[contact.address] if contact and contact.address else [],
            contact_channels=channels,
            discovery_metadata=DiscoveryMetadata(
                discovery_source=self.channel_type,
                discovery_method=query,
                additional_metadata=AdditionalMetadata(
                    search=_search_metadata(item, query),
                    scrape=ScrapeMetadata(
                        page_title=content.title,
                        page_description=content.description,
                        emails=emails,
                        phones=phones,
                        social_links=social,
                        fetch_duration_ms=content.fetch_duration_ms,
                    ),
                    scoring=score,
                ),
            ),
        )

    def _metadata(
        self,
        queries: list[str],
        stats: dict[str, int],
        query_errors: list[dict[str, str]],
        cancelled: bool,
    ) -> dict[str, Any]:
        return {
            "queries": queries,
            **stats,
            "query_errors": query_errors,
            "scraping_enabled": self._scraping,
            "cancelled": cancelled,
        }


def _search_metadata(item: Mapping[str, Any], query: str) -> SearchResultMetadata:
    return SearchResultMetadata(
        title=item.get("title"),
        snippet=item.get("snippet"),
        display_link=item.get("displayLink"),
        query=query,
    )
