"""Builds channel instances for one aggregation request."""

from __future__ import annotations

from typing import assert_never

from app.clients.web_fetcher import DEFAULT_CONCURRENCY, ContentFetcher
from app.models.candidate import ChannelType
from app.models.relevance import AnalysisConfig
from app.observability.metrics import MetricsReporter
from app.services.discovery.channels.base import DiscoveryChannel
from app.services.discovery.channels.gated import LinkedInProfileChannel, SocialMonitoringChannel
from app.services.discovery.channels.keyword import KeywordChannel
from app.services.discovery.channels.search_engine import SearchClient, SearchEngineChannel
from app.services.discovery.relevance import ContentAnalyzer


class ChannelFactory:
    """Holds long-lived collaborators; channels themselves are per request."""

    def __init__(
        self,
        *,
        search_client: SearchClient | None,
        fetcher: ContentFetcher | None = None,
        analyzer: ContentAnalyzer | None = None,
        results_per_query: int = 10,
        fetch_concurrency: int = DEFAULT_CONCURRENCY,
        fetch_timeout_ms: int | None = None,
        search_max_attempts: int = 2,
        linkedin_access_token: str | None = None,
        social_monitoring_token: str | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._search_client = search_client
        self._fetcher = fetcher
        self._analyzer = analyzer or ContentAnalyzer()
        self._results_per_query = results_per_query
        self._fetch_concurrency = fetch_concurrency
        self._fetch_timeout_ms = fetch_timeout_ms
        self._search_max_attempts = search_max_attempts
        self._linkedin_access_token = linkedin_access_token
        self._social_monitoring_token = social_monitoring_token
        self._metrics = metrics_reporter

    def search_channel(
        self,
        *,
        analysis_config: AnalysisConfig | None = None,
        enable_scraping: bool | None = None,
    ) -> SearchEngineChannel:
        return SearchEngineChannel(
            self._search_client,
            fetcher=self._fetcher,
            analyzer=self._analyzer,
            analysis_config=analysis_config,
            enable_scraping=enable_scraping,
            results_per_query=self._results_per_query,
            fetch_concurrency=self._fetch_concurrency,
            fetch_timeout_ms=self._fetch_timeout_ms,
            max_attempts=self._search_max_attempts,
            metrics_reporter=self._metrics,
        )

    def create(
        self,
        channel_type: ChannelType,
        *,
        analysis_config: AnalysisConfig | None = None,
        enable_scraping: bool | None = None,
    ) -> DiscoveryChannel:
        match channel_type:
            case ChannelType.GOOGLE:
                return self.search_channel(
                    analysis_config=analysis_config, enable_scraping=enable_scraping
                )
            case ChannelType.KEYWORD:
                return KeywordChannel(
                    self.search_channel(
                        analysis_config=analysis_config, enable_scraping=enable_scraping
                    )
                )
            case ChannelType.LINKEDIN:
                return LinkedInProfileChannel(self._linkedin_access_token)
            case ChannelType.SOCIAL:
                return SocialMonitoringChannel(self._social_monitoring_token)
            case _:
                assert_never(channel_type)
