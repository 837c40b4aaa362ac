from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Lead Discovery"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Search provider
    google_cse_api_key: str | None = None
    google_cse_id: str | None = None
    google_cse_base_url: str = "https://www.googleapis.com"
    google_cse_timeout_seconds: float = 10.0

    # Discovery runner
    discovery_runner_enabled: bool = False
    discovery_channels: str = "google,keyword"
    discovery_daily_max_companies: int = 30
    discovery_daily_max_leads: int = 30
    discovery_daily_max_queries: int = 5
    discovery_daily_max_runtime_seconds: int = 300
    discovery_manual_max_companies: int = 10
    discovery_manual_max_leads: int = 10
    discovery_manual_max_queries: int = 3
    discovery_manual_max_runtime_seconds: int = 120
    discovery_test_max_companies: int = 5
    discovery_test_max_leads: int = 5
    discovery_test_max_queries: int = 1
    discovery_test_max_runtime_seconds: int = 60

    # Content fetching
    discovery_fetch_timeout_ms: int = 10_000
    discovery_fetch_concurrency: int = 3
    discovery_results_per_query: int = 10
    discovery_search_max_attempts: int = 2
    discovery_user_agent: str = "Mozilla/5.0 (compatible; LeadDiscoveryBot/1.0)"

    # Gated channels
    linkedin_access_token: str | None = None
    social_monitoring_token: str | None = None

    # Job trigger
    cron_job_secret: str | None = None

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "discovery"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125
    metrics_schema_version: str = "discovery.v1"

    # HTTP
    cors_origins: list[str] = []

    # Sentry
    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.1

    @property
    def discovery_channel_list(self) -> list[str]:
        """Return configured channel names, lowercased, in declaration order."""
        return [
            channel.strip().lower()
            for channel in self.discovery_channels.split(",")
            if channel.strip()
        ]

    @property
    def google_search_configured(self) -> bool:
        return bool(self.google_cse_api_key and self.google_cse_id)

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
