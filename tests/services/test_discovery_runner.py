from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.config import Settings
from app.models.candidate import ChannelType
from app.models.discovery_run import RunMode, RunOptions, RunStatus
from app.models.intent import IntentLimits, IntentOverrides
from app.services.discovery.aggregator import SEARCH_NOT_CONFIGURED, DiscoveryAggregator
from app.services.discovery.channels.factory import ChannelFactory
from app.services.discovery.errors import DiscoveryDisabledError, IntentNotFoundError
from app.services.discovery.persistence import InMemoryDiscoverySink
from app.services.discovery.run_repository import InMemoryRunRepository
from app.services.discovery.runner import (
    DEFAULT_DISCOVERY_QUERIES,
    GuardedDiscoveryRunner,
    ModeLimits,
    RunnerConfig,
    resolve_limits,
)
from tests.helpers.fakes import ManualClock, StubFetcher, StubSearchClient, search_item
from tests.helpers.metrics_stub import StubMetrics


def _config(**overrides) -> RunnerConfig:
    fields = {
        "enabled": True,
        "channels": (ChannelType.GOOGLE, ChannelType.KEYWORD),
        "daily": ModeLimits(max_companies=30, max_leads=30, max_queries=5, max_runtime_seconds=300),
        "manual": ModeLimits(max_companies=10, max_leads=10, max_queries=3, max_runtime_seconds=120),
        "test": ModeLimits(max_companies=5, max_leads=5, max_queries=1, max_runtime_seconds=60),
    }
    fields.update(overrides)
    return RunnerConfig(**fields)


class _FailingSink:
    async def persist(self, candidates):
        raise RuntimeError("database unavailable")


def _build_runner(
    client: StubSearchClient | None,
    *,
    config: RunnerConfig | None = None,
    sink=None,
    fetcher: StubFetcher | None = None,
) -> tuple[GuardedDiscoveryRunner, InMemoryRunRepository, StubMetrics]:
    metrics = StubMetrics()
    factory = ChannelFactory(
        search_client=client, fetcher=fetcher or StubFetcher(), metrics_reporter=metrics
    )
    repository = InMemoryRunRepository()
    runner = GuardedDiscoveryRunner(
        config or _config(),
        aggregator=DiscoveryAggregator(factory, metrics_reporter=metrics),
        sink=sink or InMemoryDiscoverySink(),
        run_repository=repository,
        clock=ManualClock(),
        metrics_reporter=metrics,
    )
    return runner, repository, metrics


def _uniform_client() -> StubSearchClient:
    return StubSearchClient(
        {
            "uniform suppliers company": [
                search_item("https://kit.co.za", "Kit Uniforms"),
                search_item("https://stitch.co.za", "Stitch Workwear"),
                search_item("https://threads.co.za", "Threads Apparel"),
            ]
        }
    )


@pytest.mark.asyncio
async def test_successful_run_persists_and_records_stats():
    runner, repository, metrics = _build_runner(_uniform_client())

    result = await runner.run(
        RunOptions(mode=RunMode.MANUAL, queries=["uniform suppliers"], channels=[ChannelType.GOOGLE])
    )

    assert result.success is True
    assert result.status is RunStatus.COMPLETED
    stats = result.stats
    assert stats.channel_results == {"google": 3}
    assert stats.total_discovered == stats.total_after_dedupe == 3
    assert stats.companies_created == 3
    assert stats.stopped_early is False
    assert stats.limits_used.max_queries == 1
    assert stats.limits_used.channels == ["google"]
    stored = repository.get(result.run_id)
    assert stored.status is RunStatus.COMPLETED
    assert stored.stats == stats
    assert stored.finished_at is not None
    assert metrics.increment_calls[-1]["metric"] == "runs.completed"
    assert metrics.increment_calls[-1]["tags"]["status"] == "completed"
    assert [call["kind"] for call in metrics.named("runs.duration_ms")] == ["timing"]


@pytest.mark.asyncio
async def test_kill_switch_rejects_before_recording_a_run():
    client = _uniform_client()
    runner, repository, _ = _build_runner(client, config=_config(enabled=False))

    with pytest.raises(DiscoveryDisabledError) as excinfo:
        await runner.run(RunOptions())
    with pytest.raises(DiscoveryDisabledError):
        await runner.run_intent("does_not_exist")

    assert excinfo.value.code == "403_RUNNER_DISABLED"
    assert repository.list_recent() == []
    assert client.calls == []


@pytest.mark.asyncio
async def test_missing_search_credentials_complete_with_errors():
    runner, _, _ = _build_runner(None)

    result = await runner.run(RunOptions(queries=["uniform suppliers"]))

    assert result.success is True
    assert result.status is RunStatus.COMPLETED_WITH_ERRORS
    assert result.stats.channel_results == {"google": 0, "keyword": 0}
    assert result.stats.channel_errors == {"google": SEARCH_NOT_CONFIGURED}
    assert [entry.type for entry in result.stats.errors] == ["channel"]


@pytest.mark.asyncio
async def test_dry_run_writes_nothing():
    sink = InMemoryDiscoverySink()
    runner, _, _ = _build_runner(_uniform_client(), sink=sink)

    result = await runner.run(
        RunOptions(dry_run=True, queries=["uniform suppliers"], channels=[ChannelType.GOOGLE])
    )

    assert result.dry_run is True
    assert result.stats.companies_created == 0
    assert result.stats.companies_skipped == 3
    assert sink.companies == []


@pytest.mark.asyncio
async def test_exhausted_time_budget_stops_before_searching():
    client = _uniform_client()
    runner, _, _ = _build_runner(client)

    result = await runner.run(RunOptions(queries=["uniform suppliers"], time_budget_ms=0))

    assert result.status is RunStatus.COMPLETED
    assert result.stats.stopped_early is True
    assert result.stats.stopped_reason == "time_budget"
    assert client.calls == []


@pytest.mark.asyncio
async def test_company_limit_caps_results_per_query_and_is_reported():
    client = _uniform_client()
    runner, _, _ = _build_runner(client)

    result = await runner.run(
        RunOptions(
            queries=["uniform suppliers"], channels=[ChannelType.GOOGLE], max_companies=2
        )
    )

    assert client.calls == [("uniform suppliers company", 2)]
    assert result.stats.companies_created == 2
    assert result.stats.stopped_early is True
    assert result.stats.stopped_reason == "company_limit"


@pytest.mark.asyncio
async def test_unexpected_failure_marks_run_failed():
    runner, repository, metrics = _build_runner(_uniform_client(), sink=_FailingSink())

    result = await runner.run(
        RunOptions(queries=["uniform suppliers"], channels=[ChannelType.GOOGLE])
    )

    assert result.success is False
    assert result.status is RunStatus.FAILED
    assert result.error == "database unavailable"
    assert [(entry.type, entry.message) for entry in result.stats.errors] == [
        ("fatal", "database unavailable")
    ]
    assert repository.get(result.run_id).error == "database unavailable"
    assert metrics.alert_calls[0]["metric"] == "runner.failed"


@pytest.mark.asyncio
async def test_cancellation_marks_run_cancelled():
    client = _uniform_client()
    runner, _, _ = _build_runner(client)

    result = await runner.run(RunOptions(queries=["uniform suppliers"]), should_cancel=lambda: True)

    assert result.success is True
    assert result.status is RunStatus.CANCELLED
    assert result.stats.stopped_reason == "cancelled"
    assert client.calls == []


class _CancellingSearchClient(StubSearchClient):
    """Records a cancel request against the active run during its first search."""

    def __init__(self, repository: InMemoryRunRepository, results) -> None:
        super().__init__(results)
        self._repository = repository

    async def search(self, query: str, *, num: int = 10):
        if not self.calls:
            [active] = self._repository.list_recent(limit=1)
            self._repository.request_cancel(
                active.id, requested_at=datetime.now(UTC), requested_by="ops"
            )
        return await super().search(query, num=num)


@pytest.mark.asyncio
async def test_recorded_cancel_request_stops_the_run():
    repository = InMemoryRunRepository()
    client = _CancellingSearchClient(
        repository,
        {"uniform suppliers company": [search_item("https://kit.co.za", "Kit Uniforms")]},
    )
    metrics = StubMetrics()
    factory = ChannelFactory(
        search_client=client, fetcher=StubFetcher(), metrics_reporter=metrics
    )
    runner = GuardedDiscoveryRunner(
        _config(),
        aggregator=DiscoveryAggregator(factory, metrics_reporter=metrics),
        sink=InMemoryDiscoverySink(),
        run_repository=repository,
        clock=ManualClock(),
        metrics_reporter=metrics,
    )

    result = await runner.run(
        RunOptions(
            mode=RunMode.MANUAL,
            queries=["uniform suppliers", "workwear suppliers"],
            channels=[ChannelType.GOOGLE],
        )
    )

    assert result.status is RunStatus.CANCELLED
    assert result.stats.stopped_reason == "cancelled"
    assert client.calls == [("uniform suppliers company", 10)]
    run = repository.get(result.run_id)
    assert run.status is RunStatus.CANCELLED
    assert run.cancel_requested_by == "ops"


def test_resolve_limits_prefers_options_over_mode_defaults():
    config = _config()

    defaults = resolve_limits(config, RunOptions(mode=RunMode.TEST))
    explicit = resolve_limits(
        config,
        RunOptions(
            mode=RunMode.DAILY,
            queries=["a", " ", "b", "c"],
            max_queries=2,
            max_leads=4,
            time_budget_ms=5_000,
            channels=[ChannelType.KEYWORD],
        ),
    )

    assert defaults.queries == DEFAULT_DISCOVERY_QUERIES[:1]
    assert defaults.max_companies == 5
    assert defaults.time_budget_ms == 60_000
    assert defaults.channels == (ChannelType.GOOGLE, ChannelType.KEYWORD)
    assert explicit.queries == ("a", "b")
    assert explicit.max_queries == 2
    assert explicit.max_leads == 4
    assert explicit.max_companies == 30
    assert explicit.time_budget_ms == 5_000
    assert explicit.channels == (ChannelType.KEYWORD,)


def test_runner_config_from_settings_skips_unknown_channels():
    config = RunnerConfig.from_settings(
        Settings(
            discovery_runner_enabled=True,
            discovery_channels="keyword, fax, GOOGLE, keyword",
            discovery_test_max_queries=2,
        )
    )

    assert config.enabled is True
    assert config.channels == (ChannelType.KEYWORD, ChannelType.GOOGLE)
    assert config.limits_for(RunMode.TEST).max_queries == 2


@pytest.mark.asyncio
async def test_run_intent_resolves_catalog_queries_and_snapshots_config():
    client = StubSearchClient(
        {
            "marketing agency Gauteng South Africa company": [
                search_item("https://agency.co.za", "Agency One")
            ]
        }
    )
    fetcher = StubFetcher()
    runner, repository, _ = _build_runner(client, fetcher=fetcher)

    result = await runner.run_intent(
        "agencies_all",
        IntentOverrides(channels=(ChannelType.GOOGLE,), limits=IntentLimits(max_queries=2)),
        dry_run=True,
    )

    assert [query for query, _ in client.calls] == [
        "marketing agency Gauteng South Africa company",
        "branding agency Johannesburg company",
    ]
    assert fetcher.calls == ["https://agency.co.za"]
    # unreachable site scores zero and is dropped
    assert result.stats.total_discovered == 0
    assert result.stats.intent_config["intent_id"] == "agencies_all"
    assert result.stats.intent_config["limits"]["max_queries"] == 2
    run = repository.get(result.run_id)
    assert run.intent_id == "agencies_all"
    assert run.mode is RunMode.MANUAL
    assert run.triggered_by == "manual"


@pytest.mark.asyncio
async def test_run_intent_rejects_unknown_intents_without_recording():
    runner, repository, _ = _build_runner(StubSearchClient())

    with pytest.raises(IntentNotFoundError):
        await runner.run_intent("does_not_exist")

    assert repository.list_recent() == []


@pytest.mark.asyncio
async def test_daily_intents_record_one_run_each():
    runner, repository, _ = _build_runner(StubSearchClient())

    results = await runner.run_daily_intents(dry_run=True)

    assert len(results) == 3
    runs = {run.id: run for run in repository.list_recent()}
    assert {runs[result.run_id].intent_id for result in results} == {
        "agencies_all",
        "tenders_uniforms_merch",
        "businesses_sme_ceo_and_corporate_marketing",
    }
    assert all(runs[result.run_id].mode is RunMode.DAILY for result in results)
    assert all(runs[result.run_id].triggered_by == "cron" for result in results)
