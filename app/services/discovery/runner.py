"""Guarded discovery runner: kill switch, limits, time budget and run lifecycle."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import assert_never

from app.clients.google_search import GoogleSearchClient
from app.clients.web_fetcher import WebContentFetcher
from app.config import Settings, settings
from app.models.candidate import ChannelType
from app.models.discovery_run import (
    DiscoveryRun,
    DiscoveryRunStats,
    RunErrorEntry,
    RunLimitsUsed,
    RunMode,
    RunOptions,
    RunResult,
    RunStatus,
    StoppedReason,
)
from app.models.intent import IntentOverrides
from app.observability.metrics import MetricsReporter, metrics
from app.services.discovery.aggregator import (
    DEFAULT_CHANNELS,
    AggregatorRequest,
    AggregatorResult,
    DiscoveryAggregator,
)
from app.services.discovery.budget import CancellationToken, Clock, TimeBudget
from app.services.discovery.channels.base import normalize_criteria
from app.services.discovery.channels.factory import ChannelFactory
from app.services.discovery.errors import DiscoveryDisabledError, DiscoveryPersistenceError
from app.services.discovery.intent_catalog import DEFAULT_DAILY_INTENTS, validate_intent_id
from app.services.discovery.intent_resolver import (
    apply_intent,
    build_analysis_config,
    snapshot_intent_config,
)
from app.services.discovery.persistence import (
    DryRunSink,
    PersistenceResult,
    PersistenceSink,
    build_persistence_sink,
)
from app.services.discovery.relevance import ContentAnalyzer
from app.services.discovery.run_repository import RunRepository, build_run_repository

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_QUERIES: tuple[str, ...] = (
    "corporate clothing suppliers South Africa",
    "workwear manufacturers Johannesburg",
    "promotional clothing companies Cape Town",
    "uniform suppliers Botswana",
    "branded apparel South Africa",
    "corporate gifts Pretoria",
    "school uniform manufacturers South Africa",
    "hospitality uniforms Cape Town",
    "construction workwear suppliers",
    "branded merchandise companies Gauteng",
)

# Google Custom Search returns at most ten results per request.
MAX_RESULTS_PER_QUERY = 10

CancelPredicate = Callable[[], bool]


@dataclass(frozen=True)
class ModeLimits:
    max_companies: int
    max_leads: int
    max_queries: int
    max_runtime_seconds: int


@dataclass(frozen=True)
class RunnerConfig:
    enabled: bool
    channels: tuple[ChannelType, ...]
    daily: ModeLimits
    manual: ModeLimits
    test: ModeLimits

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> RunnerConfig:
        config = config or settings
        channels: list[ChannelType] = []
        for name in config.discovery_channel_list:
            try:
                channel = ChannelType(name)
            except ValueError:
                logger.warning("discovery.runner.unknown_channel", extra={"channel": name})
                continue
            if channel not in channels:
                channels.append(channel)
        return cls(
            enabled=config.discovery_runner_enabled,
            channels=tuple(channels) or DEFAULT_CHANNELS,
            daily=ModeLimits(
                max_companies=config.discovery_daily_max_companies,
                max_leads=config.discovery_daily_max_leads,
                max_queries=config.discovery_daily_max_queries,
                max_runtime_seconds=config.discovery_daily_max_runtime_seconds,
            ),
            manual=ModeLimits(
                max_companies=config.discovery_manual_max_companies,
                max_leads=config.discovery_manual_max_leads,
                max_queries=config.discovery_manual_max_queries,
                max_runtime_seconds=config.discovery_manual_max_runtime_seconds,
            ),
            test=ModeLimits(
                max_companies=config.discovery_test_max_companies,
                max_leads=config.discovery_test_max_leads,
                max_queries=config.discovery_test_max_queries,
                max_runtime_seconds=config.discovery_test_max_runtime_seconds,
            ),
        )

    def limits_for(self, mode: RunMode) -> ModeLimits:
        match mode:
            case RunMode.DAILY:
                return self.daily
            case RunMode.MANUAL:
                return self.manual
            case RunMode.TEST:
                return self.test
            case _:
                assert_never(mode)


@dataclass(frozen=True)
class ResolvedRunLimits:
    max_companies: int
    max_leads: int
    max_queries: int
    time_budget_ms: int
    queries: tuple[str, ...]
    channels: tuple[ChannelType, ...]

    def as_used(self) -> RunLimitsUsed:
        return RunLimitsUsed(
            max_companies=self.max_companies,
            max_leads=self.max_leads,
            max_queries=self.max_queries,
            max_runtime_seconds=self.time_budget_ms / 1000,
            channels=[channel.value for channel in self.channels],
        )


def resolve_limits(config: RunnerConfig, options: RunOptions) -> ResolvedRunLimits:
    """Caller options over mode defaults; an explicit query list also caps the query count."""
    base = config.limits_for(options.mode)
    max_queries = options.max_queries if options.max_queries is not None else base.max_queries
    explicit = normalize_criteria(options.queries)
    queries = (explicit or list(DEFAULT_DISCOVERY_QUERIES))[:max_queries]
    return ResolvedRunLimits(
        max_companies=(
            options.max_companies if options.max_companies is not None else base.max_companies
        ),
        max_leads=options.max_leads if options.max_leads is not None else base.max_leads,
        max_queries=len(queries),
        time_budget_ms=(
            options.time_budget_ms
            if options.time_budget_ms is not None
            else base.max_runtime_seconds * 1000
        ),
        queries=tuple(queries),
        channels=tuple(options.channels or config.channels),
    )


def _stopped_reason(
    *,
    cancelled: bool,
    budget: TimeBudget,
    limits: ResolvedRunLimits,
    persisted: PersistenceResult,
) -> StoppedReason | None:
    if cancelled:
        return "cancelled"
    if budget.is_expired():
        return "time_budget"
    # Observed after the sink has written; the sink itself is never interrupted.
    if persisted.companies_created and persisted.companies_created >= limits.max_companies:
        return "company_limit"
    if persisted.leads_created and persisted.leads_created >= limits.max_leads:
        return "lead_limit"
    return None


def _final_status(aggregated: AggregatorResult, cancelled: bool) -> RunStatus:
    if cancelled:
        return RunStatus.CANCELLED
    if not aggregated.success or ChannelType.GOOGLE.value in aggregated.configuration_errors:
        return RunStatus.COMPLETED_WITH_ERRORS
    return RunStatus.COMPLETED


def _run_errors(aggregated: AggregatorResult, persisted: PersistenceResult) -> list[RunErrorEntry]:
    errors = [
        RunErrorEntry(type="channel", message=message, channel=channel)
        for channel, message in aggregated.channel_errors.items()
    ]
    if aggregated.error:
        errors.append(RunErrorEntry(type="aggregator", message=aggregated.error))
    errors.extend(
        RunErrorEntry(type=entry.result_type, message=entry.error) for entry in persisted.errors
    )
    return errors


class GuardedDiscoveryRunner:
    """Owns one run end to end; the only writer of its statistics block."""

    def __init__(
        self,
        config: RunnerConfig,
        *,
        aggregator: DiscoveryAggregator,
        sink: PersistenceSink,
        run_repository: RunRepository,
        clock: Clock = time.monotonic,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._config = config
        self._aggregator = aggregator
        self._sink = sink
        self._runs = run_repository
        self._clock = clock
        self._metrics = metrics_reporter or metrics

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def run_repository(self) -> RunRepository:
        return self._runs

    def is_enabled(self) -> bool:
        return self._config.enabled

    async def run(
        self, options: RunOptions | None = None, *, should_cancel: CancelPredicate | None = None
    ) -> RunResult:
        """Execute one guarded run.

        Without ``should_cancel`` the run stops once a cancel request is
        recorded against it in the run repository.

        Raises:
            DiscoveryDisabledError: when the kill switch is off. No run record is created.
        """
        options = options or RunOptions()
        if not self.is_enabled():
            logger.warning("discovery.runner.disabled", extra={"mode": options.mode.value})
            raise DiscoveryDisabledError()

        limits = resolve_limits(self._config, options)
        run = self._runs.create(
            DiscoveryRun(
                dry_run=options.dry_run,
                mode=options.mode,
                triggered_by=options.triggered_by,
                triggered_by_id=options.triggered_by_id,
                intent_id=options.intent_id,
                intent_name=options.intent_name,
            )
        )
        budget = TimeBudget.start(limits.time_budget_ms, clock=self._clock)
        cancellation = CancellationToken(should_cancel or self._cancel_requested(run.id))
        logger.info(
            "discovery.runner.started",
            extra={
                "run_id": run.id,
                "mode": options.mode.value,
                "dry_run": options.dry_run,
                "intent_id": options.intent_id,
                "queries": len(limits.queries),
                "channels": [channel.value for channel in limits.channels],
            },
        )

        try:
            self._runs.update_status(run.id, RunStatus.RUNNING)
            if budget.is_expired():
                stats = DiscoveryRunStats(
                    stopped_early=True,
                    stopped_reason="time_budget",
                    limits_used=limits.as_used(),
                    intent_config=options.intent_config,
                    duration_ms=budget.elapsed_ms(),
                )
                return self._finish(run, RunStatus.COMPLETED, stats, options)

            aggregated = await self._aggregator.execute(
                AggregatorRequest(
                    search_criteria=list(limits.queries),
                    enabled_channels=list(limits.channels),
                    analysis_config=options.analysis_config,
                    enable_scraping=options.enable_scraping,
                    channel_options={
                        "max_results_per_query": max(
                            1, min(limits.max_companies, MAX_RESULTS_PER_QUERY)
                        )
                    },
                    cancellation=cancellation,
                )
            )
            if not aggregated.success:
                logger.error(
                    "discovery.runner.aggregation_failed",
                    extra={"run_id": run.id, "error": aggregated.error},
                )

            sink = DryRunSink() if options.dry_run else self._sink
            persisted = await sink.persist(aggregated.results)

            cancelled = aggregated.cancelled or cancellation.is_cancelled()
            reason = _stopped_reason(
                cancelled=cancelled, budget=budget, limits=limits, persisted=persisted
            )
            stats = DiscoveryRunStats(
                channel_results=aggregated.channel_results,
                channel_errors=aggregated.channel_errors,
                total_discovered=aggregated.total_before_dedupe,
                total_after_dedupe=aggregated.total_after_dedupe,
                companies_created=persisted.companies_created,
                companies_skipped=persisted.companies_skipped,
                contacts_created=persisted.contacts_created,
                contacts_skipped=persisted.contacts_skipped,
                leads_created=persisted.leads_created,
                leads_skipped=persisted.leads_skipped,
                errors=_run_errors(aggregated, persisted),
                duration_ms=budget.elapsed_ms(),
                stopped_early=reason is not None,
                stopped_reason=reason,
                limits_used=limits.as_used(),
                intent_config=options.intent_config,
            )
            return self._finish(
                run, _final_status(aggregated, cancelled), stats, options, error=aggregated.error
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.exception("discovery.runner.failed", extra={"run_id": run.id})
            stats = DiscoveryRunStats(
                errors=[RunErrorEntry(type="fatal", message=message)],
                duration_ms=budget.elapsed_ms(),
                limits_used=limits.as_used(),
                intent_config=options.intent_config,
            )
            self._metrics.alert(
                "runner.failed",
                value=1,
                threshold=1,
                severity="error",
                tags={"mode": options.mode.value},
            )
            return self._finish(run, RunStatus.FAILED, stats, options, error=message)

    def _cancel_requested(self, run_id: str) -> CancelPredicate:
        def _poll() -> bool:
            try:
                run = self._runs.get(run_id)
            except DiscoveryPersistenceError:
                logger.warning("discovery.runner.cancel_poll_failed", extra={"run_id": run_id})
                return False
            return run is not None and run.cancel_requested

        return _poll

    def _finish(
        self,
        run: DiscoveryRun,
        status: RunStatus,
        stats: DiscoveryRunStats,
        options: RunOptions,
        *,
        error: str | None = None,
    ) -> RunResult:
        self._runs.finalize(
            run.id, status, stats=stats, finished_at=datetime.now(UTC), error=error
        )
        tags = {"mode": options.mode.value, "status": status.value, "dry_run": options.dry_run}
        self._metrics.increment("runs.completed", tags=tags)
        self._metrics.timing("runs.duration_ms", stats.duration_ms, tags=tags)
        logger.info(
            "discovery.runner.finished",
            extra={
                "run_id": run.id,
                "status": status.value,
                "duration_ms": stats.duration_ms,
                "total_after_dedupe": stats.total_after_dedupe,
                "companies_created": stats.companies_created,
                "leads_created": stats.leads_created,
                "stopped_reason": stats.stopped_reason,
            },
        )
        return RunResult(
            success=status is not RunStatus.FAILED,
            run_id=run.id,
            status=status,
            dry_run=options.dry_run,
            stats=stats,
            error=error,
        )

    async def run_intent(
        self,
        intent_id: str,
        overrides: IntentOverrides | None = None,
        *,
        dry_run: bool = False,
        mode: RunMode = RunMode.MANUAL,
        triggered_by: str = "manual",
        triggered_by_id: str | None = None,
        should_cancel: CancelPredicate | None = None,
    ) -> RunResult:
        """Resolve an intent from the catalog and run it.

        Raises ``IntentNotFoundError``/``IntentInactiveError`` before any run is recorded.
        """
        if not self.is_enabled():
            raise DiscoveryDisabledError()
        intent = validate_intent_id(intent_id)
        resolved = apply_intent(intent, overrides)
        options = RunOptions(
            dry_run=dry_run,
            mode=mode,
            triggered_by=triggered_by,
            triggered_by_id=triggered_by_id,
            intent_id=intent.id,
            intent_name=intent.name,
            queries=list(resolved.queries),
            channels=list(resolved.channels),
            max_companies=resolved.limits.max_companies,
            max_leads=resolved.limits.max_leads,
            max_queries=resolved.limits.max_queries,
            time_budget_ms=resolved.limits.time_budget_ms,
            intent_config=snapshot_intent_config(resolved),
            analysis_config=build_analysis_config(intent, resolved),
            enable_scraping=True,
        )
        return await self.run(options, should_cancel=should_cancel)

    async def run_daily_intents(
        self,
        intent_ids: Sequence[str] = DEFAULT_DAILY_INTENTS,
        *,
        dry_run: bool = False,
        triggered_by: str = "cron",
        overrides: IntentOverrides | None = None,
    ) -> list[RunResult]:
        """One run per intent, in order; each is recorded separately."""
        results: list[RunResult] = []
        for intent_id in intent_ids:
            results.append(
                await self.run_intent(
                    intent_id,
                    overrides,
                    dry_run=dry_run,
                    mode=RunMode.DAILY,
                    triggered_by=triggered_by,
                )
            )
        return results


def build_discovery_runner(config: Settings | None = None) -> GuardedDiscoveryRunner:
    """Wire a runner from settings: search client, fetcher, stores and metrics."""
    config = config or settings
    reporter = MetricsReporter(config)
    factory = ChannelFactory(
        search_client=GoogleSearchClient.from_settings(config),
        fetcher=WebContentFetcher(
            timeout_ms=config.discovery_fetch_timeout_ms,
            user_agent=config.discovery_user_agent,
        ),
        analyzer=ContentAnalyzer(),
        results_per_query=config.discovery_results_per_query,
        fetch_concurrency=config.discovery_fetch_concurrency,
        fetch_timeout_ms=config.discovery_fetch_timeout_ms,
        search_max_attempts=config.discovery_search_max_attempts,
        linkedin_access_token=config.linkedin_access_token,
        social_monitoring_token=config.social_monitoring_token,
        metrics_reporter=reporter,
    )
    if not config.google_search_configured:
        logger.warning("discovery.runner.search_not_configured")
    return GuardedDiscoveryRunner(
        RunnerConfig.from_settings(config),
        aggregator=DiscoveryAggregator(factory, metrics_reporter=reporter),
        sink=build_persistence_sink(config=config),
        run_repository=build_run_repository(config=config),
        metrics_reporter=reporter,
    )


_RUNNER_INSTANCE: GuardedDiscoveryRunner | None = None


def get_discovery_runner() -> GuardedDiscoveryRunner:
    """Singleton accessor used by API routes."""
    global _RUNNER_INSTANCE  # noqa: PLW0603
    if _RUNNER_INSTANCE is None:
        _RUNNER_INSTANCE = build_discovery_runner()
    return _RUNNER_INSTANCE
