from __future__ import annotations

import json

import pytest

from app.models.candidate import ChannelType
from app.services.discovery.aggregator import DiscoveryAggregator
from app.services.discovery.channels.factory import ChannelFactory
from app.services.discovery.persistence import InMemoryDiscoverySink
from app.services.discovery.run_repository import InMemoryRunRepository
from app.services.discovery.runner import GuardedDiscoveryRunner, ModeLimits, RunnerConfig
from pipelines.discovery_run import EXIT_DISABLED, EXIT_FAILED, EXIT_OK, main, parse_args
from tests.helpers.fakes import ManualClock, StubFetcher, StubSearchClient, search_item

_LIMITS = ModeLimits(max_companies=5, max_leads=5, max_queries=2, max_runtime_seconds=60)


class _FailingSink:
    async def persist(self, candidates):
        raise RuntimeError("disk full")


def _build_runner(
    client: StubSearchClient | None = None, *, enabled: bool = True, sink=None
) -> GuardedDiscoveryRunner:
    factory = ChannelFactory(search_client=client or StubSearchClient(), fetcher=StubFetcher())
    return GuardedDiscoveryRunner(
        RunnerConfig(
            enabled=enabled,
            channels=(ChannelType.GOOGLE,),
            daily=_LIMITS,
            manual=_LIMITS,
            test=_LIMITS,
        ),
        aggregator=DiscoveryAggregator(factory),
        sink=sink or InMemoryDiscoverySink(),
        run_repository=InMemoryRunRepository(),
        clock=ManualClock(),
    )


def test_parse_args_collects_repeatable_flags():
    args = parse_args(
        ["--intent", "agencies_all", "--intent", "schools_all", "--country", "bw", "--dry-run"]
    )

    assert args.intents == ["agencies_all", "schools_all"]
    assert args.countries == ["bw"]
    assert args.dry_run is True
    assert args.mode == "manual"
    assert args.channels == []


def test_plain_run_prints_summary_and_exits_ok(capsys: pytest.CaptureFixture[str]):
    client = StubSearchClient(
        {"uniform suppliers company": [search_item("https://kit.co.za", "Kit Uniforms")]}
    )
    runner = _build_runner(client)

    exit_code = main(["--query", "uniform suppliers", "--mode", "test"], runner=runner)

    assert exit_code == EXIT_OK
    summaries = json.loads(capsys.readouterr().out)
    assert len(summaries) == 1
    assert summaries[0]["status"] == "completed"
    assert summaries[0]["companies_created"] == 1
    assert summaries[0]["intent_id"] is None
    assert runner.run_repository.list_recent()[0].triggered_by == "cli"


def test_intent_runs_are_summarised_per_intent(capsys: pytest.CaptureFixture[str]):
    runner = _build_runner()

    exit_code = main(["--intent", "schools_all", "--daily-intents", "--dry-run"], runner=runner)

    assert exit_code == EXIT_OK
    summaries = json.loads(capsys.readouterr().out)
    assert [summary["intent_id"] for summary in summaries] == [
        "schools_all",
        "agencies_all",
        "tenders_uniforms_merch",
        "businesses_sme_ceo_and_corporate_marketing",
    ]
    assert all(summary["dry_run"] for summary in summaries)


def test_disabled_runner_exits_with_dedicated_code(capsys: pytest.CaptureFixture[str]):
    exit_code = main(["--dry-run"], runner=_build_runner(enabled=False))

    assert exit_code == EXIT_DISABLED
    assert capsys.readouterr().out == ""


def test_unknown_intent_exits_failed():
    assert main(["--intent", "does_not_exist"], runner=_build_runner()) == EXIT_FAILED


def test_failed_run_exits_failed(capsys: pytest.CaptureFixture[str]):
    client = StubSearchClient(
        {"uniform suppliers company": [search_item("https://kit.co.za", "Kit Uniforms")]}
    )

    exit_code = main(
        ["--query", "uniform suppliers"], runner=_build_runner(client, sink=_FailingSink())
    )

    assert exit_code == EXIT_FAILED
    summaries = json.loads(capsys.readouterr().out)
    assert summaries[0]["status"] == "failed"
    assert summaries[0]["error"] == "disk full"
