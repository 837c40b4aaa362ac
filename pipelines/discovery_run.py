"""Command-line trigger for guarded discovery runs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from app.models.candidate import ChannelType
from app.models.discovery_run import RunMode, RunOptions, RunResult
from app.models.intent import IntentLimits, IntentOverrides
from app.services.discovery.errors import DiscoveryDisabledError, DiscoveryError
from app.services.discovery.intent_catalog import DEFAULT_DAILY_INTENTS
from app.services.discovery.runner import GuardedDiscoveryRunner, build_discovery_runner

logger = logging.getLogger("pipelines.discovery_run")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DISABLED = 2


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Run guarded lead discovery.")
    parser.add_argument("--dry-run", action="store_true", help="Simulate persistence; write nothing.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in RunMode],
        default=RunMode.MANUAL.value,
        help="Limit profile to apply.",
    )
    parser.add_argument(
        "--intent",
        action="append",
        default=[],
        dest="intents",
        help="Catalog intent id to run (repeatable).",
    )
    parser.add_argument(
        "--daily-intents",
        action="store_true",
        help=f"Run the default daily intents ({', '.join(DEFAULT_DAILY_INTENTS)}).",
    )
    parser.add_argument(
        "--country",
        action="append",
        default=[],
        dest="countries",
        help="Override an intent's target countries (ISO code, repeatable).",
    )
    parser.add_argument(
        "--channel",
        action="append",
        default=[],
        dest="channels",
        choices=[channel.value for channel in ChannelType],
        help="Channel to enable (repeatable).",
    )
    parser.add_argument("--max-companies", type=int, default=None, help="Company cap for the run.")
    parser.add_argument(
        "--query",
        action="append",
        default=[],
        dest="queries",
        help="Explicit search query for a plain run (repeatable).",
    )
    return parser.parse_args(argv)


def _summary(result: RunResult) -> dict[str, object]:
    stats = result.stats
    return {
        "intent_id": (stats.intent_config or {}).get("intent_id"),
        "run_id": result.run_id,
        "status": result.status.value,
        "success": result.success,
        "dry_run": result.dry_run,
        "total_discovered": stats.total_discovered,
        "total_after_dedupe": stats.total_after_dedupe,
        "companies_created": stats.companies_created,
        "contacts_created": stats.contacts_created,
        "leads_created": stats.leads_created,
        "stopped_reason": stats.stopped_reason,
        "channel_errors": stats.channel_errors,
        "error": result.error,
    }


async def run_cli(args: argparse.Namespace, runner: GuardedDiscoveryRunner) -> list[RunResult]:
    mode = RunMode(args.mode)
    channels = [ChannelType(name) for name in args.channels]
    intent_ids = list(args.intents)
    if args.daily_intents:
        intent_ids.extend(intent for intent in DEFAULT_DAILY_INTENTS if intent not in intent_ids)

    if not intent_ids:
        result = await runner.run(
            RunOptions(
                dry_run=args.dry_run,
                mode=mode,
                triggered_by="cli",
                queries=args.queries or None,
                channels=channels or None,
                max_companies=args.max_companies,
            )
        )
        return [result]

    overrides = IntentOverrides(
        target_countries=tuple(code.upper() for code in args.countries),
        channels=tuple(channels),
        limits=(
            IntentLimits(max_companies=args.max_companies)
            if args.max_companies is not None
            else None
        ),
    )
    results: list[RunResult] = []
    for intent_id in intent_ids:
        results.append(
            await runner.run_intent(
                intent_id,
                overrides,
                dry_run=args.dry_run,
                mode=mode,
                triggered_by="cli",
            )
        )
    return results


def main(
    argv: Sequence[str] | None = None, *, runner: GuardedDiscoveryRunner | None = None
) -> int:
    """CLI entrypoint: 0 when every run succeeded, 1 on failure, 2 when disabled."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(sys.argv[1:] if argv is None else argv)
    runner = runner or build_discovery_runner()
    try:
        results = asyncio.run(run_cli(args, runner))
    except DiscoveryDisabledError as exc:
        logger.error("Discovery runner disabled: %s (code=%s)", exc, exc.code)
        return EXIT_DISABLED
    except DiscoveryError as exc:
        logger.error("Discovery run rejected: %s (code=%s)", exc, exc.code)
        return EXIT_FAILED

    print(json.dumps([_summary(result) for result in results], indent=2))
    return EXIT_OK if all(result.success for result in results) else EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
