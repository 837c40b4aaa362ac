"""API endpoints for triggering and inspecting discovery runs."""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.config import Settings, settings
from app.models.candidate import ChannelType
from app.models.discovery_run import DiscoveryRun, RunMode, RunOptions, RunResult
from app.models.intent import DiscoveryIntent, IntentLimits, IntentOverrides
from app.services.discovery.errors import DiscoveryError, RunNotFoundError, http_status_for
from app.services.discovery.intent_catalog import get_active_intents
from app.services.discovery.runner import GuardedDiscoveryRunner, get_discovery_runner

router = APIRouter()
logger = logging.getLogger(__name__)


class DiscoveryJobRequest(BaseModel):
    """Scheduler payload for an autonomous run."""

    dry_run: bool = False
    mode: RunMode = RunMode.DAILY
    intent_id: str | None = Field(
        default=None, description="Run a catalog intent instead of the default queries."
    )
    max_companies: int | None = Field(default=None, ge=0)
    channels: list[ChannelType] | None = None


def get_settings() -> Settings:
    return settings


def require_job_secret(
    x_job_secret: str | None = Header(default=None, alias="x-job-secret"),
    config: Settings = Depends(get_settings),
) -> None:
    expected = config.cron_job_secret
    if not expected:
        return
    if not x_job_secret or not secrets.compare_digest(x_job_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid job secret")


@router.post(
    "/jobs/discovery", response_model=RunResult, dependencies=[Depends(require_job_secret)]
)
async def trigger_discovery_job(
    payload: DiscoveryJobRequest | None = Body(default=None),
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
) -> RunResult:
    """Scheduled entry point; 403 while the kill switch is off."""
    payload = payload or DiscoveryJobRequest()
    try:
        if payload.intent_id:
            overrides = IntentOverrides(
                channels=tuple(payload.channels or ()),
                limits=(
                    IntentLimits(max_companies=payload.max_companies)
                    if payload.max_companies is not None
                    else None
                ),
            )
            return await runner.run_intent(
                payload.intent_id,
                overrides,
                dry_run=payload.dry_run,
                mode=payload.mode,
                triggered_by="cron",
            )
        return await runner.run(
            RunOptions(
                dry_run=payload.dry_run,
                mode=payload.mode,
                triggered_by="cron",
                max_companies=payload.max_companies,
                channels=payload.channels,
            )
        )
    except DiscoveryError as exc:
        logger.warning(
            "discovery.api.job_rejected", extra={"code": exc.code, "intent_id": payload.intent_id}
        )
        raise HTTPException(status_code=http_status_for(exc.code), detail=str(exc)) from exc


@router.get("/discovery/intents", response_model=list[DiscoveryIntent])
async def list_discovery_intents() -> list[DiscoveryIntent]:
    """Active intents available for manual runs."""
    return get_active_intents()


@router.post("/discovery/intents/{intent_id}/run", response_model=RunResult)
async def run_discovery_intent(
    intent_id: str,
    overrides: IntentOverrides | None = Body(default=None),
    *,
    dry_run: bool = Query(False, description="Simulate persistence; nothing is written."),
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
) -> RunResult:
    try:
        return await runner.run_intent(
            intent_id,
            overrides,
            dry_run=dry_run,
            mode=RunMode.MANUAL,
            triggered_by="api",
        )
    except DiscoveryError as exc:
        logger.warning(
            "discovery.api.intent_rejected", extra={"code": exc.code, "intent_id": intent_id}
        )
        raise HTTPException(status_code=http_status_for(exc.code), detail=str(exc)) from exc


@router.get("/discovery/runs", response_model=list[DiscoveryRun])
async def list_discovery_runs(
    limit: int = Query(20, ge=1, le=100),
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
) -> list[DiscoveryRun]:
    return runner.run_repository.list_recent(limit=limit)


@router.get("/discovery/runs/{run_id}", response_model=DiscoveryRun)
async def get_discovery_run(
    run_id: str,
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
) -> DiscoveryRun:
    run = runner.run_repository.get(run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run



class CancelRunResponse(BaseModel):
    success: bool = True
    run_id: str
    cancel_requested_at: datetime
    message: str = "Cancel requested. The run will stop at the next checkpoint."


@router.post(
    "/discovery/runs/{run_id}/cancel",
    response_model=CancelRunResponse,
    dependencies=[Depends(require_job_secret)],
)
async def cancel_discovery_run(
    run_id: str,
    x_requested_by: str | None = Header(default=None, alias="x-requested-by"),
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
) -> CancelRunResponse:
    """Flag a pending or running run; the runner stops at its next checkpoint.

    404 for an unknown run, 400 for a finished run or a repeated request.
    """
    try:
        run = runner.run_repository.request_cancel(
            run_id, requested_at=datetime.now(UTC), requested_by=x_requested_by or "api"
        )
    except DiscoveryError as exc:
        logger.warning("discovery.api.cancel_rejected", extra={"code": exc.code, "run_id": run_id})
        raise HTTPException(status_code=http_status_for(exc.code), detail=str(exc)) from exc
    logger.info(
        "discovery.api.cancel_requested",
        extra={"run_id": run_id, "requested_by": run.cancel_requested_by},
    )
    return CancelRunResponse(run_id=run.id, cancel_requested_at=run.cancel_requested_at)
