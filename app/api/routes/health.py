from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.routes.discovery import get_settings
from app.config import Settings
from app.services.discovery.errors import DiscoveryPersistenceError
from app.services.discovery.run_repository import InMemoryRunRepository
from app.services.discovery.runner import GuardedDiscoveryRunner, get_discovery_runner

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check(config: Settings = Depends(get_settings)):
    """Liveness only; never touches the run store."""
    return {
        "status": "healthy",
        "version": config.app_version,
        "environment": config.environment,
    }


@router.get("/ready")
async def readiness_check(
    config: Settings = Depends(get_settings),
    runner: GuardedDiscoveryRunner = Depends(get_discovery_runner),
):
    """Ready once the run store answers; reports which collaborators are configured."""
    try:
        runner.run_repository.list_recent(limit=1)
    except DiscoveryPersistenceError as exc:
        logger.error("discovery.health.store_unavailable", extra={"error": str(exc)})
        raise HTTPException(status_code=503, detail="Run store is not available") from exc

    in_memory = isinstance(runner.run_repository, InMemoryRunRepository)
    return {
        "status": "ready",
        "version": config.app_version,
        "environment": config.environment,
        "runner_enabled": runner.is_enabled(),
        "channels": [channel.value for channel in runner.config.channels],
        "search": "configured" if config.google_search_configured else "not configured",
        "run_store": "memory" if in_memory else "database",
    }
