import logging
import time
from contextlib import asynccontextmanager

try:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
except ModuleNotFoundError:  # Sentry optional in local/test envs
    sentry_sdk = None
    FastApiIntegration = None
    LoggingIntegration = None
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import discovery, health
from app.config import Settings, settings
from app.services.discovery.errors import DiscoveryError, http_status_for

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def init_error_reporting(config: Settings) -> bool:
    """Start Sentry when a DSN is configured and the SDK is installed."""
    if not config.sentry_dsn:
        return False
    if sentry_sdk is None or FastApiIntegration is None or LoggingIntegration is None:
        logger.warning("discovery.app.sentry_unavailable")
        return False
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=config.sentry_traces_sample_rate,
        environment=config.environment,
        release=f"{config.app_name}@{config.app_version}",
    )
    logger.info("discovery.app.sentry_initialized")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the discovery configuration the process starts with."""
    logger.info(
        "discovery.app.starting",
        extra={
            "app": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "runner_enabled": settings.discovery_runner_enabled,
            "channels": settings.discovery_channel_list,
            "store": "database" if settings.database_url else "memory",
        },
    )
    init_error_reporting(settings)
    if not settings.discovery_runner_enabled:
        logger.warning("discovery.app.runner_disabled")
    if not settings.google_search_configured:
        logger.warning("discovery.app.search_not_configured")
    if not settings.cron_job_secret:
        logger.warning("discovery.app.job_endpoint_unprotected")

    yield

    logger.info("discovery.app.shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Guarded lead discovery runs over search channels",
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["*"] if settings.debug else ["localhost", "127.0.0.1", "testserver"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "discovery.app.request",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )
    return response


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    """Errors that escape a route still answer with the status their code names."""
    logger.warning(
        "discovery.app.unhandled_error", extra={"path": request.url.path, "code": exc.code}
    )
    return JSONResponse(
        status_code=http_status_for(exc.code), content={"detail": str(exc), "code": exc.code}
    )


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(discovery.router, prefix="/api", tags=["discovery"])


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "runner_enabled": settings.discovery_runner_enabled,
    }
