"""Discovery run lifecycle, options and statistics."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, conint

from app.models.candidate import ChannelType
from app.models.relevance import AnalysisConfig


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    def can_transition_to(self, target: RunStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_TERMINAL_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.COMPLETED_WITH_ERRORS,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
    }
)

_ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.FAILED, RunStatus.CANCELLED}),
    RunStatus.RUNNING: _TERMINAL_STATUSES,
    RunStatus.COMPLETED: frozenset(),
    RunStatus.COMPLETED_WITH_ERRORS: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


class RunMode(str, Enum):
    DAILY = "daily"
    MANUAL = "manual"
    TEST = "test"


StoppedReason = Literal["time_budget", "company_limit", "lead_limit", "cancelled"]


class RunLimitsUsed(BaseModel):
    max_companies: int
    max_leads: int
    max_queries: int
    max_runtime_seconds: float
    channels: list[str]


class RunErrorEntry(BaseModel):
    type: str
    message: str
    channel: str | None = None


class DiscoveryRunStats(BaseModel):
    """Statistics block owned by exactly one run."""

    channel_results: dict[str, int] = Field(default_factory=dict)
    channel_errors: dict[str, str] = Field(default_factory=dict)
    total_discovered: int = 0
    total_after_dedupe: int = 0
    companies_created: int = 0
    companies_skipped: int = 0
    contacts_created: int = 0
    contacts_skipped: int = 0
    leads_created: int = 0
    leads_skipped: int = 0
    errors: list[RunErrorEntry] = Field(default_factory=list)
    duration_ms: int = 0
    stopped_early: bool = False
    stopped_reason: StoppedReason | None = None
    limits_used: RunLimitsUsed | None = None
    intent_config: dict[str, Any] | None = None


class DiscoveryRun(BaseModel):
    """Audit record for one guarded run."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    status: RunStatus = RunStatus.PENDING
    dry_run: bool = False
    mode: RunMode = RunMode.DAILY
    triggered_by: str = "unknown"
    triggered_by_id: str | None = None
    intent_id: str | None = None
    intent_name: str | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime | None = None
    stats: DiscoveryRunStats | None = None
    error: str | None = None
    cancel_requested_at: datetime | None = None
    cancel_requested_by: str | None = None

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_requested_at is not None


class RunOptions(BaseModel):
    """Invocation options; unset fields defer to mode defaults."""

    dry_run: bool = False
    mode: RunMode = RunMode.DAILY
    triggered_by: str = "unknown"
    triggered_by_id: str | None = None
    intent_id: str | None = None
    intent_name: str | None = None
    queries: list[str] | None = None
    channels: list[ChannelType] | None = None
    max_companies: conint(ge=0) | None = None
    max_leads: conint(ge=0) | None = None
    max_queries: conint(ge=0) | None = None
    time_budget_ms: conint(ge=0) | None = None
    intent_config: dict[str, Any] | None = None
    analysis_config: AnalysisConfig | None = None
    enable_scraping: bool | None = None


class RunResult(BaseModel):
    success: bool
    run_id: str
    status: RunStatus
    dry_run: bool
    stats: DiscoveryRunStats
    error: str | None = None
