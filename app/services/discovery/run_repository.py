"""Storage for discovery run audit records."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import Settings, settings
from app.models.discovery_run import DiscoveryRun, DiscoveryRunStats, RunStatus
from app.models.records import DiscoveryRunRecord
from app.observability.metrics import metrics
from app.services.discovery.database import create_sync_engine
from app.services.discovery.errors import (
    DiscoveryPersistenceError,
    RunNotFoundError,
    RunNotCancellableError,
    RunStateError,
)

logger = logging.getLogger(__name__)


class RunRepository(Protocol):
    """Persistence contract for discovery runs.

    Status only moves forward through ``RunStatus``; a terminal run is immutable.
    """

    def create(self, run: DiscoveryRun) -> DiscoveryRun:
        ...

    def update_status(self, run_id: str, status: RunStatus) -> DiscoveryRun:
        ...

    def finalize(
        self,
        run_id: str,
        status: RunStatus,
        *,
        stats: DiscoveryRunStats,
        finished_at: datetime,
        error: str | None = None,
    ) -> DiscoveryRun:
        ...

    def request_cancel(
        self, run_id: str, *, requested_at: datetime, requested_by: str | None = None
    ) -> DiscoveryRun:
        ...

    def get(self, run_id: str) -> DiscoveryRun | None:
        ...

    def list_recent(self, *, limit: int = 20) -> list[DiscoveryRun]:
        ...


def _check_transition(run_id: str, current: RunStatus, target: RunStatus) -> None:
    if not current.can_transition_to(target):
        raise RunStateError(
            f"Run {run_id} cannot move from {current.value} to {target.value}"
        )


def _check_final(target: RunStatus) -> None:
    if not target.is_terminal:
        raise RunStateError(f"Cannot finalize a run with non-terminal status {target.value}")


_CANCELLABLE_STATUSES = frozenset({RunStatus.PENDING, RunStatus.RUNNING})


def _check_cancellable(
    run_id: str, status: RunStatus, cancel_requested_at: datetime | None
) -> None:
    if status not in _CANCELLABLE_STATUSES:
        raise RunNotCancellableError(
            run_id,
            f'Cannot cancel run with status "{status.value}". '
            "Only running or pending runs can be cancelled.",
        )
    if cancel_requested_at is not None:
        raise RunNotCancellableError(run_id, "Cancel already requested for this run")


class InMemoryRunRepository(RunRepository):
    """Thread-safe repository used for local development and tests."""

    def __init__(self) -> None:
        self._runs: dict[str, DiscoveryRun] = {}
        self._lock = Lock()

    def create(self, run: DiscoveryRun) -> DiscoveryRun:
        with self._lock:
            if run.id in self._runs:
                raise DiscoveryPersistenceError(f"Discovery run already exists: {run.id}")
            self._runs[run.id] = run
        logger.info(
            "discovery.runs.created",
            extra={"run_id": run.id, "mode": run.mode.value, "backend": "memory"},
        )
        return run

    def update_status(self, run_id: str, status: RunStatus) -> DiscoveryRun:
        with self._lock:
            run = self._require(run_id)
            _check_transition(run_id, run.status, status)
            updated = run.model_copy(update={"status": status})
            self._runs[run_id] = updated
        return updated

    def finalize(
        self,
        run_id: str,
        status: RunStatus,
        *,
        stats: DiscoveryRunStats,
        finished_at: datetime,
        error: str | None = None,
    ) -> DiscoveryRun:
        _check_final(status)
        with self._lock:
            run = self._require(run_id)
            _check_transition(run_id, run.status, status)
            updated = run.model_copy(
                update={
                    "status": status,
                    "stats": stats,
                    "finished_at": finished_at,
                    "error": error,
                }
            )
            self._runs[run_id] = updated
        metrics.increment("runs.finalized", tags={"status": status.value, "repository": "memory"})
        return updated

    def request_cancel(
        self, run_id: str, *, requested_at: datetime, requested_by: str | None = None
    ) -> DiscoveryRun:
        with self._lock:
            run = self._require(run_id)
            _check_cancellable(run_id, run.status, run.cancel_requested_at)
            updated = run.model_copy(
                update={"cancel_requested_at": requested_at, "cancel_requested_by": requested_by}
            )
            self._runs[run_id] = updated
        logger.info(
            "discovery.runs.cancel_requested",
            extra={"run_id": run_id, "requested_by": requested_by, "backend": "memory"},
        )
        return updated

    def get(self, run_id: str) -> DiscoveryRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def list_recent(self, *, limit: int = 20) -> list[DiscoveryRun]:
        with self._lock:
            runs = list(self._runs.values())
        runs.sort(key=lambda run: run.started_at, reverse=True)
        return runs[: max(0, limit)]

    def _require(self, run_id: str) -> DiscoveryRun:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run


class SqlModelRunRepository(RunRepository):
    """SQLModel-backed repository persisting runs to Postgres or SQLite."""

    def __init__(self, engine: Engine, *, backend: str = "postgres") -> None:
        self._engine = engine
        self._metrics_tags = {"repository": backend}

    @classmethod
    def from_url(
        cls,
        database_url: str,
        *,
        config: Settings | None = None,
        auto_create_schema: bool = False,
    ) -> SqlModelRunRepository:
        engine, backend = create_sync_engine(
            database_url, config=config, auto_create_schema=auto_create_schema
        )
        return cls(engine, backend=backend)

    def dispose(self) -> None:
        self._engine.dispose()

    def create(self, run: DiscoveryRun) -> DiscoveryRun:
        record = DiscoveryRunRecord.from_run(run)
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                logger.info(
                    "discovery.runs.created",
                    extra={
                        "run_id": record.id,
                        "mode": record.mode,
                        "backend": self._metrics_tags["repository"],
                    },
                )
                return record.to_run()
        except SQLAlchemyError as exc:
            logger.exception("discovery.runs.error", extra={"run_id": run.id, "operation": "create"})
            raise DiscoveryPersistenceError("Failed to create discovery run.") from exc

    def update_status(self, run_id: str, status: RunStatus) -> DiscoveryRun:
        try:
            with self._session() as session:
                record = self._require(session, run_id)
                _check_transition(run_id, RunStatus(record.status), status)
                record.status = status.value
                session.add(record)
                session.commit()
                session.refresh(record)
                return record.to_run()
        except SQLAlchemyError as exc:
            logger.exception(
                "discovery.runs.error", extra={"run_id": run_id, "operation": "update_status"}
            )
            raise DiscoveryPersistenceError("Failed to update discovery run status.") from exc

    def finalize(
        self,
        run_id: str,
        status: RunStatus,
        *,
        stats: DiscoveryRunStats,
        finished_at: datetime,
        error: str | None = None,
    ) -> DiscoveryRun:
        _check_final(status)
        try:
            with self._session() as session:
                record = self._require(session, run_id)
                _check_transition(run_id, RunStatus(record.status), status)
                record.status = status.value
                record.finished_at = finished_at
                record.error = error
                record.apply_stats(stats)
                session.add(record)
                session.commit()
                session.refresh(record)
                metrics.increment(
                    "runs.finalized", tags={"status": status.value, **self._metrics_tags}
                )
                return record.to_run()
        except SQLAlchemyError as exc:
            logger.exception("discovery.runs.error", extra={"run_id": run_id, "operation": "finalize"})
            raise DiscoveryPersistenceError("Failed to finalize discovery run.") from exc

    def request_cancel(
        self, run_id: str, *, requested_at: datetime, requested_by: str | None = None
    ) -> DiscoveryRun:
        try:
            with self._session() as session:
                record = self._require(session, run_id)
                _check_cancellable(run_id, RunStatus(record.status), record.cancel_requested_at)
                record.cancel_requested_at = requested_at
                record.cancel_requested_by = requested_by
                session.add(record)
                session.commit()
                session.refresh(record)
                logger.info(
                    "discovery.runs.cancel_requested",
                    extra={
                        "run_id": run_id,
                        "requested_by": requested_by,
                        "backend": self._metrics_tags["repository"],
                    },
                )
                return record.to_run()
        except SQLAlchemyError as exc:
            logger.exception(
                "discovery.runs.error", extra={"run_id": run_id, "operation": "request_cancel"}
            )
            raise DiscoveryPersistenceError(
                "Failed to request discovery run cancellation."
            ) from exc

    def get(self, run_id: str) -> DiscoveryRun | None:
        try:
            with self._session() as session:
                record = session.get(DiscoveryRunRecord, run_id)
                return record.to_run() if record is not None else None
        except SQLAlchemyError as exc:  # pragma: no cover - defensive guard
            logger.exception("discovery.runs.error", extra={"run_id": run_id, "operation": "get"})
            raise DiscoveryPersistenceError("Failed to load discovery run.") from exc

    def list_recent(self, *, limit: int = 20) -> list[DiscoveryRun]:
        try:
            with self._session() as session:
                statement = (
                    select(DiscoveryRunRecord)
                    .order_by(DiscoveryRunRecord.started_at.desc())
                    .limit(max(0, limit))
                )
                return [record.to_run() for record in session.exec(statement).all()]
        except SQLAlchemyError as exc:  # pragma: no cover - defensive guard
            logger.exception("discovery.runs.error", extra={"operation": "list_recent"})
            raise DiscoveryPersistenceError("Failed to list discovery runs.") from exc

    def _require(self, session: Session, run_id: str) -> DiscoveryRunRecord:
        record = session.get(DiscoveryRunRecord, run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return record

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session


def build_run_repository(
    database_url: str | None = None, *, config: Settings | None = None
) -> RunRepository:
    """Instantiate a RunRepository using DATABASE_URL when available."""
    config = config or settings
    resolved_url = database_url or config.database_url
    if not resolved_url:
        logger.info("discovery.runs.initialized", extra={"backend": "memory"})
        return InMemoryRunRepository()
    try:
        repository = SqlModelRunRepository.from_url(resolved_url, config=config)
        logger.info("discovery.runs.initialized", extra={"backend": "database"})
        return repository
    except Exception:
        logger.exception("discovery.runs.init_failed", extra={"backend": "database"})
        raise
