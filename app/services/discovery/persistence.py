"""Persistence sinks that turn deduplicated candidates into durable records.

Every sink processes companies, then contacts, then leads, so contacts and leads
can link to companies created earlier in the same batch. Writes are idempotent:
an already-stored entity is counted as skipped, never duplicated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from threading import Lock
from typing import Literal, Protocol, assert_never
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import Settings, settings
from app.models.candidate import Candidate, CompanyCandidate, ContactCandidate, LeadCandidate
from app.models.records import CompanyRecord, ContactRecord, LeadRecord
from app.observability.metrics import metrics
from app.services.discovery.database import create_sync_engine

logger = logging.getLogger(__name__)

ResultType = Literal["company", "contact", "lead", "general"]

LEAD_EMAIL_REQUIRED = "Lead skipped: email is required (no contact or company email found)"


class PersistenceErrorEntry(BaseModel):
    result_type: ResultType
    error: str


class PersistenceResult(BaseModel):
    companies_created: int = 0
    companies_skipped: int = 0
    contacts_created: int = 0
    contacts_skipped: int = 0
    leads_created: int = 0
    leads_skipped: int = 0
    errors: list[PersistenceErrorEntry] = Field(default_factory=list)
    success: bool = True

    def record_error(self, result_type: ResultType, error: str) -> None:
        self.errors.append(PersistenceErrorEntry(result_type=result_type, error=error))
        self.success = False


class PersistenceSink(Protocol):
    """Contract consumed by the runner."""

    async def persist(self, candidates: Sequence[Candidate]) -> PersistenceResult:
        ...


def order_for_persistence(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Stable company -> contact -> lead ordering."""
    return sorted(candidates, key=_persistence_rank)


def _persistence_rank(candidate: Candidate) -> int:
    match candidate:
        case CompanyCandidate():
            return 0
        case ContactCandidate():
            return 1
        case LeadCandidate():
            return 2
        case _:
            assert_never(candidate)


def lead_email(candidate: LeadCandidate) -> str | None:
    """Contact email first, then the company's first published email."""
    if candidate.contact is not None and candidate.contact.email:
        return candidate.contact.email
    company = candidate.company
    if company is not None and company.contact_channels and company.contact_channels.emails:
        return company.contact_channels.emails[0]
    return None


def _company_record(candidate: CompanyCandidate) -> CompanyRecord:
    return CompanyRecord(
        name=candidate.name,
        website=candidate.website,
        industry=candidate.industry,
        country=candidate.country,
        services=list(candidate.services),
        contact_channels=(
            candidate.contact_channels.model_dump(mode="json")
            if candidate.contact_channels
            else None
        ),
        discovery_source=candidate.discovery_metadata.discovery_source.value,
        discovery_metadata=candidate.discovery_metadata.model_dump(mode="json"),
    )


def _contact_record(candidate: ContactCandidate, company_id: UUID | None) -> ContactRecord:
    return ContactRecord(
        name=candidate.display_name,
        email=candidate.email,
        phone=candidate.phone,
        role=candidate.role,
        profile_url=candidate.profile_url,
        company_name=candidate.company_name,
        company_id=company_id,
        discovery_source=candidate.discovery_metadata.discovery_source.value,
        discovery_metadata=candidate.discovery_metadata.model_dump(mode="json"),
    )


def _lead_record(
    candidate: LeadCandidate,
    email: str,
    *,
    company_id: UUID | None,
    contact_id: UUID | None,
) -> LeadRecord:
    contact = candidate.contact
    company = candidate.company
    return LeadRecord(
        email=email,
        name=contact.display_name if contact is not None else None,
        company_name=company.name if company is not None else None,
        company_id=company_id,
        contact_id=contact_id,
        source=candidate.source.value,
        additional_metadata=candidate.additional_metadata.model_dump(mode="json"),
    )


def _same(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and left.strip().lower() == right.strip().lower()


class DryRunSink:
    """Counts every candidate as skipped and writes nothing."""

    async def persist(self, candidates: Sequence[Candidate]) -> PersistenceResult:
        result = PersistenceResult()
        for candidate in candidates:
            match candidate:
                case CompanyCandidate():
                    result.companies_skipped += 1
                case ContactCandidate():
                    result.contacts_skipped += 1
                case LeadCandidate():
                    result.leads_skipped += 1
                case _:
                    assert_never(candidate)
        logger.info(
            "discovery.sink.dry_run",
            extra={
                "companies_skipped": result.companies_skipped,
                "contacts_skipped": result.contacts_skipped,
                "leads_skipped": result.leads_skipped,
            },
        )
        return result


class InMemoryDiscoverySink:
    """Thread-safe sink used for local development and tests."""

    backend = "memory"

    def __init__(self) -> None:
        self.companies: list[CompanyRecord] = []
        self.contacts: list[ContactRecord] = []
        self.leads: list[LeadRecord] = []
        self._lock = Lock()

    async def persist(self, candidates: Sequence[Candidate]) -> PersistenceResult:
        result = PersistenceResult()
        with self._lock:
            for candidate in order_for_persistence(candidates):
                try:
                    self._persist_one(candidate, result)
                except Exception as exc:
                    logger.exception(
                        "discovery.sink.record_failed",
                        extra={"result_type": candidate.type, "backend": self.backend},
                    )
                    result.record_error(candidate.type, str(exc) or type(exc).__name__)
        _report(result, self.backend)
        return result

    def _persist_one(self, candidate: Candidate, result: PersistenceResult) -> None:
        match candidate:
            case CompanyCandidate():
                if self._find_company(candidate.website, candidate.name) is not None:
                    result.companies_skipped += 1
                    return
                self.companies.append(_company_record(candidate))
                result.companies_created += 1
            case ContactCandidate():
                if self._contact_exists(candidate):
                    result.contacts_skipped += 1
                    return
                company = self._find_company(None, candidate.company_name)
                self.contacts.append(
                    _contact_record(candidate, company.id if company is not None else None)
                )
                result.contacts_created += 1
            case LeadCandidate():
                email = lead_email(candidate)
                if email is None:
                    result.leads_skipped += 1
                    result.record_error("lead", LEAD_EMAIL_REQUIRED)
                    return
                if any(_same(lead.email, email) for lead in self.leads):
                    result.leads_skipped += 1
                    return
                company = (
                    self._find_company(candidate.company.website, candidate.company.name)
                    if candidate.company is not None
                    else None
                )
                contact = next(
                    (entry for entry in self.contacts if _same(entry.email, email)), None
                )
                self.leads.append(
                    _lead_record(
                        candidate,
                        email,
                        company_id=company.id if company is not None else None,
                        contact_id=contact.id if contact is not None else None,
                    )
                )
                result.leads_created += 1
            case _:
                assert_never(candidate)

    def _find_company(self, website: str | None, name: str | None) -> CompanyRecord | None:
        for record in self.companies:
            if _same(record.website, website) or _same(record.name, name):
                return record
        return None

    def _contact_exists(self, candidate: ContactCandidate) -> bool:
        for record in self.contacts:
            if candidate.email:
                if _same(record.email, candidate.email):
                    return True
                continue
            if candidate.profile_url:
                if _same(record.profile_url, candidate.profile_url):
                    return True
                continue
            if _same(record.name, candidate.display_name) and (
                _same(record.company_name, candidate.company_name)
                or (not record.company_name and not candidate.company_name)
            ):
                return True
        return False


class SqlModelDiscoverySink:
    """SQLModel-backed sink; each record commits on its own."""

    def __init__(self, engine: Engine, *, backend: str = "postgres") -> None:
        self._engine = engine
        self.backend = backend

    @classmethod
    def from_url(
        cls,
        database_url: str,
        *,
        config: Settings | None = None,
        auto_create_schema: bool = False,
    ) -> SqlModelDiscoverySink:
        engine, backend = create_sync_engine(
            database_url, config=config, auto_create_schema=auto_create_schema
        )
        return cls(engine, backend=backend)

    def dispose(self) -> None:
        self._engine.dispose()

    async def persist(self, candidates: Sequence[Candidate]) -> PersistenceResult:
        ordered = order_for_persistence(candidates)
        result = await asyncio.to_thread(self._persist_sync, ordered)
        _report(result, self.backend)
        return result

    def _persist_sync(self, candidates: list[Candidate]) -> PersistenceResult:
        result = PersistenceResult()
        with self._session() as session:
            for candidate in candidates:
                try:
                    self._persist_one(session, candidate, result)
                except Exception as exc:
                    session.rollback()
                    logger.exception(
                        "discovery.sink.record_failed",
                        extra={"result_type": candidate.type, "backend": self.backend},
                    )
                    result.record_error(candidate.type, _error_message(exc))
        return result

    def _persist_one(self, session: Session, candidate: Candidate, result: PersistenceResult) -> None:
        match candidate:
            case CompanyCandidate():
                if self._find_company(session, candidate.website, candidate.name) is not None:
                    result.companies_skipped += 1
                    return
                session.add(_company_record(candidate))
                session.commit()
                result.companies_created += 1
            case ContactCandidate():
                if self._find_contact(session, candidate) is not None:
                    result.contacts_skipped += 1
                    return
                company = self._find_company(session, None, candidate.company_name)
                session.add(_contact_record(candidate, company.id if company is not None else None))
                session.commit()
                result.contacts_created += 1
            case LeadCandidate():
                email = lead_email(candidate)
                if email is None:
                    result.leads_skipped += 1
                    result.record_error("lead", LEAD_EMAIL_REQUIRED)
                    return
                existing = session.exec(
                    select(LeadRecord).where(func.lower(LeadRecord.email) == email.strip().lower())
                ).first()
                if existing is not None:
                    result.leads_skipped += 1
                    return
                company = (
                    self._find_company(session, candidate.company.website, candidate.company.name)
                    if candidate.company is not None
                    else None
                )
                contact = session.exec(
                    select(ContactRecord).where(
                        func.lower(ContactRecord.email) == email.strip().lower()
                    )
                ).first()
                session.add(
                    _lead_record(
                        candidate,
                        email,
                        company_id=company.id if company is not None else None,
                        contact_id=contact.id if contact is not None else None,
                    )
                )
                session.commit()
                result.leads_created += 1
            case _:
                assert_never(candidate)

    def _find_company(
        self, session: Session, website: str | None, name: str | None
    ) -> CompanyRecord | None:
        if website and website.strip():
            record = session.exec(
                select(CompanyRecord).where(
                    func.lower(CompanyRecord.website) == website.strip().lower()
                )
            ).first()
            if record is not None:
                return record
        if name and name.strip():
            return session.exec(
                select(CompanyRecord).where(func.lower(CompanyRecord.name) == name.strip().lower())
            ).first()
        return None

    def _find_contact(self, session: Session, candidate: ContactCandidate) -> ContactRecord | None:
        if candidate.email:
            statement = select(ContactRecord).where(
                func.lower(ContactRecord.email) == candidate.email.strip().lower()
            )
        elif candidate.profile_url:
            statement = select(ContactRecord).where(
                func.lower(ContactRecord.profile_url) == candidate.profile_url.strip().lower()
            )
        else:
            statement = select(ContactRecord).where(
                func.lower(ContactRecord.name) == candidate.display_name.lower()
            )
            if candidate.company_name:
                statement = statement.where(
                    func.lower(ContactRecord.company_name) == candidate.company_name.strip().lower()
                )
            else:
                statement = statement.where(ContactRecord.company_name.is_(None))
        return session.exec(statement).first()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine, expire_on_commit=False) as session:
            yield session


def _error_message(exc: Exception) -> str:
    if isinstance(exc, SQLAlchemyError) and getattr(exc, "orig", None) is not None:
        return str(exc.orig)
    return str(exc) or type(exc).__name__


def _report(result: PersistenceResult, backend: str) -> None:
    tags = {"repository": backend}
    metrics.increment("sink.companies_created", value=result.companies_created, tags=tags)
    metrics.increment("sink.contacts_created", value=result.contacts_created, tags=tags)
    metrics.increment("sink.leads_created", value=result.leads_created, tags=tags)
    if result.errors:
        metrics.increment("sink.errors", value=len(result.errors), tags=tags)
    logger.info(
        "discovery.sink.persisted",
        extra={
            "backend": backend,
            "companies_created": result.companies_created,
            "companies_skipped": result.companies_skipped,
            "contacts_created": result.contacts_created,
            "contacts_skipped": result.contacts_skipped,
            "leads_created": result.leads_created,
            "leads_skipped": result.leads_skipped,
            "errors": len(result.errors),
        },
    )


def build_persistence_sink(
    database_url: str | None = None, *, config: Settings | None = None
) -> PersistenceSink:
    """In-memory sink without DATABASE_URL, SQLModel sink otherwise."""
    config = config or settings
    resolved_url = database_url or config.database_url
    if not resolved_url:
        logger.info("discovery.sink.initialized", extra={"backend": "memory"})
        return InMemoryDiscoverySink()
    try:
        sink = SqlModelDiscoverySink.from_url(resolved_url, config=config)
        logger.info("discovery.sink.initialized", extra={"backend": sink.backend})
        return sink
    except Exception:
        logger.exception("discovery.sink.init_failed", extra={"backend": "database"})
        raise
