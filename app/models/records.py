"""SQLModel mappings for discovery runs and discovered entities."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlmodel import Field, SQLModel

from app.models.discovery_run import DiscoveryRun, DiscoveryRunStats, RunMode, RunStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


def _created_at_column() -> Any:
    return Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )


class DiscoveryRunRecord(SQLModel, table=True):
    __tablename__ = "discovery_runs"
    __table_args__ = (
        sa.Index("ix_discovery_runs_started_at", "started_at"),
        sa.Index("ix_discovery_runs_status", "status"),
    )

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    status: str = Field(sa_column=Column(String(length=32), nullable=False))
    dry_run: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    mode: str = Field(sa_column=Column(String(length=16), nullable=False))
    triggered_by: str = Field(sa_column=Column(String(length=255), nullable=False))
    triggered_by_id: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    intent_id: str | None = Field(default=None, sa_column=Column(String(length=128), nullable=True))
    intent_name: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    started_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    finished_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    stats: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )
    error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_companies_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_contacts_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_leads_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    cancel_requested_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cancel_requested_by: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )

    @classmethod
    def from_run(cls, run: DiscoveryRun) -> DiscoveryRunRecord:
        record = cls(
            id=run.id,
            status=run.status.value,
            dry_run=run.dry_run,
            mode=run.mode.value,
            triggered_by=run.triggered_by,
            triggered_by_id=run.triggered_by_id,
            intent_id=run.intent_id,
            intent_name=run.intent_name,
            started_at=run.started_at,
            finished_at=run.finished_at,
            error=run.error,
            cancel_requested_at=run.cancel_requested_at,
            cancel_requested_by=run.cancel_requested_by,
        )
        record.apply_stats(run.stats)
        return record

    def apply_stats(self, stats: DiscoveryRunStats | None) -> None:
        if stats is None:
            self.stats = None
            return
        self.stats = stats.model_dump(mode="json")
        self.created_companies_count = stats.companies_created
        self.created_contacts_count = stats.contacts_created
        self.created_leads_count = stats.leads_created

    def to_run(self) -> DiscoveryRun:
        return DiscoveryRun(
            id=self.id,
            status=RunStatus(self.status),
            dry_run=self.dry_run,
            mode=RunMode(self.mode),
            triggered_by=self.triggered_by,
            triggered_by_id=self.triggered_by_id,
            intent_id=self.intent_id,
            intent_name=self.intent_name,
            started_at=self.started_at,
            finished_at=self.finished_at,
            stats=DiscoveryRunStats.model_validate(self.stats) if self.stats else None,
            error=self.error,
            cancel_requested_at=self.cancel_requested_at,
            cancel_requested_by=self.cancel_requested_by,
        )


class CompanyRecord(SQLModel, table=True):
    __tablename__ = "discovered_companies"
    __table_args__ = (
        sa.Index("ix_discovered_companies_website", "website"),
        sa.Index("ix_discovered_companies_name", "name"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    website: str | None = Field(default=None, sa_column=Column(String(length=512), nullable=True))
    industry: str | None = Field(default=None, sa_column=Column(String(length=128), nullable=True))
    country: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    services: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    contact_channels: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )
    discovery_source: str = Field(sa_column=Column(String(length=32), nullable=False))
    discovery_metadata: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    created_at: datetime = _created_at_column()


class ContactRecord(SQLModel, table=True):
    __tablename__ = "discovered_contacts"
    __table_args__ = (
        sa.Index("ix_discovered_contacts_email", "email"),
        sa.Index("ix_discovered_contacts_profile_url", "profile_url"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    email: str | None = Field(default=None, sa_column=Column(String(length=320), nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    role: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    profile_url: str | None = Field(
        default=None, sa_column=Column(String(length=512), nullable=True)
    )
    company_name: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    company_id: UUID | None = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    discovery_source: str = Field(sa_column=Column(String(length=32), nullable=False))
    discovery_metadata: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    created_at: datetime = _created_at_column()


class LeadRecord(SQLModel, table=True):
    __tablename__ = "discovered_leads"
    __table_args__ = (sa.UniqueConstraint("email", name="uq_discovered_leads_email"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    email: str = Field(sa_column=Column(String(length=320), nullable=False))
    name: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    company_name: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    company_id: UUID | None = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    contact_id: UUID | None = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    source: str = Field(sa_column=Column(String(length=32), nullable=False))
    additional_metadata: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    created_at: datetime = _created_at_column()
