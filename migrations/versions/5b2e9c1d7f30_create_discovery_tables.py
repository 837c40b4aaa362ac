"""Create discovery run and discovered entity tables.

`discovered_leads.email` is unique so concurrent runs cannot create the same
lead twice even though the sink checks existence before inserting.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "5b2e9c1d7f30"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

_UTC_NOW = sa.text("timezone('utc', now())")


def _json() -> sa.types.TypeEngine:
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    op.create_table(
        "discovery_runs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("mode", sa.String(length=16), nullable=False),
        sa.Column("triggered_by", sa.String(length=255), nullable=False),
        sa.Column("triggered_by_id", sa.String(length=255), nullable=True),
        sa.Column("intent_id", sa.String(length=128), nullable=True),
        sa.Column("intent_name", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stats", _json(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_companies_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_contacts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_leads_count", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_discovery_runs"),
    )
    op.create_index("ix_discovery_runs_started_at", "discovery_runs", ["started_at"], unique=False)
    op.create_index("ix_discovery_runs_status", "discovery_runs", ["status"], unique=False)

    op.create_table(
        "discovered_companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("services", _json(), nullable=False),
        sa.Column("contact_channels", _json(), nullable=True),
        sa.Column("discovery_source", sa.String(length=32), nullable=False),
        sa.Column("discovery_metadata", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.PrimaryKeyConstraint("id", name="pk_discovered_companies"),
    )
    op.create_index(
        "ix_discovered_companies_website", "discovered_companies", ["website"], unique=False
    )
    op.create_index("ix_discovered_companies_name", "discovered_companies", ["name"], unique=False)

    op.create_table(
        "discovered_contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=255), nullable=True),
        sa.Column("profile_url", sa.String(length=512), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("discovery_source", sa.String(length=32), nullable=False),
        sa.Column("discovery_metadata", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.PrimaryKeyConstraint("id", name="pk_discovered_contacts"),
    )
    op.create_index("ix_discovered_contacts_email", "discovered_contacts", ["email"], unique=False)
    op.create_index(
        "ix_discovered_contacts_profile_url", "discovered_contacts", ["profile_url"], unique=False
    )

    op.create_table(
        "discovered_leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("additional_metadata", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.PrimaryKeyConstraint("id", name="pk_discovered_leads"),
        sa.UniqueConstraint("email", name="uq_discovered_leads_email"),
    )
    logger.info("discovery.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_table("discovered_leads")
    op.drop_index("ix_discovered_contacts_profile_url", table_name="discovered_contacts")
    op.drop_index("ix_discovered_contacts_email", table_name="discovered_contacts")
    op.drop_table("discovered_contacts")
    op.drop_index("ix_discovered_companies_name", table_name="discovered_companies")
    op.drop_index("ix_discovered_companies_website", table_name="discovered_companies")
    op.drop_table("discovered_companies")
    op.drop_index("ix_discovery_runs_status", table_name="discovery_runs")
    op.drop_index("ix_discovery_runs_started_at", table_name="discovery_runs")
    op.drop_table("discovery_runs")
