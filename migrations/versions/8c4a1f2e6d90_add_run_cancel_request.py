"""Record cancellation requests on discovery runs.

The runner polls `cancel_requested_at` between units of work and finishes the
run as `cancelled` once it is set.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa

revision = "8c4a1f2e6d90"
down_revision = "5b2e9c1d7f30"
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade() -> None:
    op.add_column(
        "discovery_runs",
        sa.Column("cancel_requested_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "discovery_runs",
        sa.Column("cancel_requested_by", sa.String(length=255), nullable=True),
    )
    logger.info("discovery.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_column("discovery_runs", "cancel_requested_by")
    op.drop_column("discovery_runs", "cancel_requested_at")
