"""Alembic environment for the discovery run and discovered entity tables."""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool
from sqlmodel import SQLModel

from app.config import settings
from app.models import records
from app.services.discovery.database import resolve_database_target

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("discovery.alembic")
logger.setLevel(logging.INFO)
target_metadata = SQLModel.metadata

DISCOVERY_TABLES = frozenset(
    model.__tablename__
    for model in (
        records.DiscoveryRunRecord,
        records.CompanyRecord,
        records.ContactRecord,
        records.LeadRecord,
    )
)


def _url_sources() -> list[tuple[str, str | None]]:
    """Candidate URLs in precedence order: env, alembic.ini, then app settings."""
    return [
        ("environment variable", os.environ.get("DATABASE_URL")),
        ("alembic.ini", config.get_main_option("sqlalchemy.url")),
        ("app settings", settings.database_url),
    ]


def _database_url() -> tuple[str, dict[str, Any]]:
    for source, value in _url_sources():
        if not value:
            continue
        target = resolve_database_target(value)
        rendered = target.render()
        logger.info(
            "discovery.migrations.database_url",
            extra={"source": source, "url": rendered, "backend": target.backend},
        )
        config.print_stdout(f"[Alembic] DATABASE_URL source={source}: {rendered}")
        return target.render(hide_password=False), target.connect_args
    raise RuntimeError("DATABASE_URL must be set to run discovery migrations.")


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Keep autogenerate away from tables other services own in a shared database."""
    if type_ == "table":
        return name in DISCOVERY_TABLES
    table = getattr(obj, "table", None)
    if table is not None:
        return table.name in DISCOVERY_TABLES
    return True


def _configure(**kwargs: Any) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        include_object=include_object,
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    url, _ = _database_url()
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_migrations_online() -> None:
    url, connect_args = _database_url()
    engine = create_engine(url, connect_args=connect_args, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
