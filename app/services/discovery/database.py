"""Shared SQLAlchemy engine construction for the discovery run and entity stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlmodel import SQLModel, create_engine

from app.config import Settings, settings

# Registers the discovery tables on SQLModel.metadata.
from app.models import records  # noqa: F401

_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "postgresql+psycopg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


@dataclass(frozen=True)
class DatabaseTarget:
    """A sync connection target derived from a possibly async ``DATABASE_URL``."""

    url: URL
    connect_args: dict[str, Any] = field(default_factory=dict)
    backend: str = "postgres"

    @property
    def is_sqlite(self) -> bool:
        return self.url.drivername.startswith("sqlite")

    def render(self, *, hide_password: bool = True) -> str:
        return self.url.render_as_string(hide_password=hide_password)


def resolve_database_target(database_url: str) -> DatabaseTarget:
    """Swap async drivers for sync ones and move ``ssl`` query flags into connect args.

    Hosted Postgres (Supabase) requires TLS, so ``sslmode=require`` is added
    when the URL asked for ``ssl`` or points at a Supabase host without an
    explicit ``sslmode``.
    """
    original = make_url(database_url)
    drivername = _SYNC_DRIVERS.get(original.drivername, original.drivername)
    query = dict(original.query)
    wants_ssl = query.pop("ssl", None) is not None
    url = original.set(drivername=drivername, query=query)

    host = (original.host or "").lower()
    connect_args: dict[str, Any] = {}
    if drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        backend = "sqlite"
    else:
        if "sslmode" not in query and (wants_ssl or "supabase.co" in host):
            connect_args["sslmode"] = "require"
        backend = "supabase" if "supabase.co" in host else "postgres"
    return DatabaseTarget(url=url, connect_args=connect_args, backend=backend)


def create_sync_engine(
    database_url: str,
    *,
    config: Settings | None = None,
    auto_create_schema: bool = False,
) -> tuple[Engine, str]:
    """Return a sync engine plus the backend name used as a metrics tag."""
    if not database_url:
        raise ValueError("DATABASE_URL is required for a database-backed discovery store.")
    config = config or settings
    target = resolve_database_target(database_url)
    engine_kwargs: dict[str, Any] = {
        "echo": config.debug,
        "connect_args": target.connect_args,
    }
    if not target.is_sqlite:
        pool_size = max(config.db_pool_min_size, 1)
        engine_kwargs.update(
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max(config.db_pool_max_size - pool_size, 0),
        )

    engine = create_engine(target.render(hide_password=False), **engine_kwargs)
    if auto_create_schema:
        SQLModel.metadata.create_all(engine)
    return engine, target.backend
