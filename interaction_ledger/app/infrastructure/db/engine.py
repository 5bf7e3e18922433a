from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from interaction_ledger.app.config import settings
from interaction_ledger.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB

# registers the ledger tables on BaseDB.metadata
from interaction_ledger.app.infrastructure.db.models.ledger import (  # noqa: F401
    contract_interaction_revisions,
    contract_interactions,
)

logger = logging.getLogger(__name__)

# seconds a SQLite writer waits on a locked database before failing
_SQLITE_BUSY_TIMEOUT = 30


def create_app_async_engine(*, url: str | None = None, echo: bool = False) -> AsyncEngine:
    """
    Factory for AsyncEngine used by the ledger tasks.

    SQLite has no schemas, so the ledger schema is translated to the default
    one there (used for tests and local runs).
    """
    database_url = url or settings.database_url  # postgresql+asyncpg://...
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}

    if make_url(database_url).get_backend_name() == "sqlite":
        kwargs["execution_options"] = {"schema_translate_map": {LEDGER_SCHEMA: None}}
        kwargs["connect_args"] = {"timeout": _SQLITE_BUSY_TIMEOUT}

    return create_async_engine(database_url, **kwargs)


async def create_ledger_tables(engine: AsyncEngine) -> None:
    """Create the ledger schema, tables and indexes if they do not exist."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {LEDGER_SCHEMA}"))
        await conn.run_sync(BaseDB.metadata.create_all)

    logger.info("Ledger tables ready (dialect=%s)", engine.dialect.name)
