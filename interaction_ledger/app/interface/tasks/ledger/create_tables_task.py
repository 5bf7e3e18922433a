from __future__ import annotations

from interaction_ledger.app.infrastructure.db.engine import (
    create_app_async_engine,
    create_ledger_tables,
)


async def create_ledger_tables_task(*, database_url: str | None = None) -> None:
    """
    Task: create ledger.contract_interactions and ledger.contract_interaction_revisions.

    Safe to run repeatedly. Production databases are expected to be migrated
    with alembic instead.
    """
    engine = create_app_async_engine(url=database_url)
    try:
        await create_ledger_tables(engine)
    finally:
        await engine.dispose()
