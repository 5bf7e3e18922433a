from __future__ import annotations

from interaction_ledger.app.domain.models import (
    IngestOutcome,
    InteractionEvent,
    InteractionRevision,
    RevisionKind,
)
from interaction_ledger.app.infrastructure.db.engine import create_app_async_engine
from interaction_ledger.app.infrastructure.factories.ledger.interaction_ledger_factory import (
    build_interaction_ledger,
)


async def supersede_interaction_task(
    *,
    hash: str,
    block: int,
    address: str,
    contract: str,
    chain: str,
    source: str | None = None,
    backend: str = "sqlalchemy",
    database_url: str | None = None,
) -> IngestOutcome:
    """
    Operator correction: replaces the committed facts of `hash`.

    The update and its revision log entry are written atomically.
    """
    engine = create_app_async_engine(url=database_url)
    try:
        ledger = build_interaction_ledger(engine=engine, backend=backend)
        return await ledger.revisions.supersede(
            InteractionEvent(
                hash=hash,
                block=block,
                address=address,
                contract=contract,
                chain=chain,
                authoritative=True,
                source=source or "operator",
            )
        )
    finally:
        await engine.dispose()


async def list_revisions_task(
    *,
    hash: str | None = None,
    kind: str | None = None,
    after_id: int | None = None,
    limit: int = 100,
    backend: str = "sqlalchemy",
    database_url: str | None = None,
) -> list[InteractionRevision]:
    """Lists conflicts and supersedes from ledger.contract_interaction_revisions."""
    engine = create_app_async_engine(url=database_url)
    try:
        ledger = build_interaction_ledger(engine=engine, backend=backend)
        return await ledger.revisions.list_revisions(
            hash=hash or None,
            kind=RevisionKind(kind) if kind else None,
            after_id=after_id,
            limit=limit,
        )
    finally:
        await engine.dispose()
