from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from interaction_ledger.app.application.services.ingest_interactions import (
    InteractionIngestor,
)
from interaction_ledger.app.application.services.query_interactions import (
    InteractionQueryEngine,
)
from interaction_ledger.app.application.services.revise_interactions import (
    ConflictPolicy,
    InteractionRevisionHandler,
)
from interaction_ledger.app.config import Settings, settings
from interaction_ledger.app.domain.ports.out import InteractionLedgerStore
from interaction_ledger.app.infrastructure.adapters.ledger.contract_interactions_store import (
    SqlAlchemyInteractionLedgerStore,
)
from interaction_ledger.app.infrastructure.db.retry import RetryPolicy

InteractionLedgerStoreFactory = Callable[[AsyncEngine, RetryPolicy], InteractionLedgerStore]

_INTERACTION_LEDGER_STORE_REGISTRY: Dict[str, InteractionLedgerStoreFactory] = {
    "sqlalchemy": lambda engine, retry_policy: SqlAlchemyInteractionLedgerStore(
        engine,
        retry_policy=retry_policy,
    ),
}


def interaction_ledger_store_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    retry_policy: RetryPolicy | None = None,
) -> InteractionLedgerStore:
    try:
        factory = _INTERACTION_LEDGER_STORE_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported interaction ledger backend: {backend!r}")
    return factory(engine, retry_policy or RetryPolicy())


@dataclass(frozen=True)
class InteractionLedger:
    """The store plus the services built around it, sharing one engine."""

    store: InteractionLedgerStore
    ingestor: InteractionIngestor
    queries: InteractionQueryEngine
    revisions: InteractionRevisionHandler


def build_interaction_ledger(
    *,
    engine: AsyncEngine,
    backend: str = "sqlalchemy",
    conflict_policy: ConflictPolicy | str | None = None,
    trusted_sources: Iterable[str] | None = None,
    config: Settings = settings,
) -> InteractionLedger:
    """
    Wire a complete ledger for the given backend.

    Explicit arguments override the corresponding settings:
    - conflict_policy  <- LEDGER_CONFLICT_POLICY
    - trusted_sources  <- LEDGER_TRUSTED_SOURCES
    """
    store = interaction_ledger_store_factory(
        backend=backend,
        engine=engine,
        retry_policy=RetryPolicy(
            attempts=config.storage_retry_attempts,
            base_delay=config.storage_retry_base_delay,
            max_delay=config.storage_retry_max_delay,
        ),
    )

    revisions = InteractionRevisionHandler(
        store,
        policy=ConflictPolicy(conflict_policy or config.conflict_policy),
        trusted_sources=(
            config.trusted_source_names if trusted_sources is None else trusted_sources
        ),
    )

    return InteractionLedger(
        store=store,
        ingestor=InteractionIngestor(
            store,
            revisions,
            batch_size=config.ingest_batch_size,
        ),
        queries=InteractionQueryEngine(
            store,
            default_limit=config.query_default_limit,
            max_limit=config.query_max_limit,
        ),
        revisions=revisions,
    )
