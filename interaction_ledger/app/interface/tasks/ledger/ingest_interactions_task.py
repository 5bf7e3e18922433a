from __future__ import annotations

import logging

from interaction_ledger.app.domain.models import IngestReport
from interaction_ledger.app.infrastructure.db.engine import create_app_async_engine
from interaction_ledger.app.infrastructure.factories.ledger.interaction_ledger_factory import (
    build_interaction_ledger,
)
from interaction_ledger.app.infrastructure.sources.jsonl_event_source import (
    JsonLinesInteractionEventSource,
)

logger = logging.getLogger(__name__)


async def ingest_interactions_task(
    *,
    path: str,
    batch_size: int | None = None,
    conflict_policy: str | None = None,
    backend: str = "sqlalchemy",
    database_url: str | None = None,
) -> IngestReport:
    """
    Ingests a JSON-lines file of interaction events into ledger.contract_interactions.

    path "-" reads stdin. Every line gets an outcome; rejected, conflicting and
    unavailable events are kept in the returned report so they can be retried.
    """
    engine = create_app_async_engine(url=database_url)
    try:
        ledger = build_interaction_ledger(
            engine=engine,
            backend=backend,
            conflict_policy=conflict_policy or None,
        )
        logger.info(
            "Ingesting interactions from %s (policy=%s)",
            path,
            ledger.revisions.policy.value,
        )
        return await ledger.ingestor.ingest_stream(
            JsonLinesInteractionEventSource(path),
            batch_size=batch_size,
        )
    finally:
        await engine.dispose()
