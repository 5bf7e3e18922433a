from __future__ import annotations

from interaction_ledger.app.application.services.block_bounds import (
    BlockSelector,
    resolve_block_bounds,
)
from interaction_ledger.app.domain.models import BlockRange, ChainSummary, InteractionPage
from interaction_ledger.app.infrastructure.db.engine import create_app_async_engine
from interaction_ledger.app.infrastructure.factories.ledger.interaction_ledger_factory import (
    build_interaction_ledger,
)


async def query_interactions_task(
    *,
    chain: str,
    contract: str | None = None,
    address: str | None = None,
    from_block: BlockSelector = "earliest",
    to_block: BlockSelector = "latest",
    limit: int | None = None,
    cursor: str | None = None,
    backend: str = "sqlalchemy",
    database_url: str | None = None,
) -> InteractionPage:
    """
    Returns one page of interactions for a chain, filtered by contract or address.

    from_block / to_block can be:
    - int (a specific block number),
    - "earliest" (the first block recorded for the chain),
    - "latest" (the last block recorded for the chain).
    """
    if contract and address:
        raise ValueError("Filter by contract or by address, not both")

    engine = create_app_async_engine(url=database_url)
    try:
        ledger = build_interaction_ledger(engine=engine, backend=backend)

        try:
            resolved_from_block, resolved_to_block = await resolve_block_bounds(
                store=ledger.store,
                chain=chain,
                from_block=from_block,
                to_block=to_block,
            )
        except RuntimeError:
            # nothing recorded for the chain yet
            return InteractionPage(records=())

        if resolved_from_block > resolved_to_block:
            # e.g. from_block past the last recorded block
            return InteractionPage(records=())

        block_range = BlockRange(
            from_block=resolved_from_block,
            to_block=resolved_to_block,
        )

        if contract:
            return await ledger.queries.query_by_contract(
                chain, contract, block_range, limit=limit, cursor=cursor or None
            )
        if address:
            return await ledger.queries.query_by_address(
                chain, address, block_range, limit=limit, cursor=cursor or None
            )
        return await ledger.queries.query_by_chain(
            chain, block_range, limit=limit, cursor=cursor or None
        )
    finally:
        await engine.dispose()


async def chain_summary_task(
    *,
    chain: str,
    backend: str = "sqlalchemy",
    database_url: str | None = None,
) -> ChainSummary:
    """Record count and block bounds stored for a chain."""
    engine = create_app_async_engine(url=database_url)
    try:
        ledger = build_interaction_ledger(engine=engine, backend=backend)
        return await ledger.queries.chain_summary(chain)
    finally:
        await engine.dispose()
