from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from interaction_ledger.app.domain.models import (
    BlockRange,
    ChainSummary,
    InteractionRecord,
    InteractionRevision,
    PutResult,
    RevisionKind,
    ScanFilter,
    SortKey,
)


class InteractionLedgerStore(Protocol):
    """
    Port for the durable contract-interaction table.

    Implementations own hash uniqueness and keep the secondary orderings
    (chain, contract, block, hash), (chain, address, block, hash) and
    (chain, block, hash) consistent with the primary row in the same
    transaction.

    Every method raises StorageUnavailable once transient failures outlast
    the implementation's retries.
    """

    async def put_if_absent(self, record: InteractionRecord) -> PutResult:
        """
        Atomically insert `record` unless its hash is already committed.

        Concurrent callers on the same hash: exactly one gets Inserted,
        the rest get AlreadyExists(existing) and no error.
        """
        ...

    async def put_many_if_absent(
        self,
        records: Sequence[InteractionRecord],
    ) -> list[PutResult | None]:
        """
        Bulk put_if_absent. Hashes in `records` must be distinct.

        Results are returned in input order. Records are committed in chunks;
        a record whose chunk stayed unavailable through the retries gets None
        while the other chunks keep their results.
        """
        ...

    async def get(self, hash: str) -> InteractionRecord | None: ...

    async def get_many(self, hashes: Sequence[str]) -> dict[str, InteractionRecord]: ...

    async def fetch_page(
        self,
        *,
        scan_filter: ScanFilter,
        block_range: BlockRange | None = None,
        after: SortKey | None = None,
        limit: int,
    ) -> list[InteractionRecord]:
        """At most `limit` records strictly after `after`, ordered by (block, hash)."""
        ...

    def scan(
        self,
        *,
        scan_filter: ScanFilter,
        block_range: BlockRange | None = None,
        after: SortKey | None = None,
        page_size: int = 1_000,
    ) -> AsyncIterator[InteractionRecord]:
        """Lazy (block, hash) ordered sequence, fetched page by page."""
        ...

    async def supersede(
        self,
        *,
        expected: InteractionRecord,
        replacement: InteractionRecord,
        source: str | None = None,
    ) -> InteractionRevision:
        """
        Replace the committed facts of `expected.hash` with `replacement`.

        Compare-and-set: raises ConflictError if the committed record is no
        longer equal to `expected`. The row update and the revision log entry
        are written in one transaction.
        """
        ...

    async def record_conflict(
        self,
        *,
        existing: InteractionRecord,
        proposed: InteractionRecord,
        source: str | None = None,
    ) -> InteractionRevision: ...

    async def list_revisions(
        self,
        *,
        hash: str | None = None,
        kind: RevisionKind | None = None,
        after_id: int | None = None,
        limit: int = 100,
    ) -> list[InteractionRevision]: ...

    async def block_bounds(self, chain: str) -> tuple[int, int] | None: ...

    async def chain_summary(self, chain: str) -> ChainSummary: ...
