from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Final

from sqlalchemy import Row, func, insert, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from interaction_ledger.app.domain.errors import ConflictError, StorageUnavailable
from interaction_ledger.app.domain.models import (
    AlreadyExists,
    BlockRange,
    ChainSummary,
    Inserted,
    InteractionRecord,
    InteractionRevision,
    PutResult,
    RevisionKind,
    ScanFilter,
    SortKey,
)
from interaction_ledger.app.infrastructure.db.models.ledger.contract_interaction_revisions import (
    ContractInteractionRevisionsDB,
)
from interaction_ledger.app.infrastructure.db.models.ledger.contract_interactions import (
    ContractInteractionsDB,
)
from interaction_ledger.app.infrastructure.db.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

_INTERACTIONS = ContractInteractionsDB.__table__
_REVISIONS = ContractInteractionRevisionsDB.__table__

_FIELD_COUNT: Final[int] = len(_INTERACTIONS.columns)

# Bind parameter ceilings per statement
_MAX_BIND_PARAMS: Final[dict[str, int]] = {
    "postgresql": 32_767,
    "sqlite": 32_766,
}

_DEFAULT_CHUNK_SIZE: Final[int] = 1_000

# put_if_absent lost the row between the conflicting INSERT and the SELECT
_MAX_VANISHED_ROW_RETRIES: Final[int] = 3


def _chunks(seq: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


def _to_record(row: Row[Any]) -> InteractionRecord:
    return InteractionRecord(
        hash=row.hash,
        block=row.block,
        address=row.address,
        contract=row.contract,
        chain=row.chain,
    )


def _to_revision(row: Row[Any]) -> InteractionRevision:
    return InteractionRevision(
        id=row.id,
        hash=row.hash,
        kind=RevisionKind(row.kind),
        previous=InteractionRecord(
            hash=row.hash,
            block=row.previous_block,
            address=row.previous_address,
            contract=row.previous_contract,
            chain=row.previous_chain,
        ),
        proposed=InteractionRecord(
            hash=row.hash,
            block=row.block,
            address=row.address,
            contract=row.contract,
            chain=row.chain,
        ),
        source=row.source,
        recorded_at=row.recorded_at,
    )


class SqlAlchemyInteractionLedgerStore:
    """
    InteractionLedgerStore implementation using SQLAlchemy Core on PostgreSQL or SQLite.

    Strategy:
    - put_if_absent = INSERT ... ON CONFLICT (hash) DO NOTHING RETURNING hash;
      the database decides the single winner of a same-hash race.
    - bulk puts are chunked so every statement stays under the dialect's
      bind-parameter limit (rows * field count).
    - range scans are keyset-paginated on (block, hash) and always served
      by one of the (chain, [contract|address,] block, hash) indexes.
    - supersede is a compare-and-set UPDATE plus a revision log INSERT in
      one transaction; the row lock of that single hash is the only lock taken.

    Every public call runs under run_with_retry, so transient failures are
    retried and surface as StorageUnavailable when they persist.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        retry_policy: RetryPolicy | None = None,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        dialect = engine.dialect.name
        if dialect not in _MAX_BIND_PARAMS:
            raise ValueError(f"Unsupported ledger dialect: {dialect!r}")

        self._engine = engine
        self._dialect = dialect
        self._retry = retry_policy or RetryPolicy()
        self._chunk_size = min(chunk_size, _MAX_BIND_PARAMS[dialect] // _FIELD_COUNT)

    def _insert_interactions(self):
        if self._dialect == "postgresql":
            return pg_insert(_INTERACTIONS)
        return sqlite_insert(_INTERACTIONS)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def put_if_absent(self, record: InteractionRecord) -> PutResult:
        stmt = (
            self._insert_interactions()
            .values(**record.as_dict())
            .on_conflict_do_nothing(index_elements=[_INTERACTIONS.c.hash])
            .returning(_INTERACTIONS.c.hash)
        )

        async def _put() -> PutResult:
            for _ in range(_MAX_VANISHED_ROW_RETRIES):
                async with self._engine.begin() as conn:
                    inserted = (await conn.execute(stmt)).scalar_one_or_none()
                    if inserted is not None:
                        return Inserted(record)

                    existing = await self._select_one(conn, record.hash)
                    if existing is not None:
                        return AlreadyExists(existing)
            raise StorageUnavailable(
                f"Row for hash {record.hash!r} vanished after a conflicting insert"
            )

        return await run_with_retry("put_if_absent", _put, policy=self._retry)

    async def put_many_if_absent(
        self,
        records: Sequence[InteractionRecord],
    ) -> list[PutResult | None]:
        hashes = [r.hash for r in records]
        if len(set(hashes)) != len(hashes):
            raise ValueError("put_many_if_absent requires distinct hashes")

        results: list[PutResult | None] = []
        for chunk in _chunks(records, self._chunk_size):
            results.extend(await self._settle_chunk(chunk))

        logger.debug(
            "Bulk put: %s records, %s inserted, %s not written",
            len(records),
            sum(1 for r in results if isinstance(r, Inserted)),
            sum(1 for r in results if r is None),
        )
        return results

    async def _settle_chunk(
        self,
        chunk: Sequence[InteractionRecord],
    ) -> list[PutResult | None]:
        """One committed transaction per chunk; None marks records left unwritten."""
        try:
            results = await run_with_retry(
                "put_many_if_absent",
                lambda: self._put_chunk(chunk),
                policy=self._retry,
            )
        except StorageUnavailable as e:
            logger.warning("Bulk put of %s records not written: %s", len(chunk), e)
            return [None] * len(chunk)

        # a conflicting row purged between INSERT and SELECT: settle it individually
        for i, result in enumerate(results):
            if result is not None:
                continue
            try:
                results[i] = await self.put_if_absent(chunk[i])
            except StorageUnavailable as e:
                logger.warning("Put of %s not written: %s", chunk[i].hash, e)
        return results

    async def _put_chunk(
        self,
        chunk: Sequence[InteractionRecord],
    ) -> list[PutResult | None]:
        stmt = (
            self._insert_interactions()
            .values([r.as_dict() for r in chunk])
            .on_conflict_do_nothing(index_elements=[_INTERACTIONS.c.hash])
            .returning(_INTERACTIONS.c.hash)
        )

        async with self._engine.begin() as conn:
            inserted = set((await conn.execute(stmt)).scalars().all())
            missing = [r.hash for r in chunk if r.hash not in inserted]
            existing = await self._select_many(conn, missing) if missing else {}

        out: list[PutResult | None] = []
        for record in chunk:
            if record.hash in inserted:
                out.append(Inserted(record))
            elif record.hash in existing:
                out.append(AlreadyExists(existing[record.hash]))
            else:
                out.append(None)
        return out

    async def supersede(
        self,
        *,
        expected: InteractionRecord,
        replacement: InteractionRecord,
        source: str | None = None,
    ) -> InteractionRevision:
        if expected.hash != replacement.hash:
            raise ValueError("supersede cannot change the hash of a record")

        t = _INTERACTIONS
        stmt = (
            update(t)
            .where(
                t.c.hash == expected.hash,
                t.c.block == expected.block,
                t.c.address == expected.address,
                t.c.contract == expected.contract,
                t.c.chain == expected.chain,
            )
            .values(
                block=replacement.block,
                address=replacement.address,
                contract=replacement.contract,
                chain=replacement.chain,
            )
        )

        async def _supersede() -> InteractionRevision:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                if result.rowcount != 1:
                    current = await self._select_one(conn, expected.hash)
                    raise ConflictError(
                        f"Record {expected.hash!r} changed concurrently; supersede refused",
                        existing=current,
                        proposed=replacement,
                    )
                return await self._append_revision(
                    conn,
                    kind=RevisionKind.SUPERSEDE,
                    previous=expected,
                    proposed=replacement,
                    source=source,
                )

        revision = await run_with_retry("supersede", _supersede, policy=self._retry)
        logger.info(
            "Superseded interaction %s (changed=%s, source=%s)",
            expected.hash,
            ",".join(expected.diff(replacement)),
            source,
        )
        return revision

    async def record_conflict(
        self,
        *,
        existing: InteractionRecord,
        proposed: InteractionRecord,
        source: str | None = None,
    ) -> InteractionRevision:
        async def _record() -> InteractionRevision:
            async with self._engine.begin() as conn:
                return await self._append_revision(
                    conn,
                    kind=RevisionKind.CONFLICT,
                    previous=existing,
                    proposed=proposed,
                    source=source,
                )

        return await run_with_retry("record_conflict", _record, policy=self._retry)

    async def _append_revision(
        self,
        conn: AsyncConnection,
        *,
        kind: RevisionKind,
        previous: InteractionRecord,
        proposed: InteractionRecord,
        source: str | None,
    ) -> InteractionRevision:
        recorded_at = datetime.now(timezone.utc)
        result = await conn.execute(
            insert(_REVISIONS).values(
                hash=previous.hash,
                kind=kind.value,
                previous_block=previous.block,
                previous_address=previous.address,
                previous_contract=previous.contract,
                previous_chain=previous.chain,
                block=proposed.block,
                address=proposed.address,
                contract=proposed.contract,
                chain=proposed.chain,
                source=source,
                recorded_at=recorded_at,
            )
        )
        return InteractionRevision(
            id=result.inserted_primary_key[0],
            hash=previous.hash,
            kind=kind,
            previous=previous,
            proposed=proposed,
            source=source,
            recorded_at=recorded_at,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _select_one(
        self, conn: AsyncConnection, hash: str
    ) -> InteractionRecord | None:
        row = (
            await conn.execute(select(_INTERACTIONS).where(_INTERACTIONS.c.hash == hash))
        ).one_or_none()
        return None if row is None else _to_record(row)

    async def _select_many(
        self, conn: AsyncConnection, hashes: Sequence[str]
    ) -> dict[str, InteractionRecord]:
        out: dict[str, InteractionRecord] = {}
        # IN lists share the bind parameter ceiling
        for chunk in _chunks(hashes, self._chunk_size * _FIELD_COUNT):
            result = await conn.execute(
                select(_INTERACTIONS).where(_INTERACTIONS.c.hash.in_(chunk))
            )
            for row in result:
                out[row.hash] = _to_record(row)
        return out

    async def get(self, hash: str) -> InteractionRecord | None:
        async def _get() -> InteractionRecord | None:
            async with self._engine.connect() as conn:
                return await self._select_one(conn, hash)

        return await run_with_retry("get", _get, policy=self._retry)

    async def get_many(self, hashes: Sequence[str]) -> dict[str, InteractionRecord]:
        unique = list(dict.fromkeys(hashes))
        if not unique:
            return {}

        async def _get_many() -> dict[str, InteractionRecord]:
            async with self._engine.connect() as conn:
                return await self._select_many(conn, unique)

        return await run_with_retry("get_many", _get_many, policy=self._retry)

    async def fetch_page(
        self,
        *,
        scan_filter: ScanFilter,
        block_range: BlockRange | None = None,
        after: SortKey | None = None,
        limit: int,
    ) -> list[InteractionRecord]:
        if limit <= 0:
            raise ValueError("limit must be positive")

        t = _INTERACTIONS
        stmt = select(t).where(t.c.chain == scan_filter.chain)

        if scan_filter.contract is not None:
            stmt = stmt.where(t.c.contract == scan_filter.contract)
        if scan_filter.address is not None:
            stmt = stmt.where(t.c.address == scan_filter.address)
        if block_range is not None:
            stmt = stmt.where(t.c.block.between(block_range.from_block, block_range.to_block))
        if after is not None:
            stmt = stmt.where(tuple_(t.c.block, t.c.hash) > tuple_(after.block, after.hash))

        stmt = stmt.order_by(t.c.block, t.c.hash).limit(limit)

        async def _fetch() -> list[InteractionRecord]:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [_to_record(row) for row in result]

        return await run_with_retry("fetch_page", _fetch, policy=self._retry)

    async def scan(
        self,
        *,
        scan_filter: ScanFilter,
        block_range: BlockRange | None = None,
        after: SortKey | None = None,
        page_size: int = _DEFAULT_CHUNK_SIZE,
    ) -> AsyncIterator[InteractionRecord]:
        position = after
        while True:
            page = await self.fetch_page(
                scan_filter=scan_filter,
                block_range=block_range,
                after=position,
                limit=page_size,
            )
            for record in page:
                yield record
            if len(page) < page_size:
                return
            position = SortKey.of(page[-1])

    async def list_revisions(
        self,
        *,
        hash: str | None = None,
        kind: RevisionKind | None = None,
        after_id: int | None = None,
        limit: int = 100,
    ) -> list[InteractionRevision]:
        if limit <= 0:
            raise ValueError("limit must be positive")

        r = _REVISIONS
        stmt = select(r)
        if hash is not None:
            stmt = stmt.where(r.c.hash == hash)
        if kind is not None:
            stmt = stmt.where(r.c.kind == kind.value)
        if after_id is not None:
            stmt = stmt.where(r.c.id > after_id)
        stmt = stmt.order_by(r.c.id).limit(limit)

        async def _list() -> list[InteractionRevision]:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [_to_revision(row) for row in result]

        return await run_with_retry("list_revisions", _list, policy=self._retry)

    async def block_bounds(self, chain: str) -> tuple[int, int] | None:
        t = _INTERACTIONS
        # MIN / MAX only: both are index endpoints of (chain, block, hash)
        stmt = select(
            func.min(t.c.block).label("min_block"),
            func.max(t.c.block).label("max_block"),
        ).where(t.c.chain == chain)

        async def _bounds() -> tuple[int, int] | None:
            async with self._engine.connect() as conn:
                row = (await conn.execute(stmt)).one()
            if row.min_block is None or row.max_block is None:
                return None
            return row.min_block, row.max_block

        return await run_with_retry("block_bounds", _bounds, policy=self._retry)

    async def chain_summary(self, chain: str) -> ChainSummary:
        t = _INTERACTIONS
        stmt = select(
            func.count().label("records"),
            func.min(t.c.block).label("min_block"),
            func.max(t.c.block).label("max_block"),
        ).where(t.c.chain == chain)

        async def _summary() -> ChainSummary:
            async with self._engine.connect() as conn:
                row = (await conn.execute(stmt)).one()
            return ChainSummary(
                chain=chain,
                records=row.records,
                min_block=row.min_block,
                max_block=row.max_block,
            )

        return await run_with_retry("chain_summary", _summary, policy=self._retry)
