from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Final

from interaction_ledger.app.domain.errors import ValidationError
from interaction_ledger.app.domain.identity import (
    decode_cursor,
    encode_cursor,
    normalize_address,
    normalize_chain,
    normalize_contract,
    normalize_hash,
)
from interaction_ledger.app.domain.models import (
    BlockRange,
    ChainSummary,
    InteractionPage,
    InteractionRecord,
    ScanFilter,
    SortKey,
)
from interaction_ledger.app.domain.ports.out import InteractionLedgerStore

_DEFAULT_LIMIT: Final[int] = 100
_MAX_LIMIT: Final[int] = 1_000

BlockRangeLike = BlockRange | tuple[int, int]


def _as_block_range(value: BlockRangeLike | None) -> BlockRange | None:
    if value is None:
        return None
    block_range = value if isinstance(value, BlockRange) else BlockRange(*value)
    block_range.validate()
    return block_range


class InteractionQueryEngine:
    """
    Read side of the ledger.

    Results are ordered by (block, hash) and paginated with opaque cursors
    encoding the last returned (block, hash). Cursors hold no server state:
    a caller may stop at any page, and repeating a request with the same
    cursor is always safe. Rows inserted behind a cursor after it was issued
    are not surfaced by later pages.
    """

    def __init__(
        self,
        store: InteractionLedgerStore,
        *,
        default_limit: int = _DEFAULT_LIMIT,
        max_limit: int = _MAX_LIMIT,
    ) -> None:
        if not 0 < default_limit <= max_limit:
            raise ValueError("expected 0 < default_limit <= max_limit")
        self._store = store
        self._default_limit = default_limit
        self._max_limit = max_limit

    async def query_by_contract(
        self,
        chain: str,
        contract: str,
        block_range: BlockRangeLike | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> InteractionPage:
        scan_filter = ScanFilter(
            chain=normalize_chain(chain),
            contract=normalize_contract(contract),
        )
        return await self._page(scan_filter, block_range, limit, cursor)

    async def query_by_address(
        self,
        chain: str,
        address: str,
        block_range: BlockRangeLike | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> InteractionPage:
        scan_filter = ScanFilter(
            chain=normalize_chain(chain),
            address=normalize_address(address),
        )
        return await self._page(scan_filter, block_range, limit, cursor)

    async def query_by_chain(
        self,
        chain: str,
        block_range: BlockRangeLike | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> InteractionPage:
        scan_filter = ScanFilter(chain=normalize_chain(chain))
        return await self._page(scan_filter, block_range, limit, cursor)

    def iter_by_contract(
        self,
        chain: str,
        contract: str,
        block_range: BlockRangeLike | None = None,
        *,
        cursor: str | None = None,
        page_size: int | None = None,
    ) -> AsyncIterator[InteractionRecord]:
        scan_filter = ScanFilter(
            chain=normalize_chain(chain),
            contract=normalize_contract(contract),
        )
        return self._iter(scan_filter, block_range, cursor, page_size)

    def iter_by_address(
        self,
        chain: str,
        address: str,
        block_range: BlockRangeLike | None = None,
        *,
        cursor: str | None = None,
        page_size: int | None = None,
    ) -> AsyncIterator[InteractionRecord]:
        scan_filter = ScanFilter(
            chain=normalize_chain(chain),
            address=normalize_address(address),
        )
        return self._iter(scan_filter, block_range, cursor, page_size)

    async def get(self, hash: str) -> InteractionRecord | None:
        return await self._store.get(normalize_hash(hash))

    async def chain_summary(self, chain: str) -> ChainSummary:
        return await self._store.chain_summary(normalize_chain(chain))

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("limit must be a positive integer", field="limit")
        if limit > self._max_limit:
            raise ValidationError(f"limit must be <= {self._max_limit}", field="limit")
        return limit

    async def _page(
        self,
        scan_filter: ScanFilter,
        block_range: BlockRangeLike | None,
        limit: int | None,
        cursor: str | None,
    ) -> InteractionPage:
        page_limit = self._resolve_limit(limit)
        records = await self._store.fetch_page(
            scan_filter=scan_filter,
            block_range=_as_block_range(block_range),
            after=decode_cursor(cursor) if cursor else None,
            limit=page_limit,
        )
        # a full page may be followed by more rows; the next request tells
        next_cursor = (
            encode_cursor(SortKey.of(records[-1])) if len(records) == page_limit else None
        )
        return InteractionPage(records=tuple(records), next_cursor=next_cursor)

    def _iter(
        self,
        scan_filter: ScanFilter,
        block_range: BlockRangeLike | None,
        cursor: str | None,
        page_size: int | None,
    ) -> AsyncIterator[InteractionRecord]:
        return self._store.scan(
            scan_filter=scan_filter,
            block_range=_as_block_range(block_range),
            after=decode_cursor(cursor) if cursor else None,
            page_size=self._resolve_limit(page_size),
        )
