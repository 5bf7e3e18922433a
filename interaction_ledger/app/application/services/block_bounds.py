from __future__ import annotations

from typing import Literal

from interaction_ledger.app.domain.identity import normalize_chain
from interaction_ledger.app.domain.ports.out import InteractionLedgerStore


BlockSelector = int | str
_EARLIEST: Literal["earliest"] = "earliest"
_LATEST: Literal["latest"] = "latest"


def _parse_selector(value: BlockSelector) -> int | str:
    if isinstance(value, int):
        return value
    stripped = value.strip().lower()
    if stripped.isdigit():
        return int(stripped)
    return stripped


async def resolve_block_bounds(
    *,
    store: InteractionLedgerStore,
    chain: str,
    from_block: BlockSelector,
    to_block: BlockSelector,
) -> tuple[int, int]:
    """
    Resolve from_block / to_block into concrete block numbers for a chain.

    - ints and digit strings are returned as-is (no store access when both are concrete).
    - If from_block is "earliest" / "" -> lowest block recorded for the chain.
    - If to_block is "latest" / ""     -> highest block recorded for the chain.
    """
    fb_sel = _parse_selector(from_block)
    tb_sel = _parse_selector(to_block)

    if isinstance(fb_sel, int) and isinstance(tb_sel, int):
        return fb_sel, tb_sel

    bounds = await store.block_bounds(normalize_chain(chain))
    if bounds is None:
        raise RuntimeError(f"No interactions recorded for chain={chain!r}")

    min_block, max_block = bounds

    if isinstance(fb_sel, int):
        fb = fb_sel
    elif fb_sel in ("", _EARLIEST):
        fb = min_block
    else:
        raise ValueError(f"Unsupported from_block value: {from_block!r}")

    if isinstance(tb_sel, int):
        tb = tb_sel
    elif tb_sel in ("", _LATEST):
        tb = max_block
    else:
        raise ValueError(f"Unsupported to_block value: {to_block!r}")

    return fb, tb
