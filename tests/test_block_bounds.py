import asyncio

import pytest

from interaction_ledger.app.application.services.block_bounds import resolve_block_bounds


class BoundsStore:
    def __init__(self, bounds):
        self.bounds = bounds
        self.chains = []

    async def block_bounds(self, chain):
        self.chains.append(chain)
        return self.bounds


def _resolve(store, from_block, to_block, chain="ETH"):
    return asyncio.run(
        resolve_block_bounds(store=store, chain=chain, from_block=from_block, to_block=to_block)
    )


def test_concrete_bounds_skip_the_store():
    store = BoundsStore(None)
    assert _resolve(store, 5, "12") == (5, 12)
    assert store.chains == []


def test_symbolic_bounds_use_recorded_blocks():
    store = BoundsStore((3, 99))
    assert _resolve(store, "earliest", "latest") == (3, 99)
    assert _resolve(store, "", 50) == (3, 50)
    assert _resolve(store, " 10 ", "LATEST") == (10, 99)
    assert store.chains == ["eth", "eth", "eth"]


def test_empty_chain_is_an_error():
    with pytest.raises(RuntimeError, match="No interactions"):
        _resolve(BoundsStore(None), "earliest", "latest")


@pytest.mark.parametrize("from_block, to_block", [("genesis", "latest"), ("earliest", "pending")])
def test_unknown_selectors(from_block, to_block):
    with pytest.raises(ValueError):
        _resolve(BoundsStore((0, 1)), from_block, to_block)
