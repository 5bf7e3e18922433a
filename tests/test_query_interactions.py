"""Tests for range queries, pagination and iteration."""

import asyncio
import base64
import json

import pytest

from interaction_ledger.app.domain.errors import InvalidCursorError, ValidationError
from interaction_ledger.app.domain.models import BlockRange

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def test_contract_range_query_is_inclusive_and_ordered(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            await ledger.ingestor.ingest_batch(
                [
                    make_event(hash="0x03", block=15),
                    make_event(hash="0x01", block=5),
                    make_event(hash="0x02", block=10),
                    make_event(hash="0x04", block=10, contract="0xddd"),
                ]
            )

            page = await ledger.queries.query_by_contract("eth", "0xccc", BlockRange(0, 12))
            assert [(r.block, r.hash) for r in page] == [(5, "0x01"), (10, "0x02")]
            assert page.next_cursor is None

            edge = await ledger.queries.query_by_contract("eth", "0xccc", (10, 15))
            assert [r.block for r in edge] == [10, 15]

            everything = await ledger.queries.query_by_chain("ETH")
            assert len(everything) == 4

    asyncio.run(scenario())


def test_address_query_normalizes_checksummed_input(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            await ledger.ingestor.ingest(make_event(address=CHECKSUMMED))

            page = await ledger.queries.query_by_address("eth", CHECKSUMMED.lower())
            assert [r.address for r in page] == [CHECKSUMMED.lower()]

            same = await ledger.queries.query_by_address("Eth", CHECKSUMMED)
            assert same.records == page.records

    asyncio.run(scenario())


def test_pagination_has_no_gaps_or_overlaps(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            # two records share block 3 to exercise the hash tie-breaker
            events = [make_event(hash=f"0x{i:02x}", block=min(i, 3)) for i in range(1, 8)]
            await ledger.ingestor.ingest_batch(events)

            collected = []
            cursor = None
            pages = 0
            while True:
                page = await ledger.queries.query_by_contract("eth", "0xccc", limit=2, cursor=cursor)
                pages += 1
                collected.extend(page.records)
                cursor = page.next_cursor
                if cursor is None:
                    break

            assert pages == 4
            assert [r.hash for r in collected] == [f"0x{i:02x}" for i in range(1, 8)]

            # re-issuing a cursor is safe
            first = await ledger.queries.query_by_contract("eth", "0xccc", limit=2)
            again_a = await ledger.queries.query_by_contract("eth", "0xccc", limit=2, cursor=first.next_cursor)
            again_b = await ledger.queries.query_by_contract("eth", "0xccc", limit=2, cursor=first.next_cursor)
            assert again_a == again_b

    asyncio.run(scenario())


def test_limit_validation(open_ledger):
    async def scenario():
        async with open_ledger() as ledger:
            for bad in (0, -1, 1_000_000):
                with pytest.raises(ValidationError) as exc:
                    await ledger.queries.query_by_chain("eth", limit=bad)
                assert exc.value.field == "limit"

    asyncio.run(scenario())


def test_invalid_range_and_cursor(open_ledger):
    async def scenario():
        async with open_ledger() as ledger:
            with pytest.raises(ValidationError):
                await ledger.queries.query_by_contract("eth", "0xccc", (10, 5))
            with pytest.raises(InvalidCursorError):
                await ledger.queries.query_by_contract("eth", "0xccc", cursor="@@@")

    asyncio.run(scenario())


def test_block_range_beyond_64_bits_is_rejected(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            await ledger.ingestor.ingest(make_event())
            with pytest.raises(ValidationError) as exc:
                await ledger.queries.query_by_contract("eth", "0xccc", (0, 2**64))
            assert exc.value.field == "block_range"

            # the largest storable block is still a valid bound
            page = await ledger.queries.query_by_contract("eth", "0xccc", (0, 2**63 - 1))
            assert [r.hash for r in page] == ["0xabc"]

    asyncio.run(scenario())


def test_cursor_block_beyond_64_bits_is_rejected(open_ledger):
    raw = json.dumps({"v": 1, "b": 2**70, "h": "0x1"}).encode()
    cursor = base64.urlsafe_b64encode(raw).decode().rstrip("=")

    async def scenario():
        async with open_ledger() as ledger:
            with pytest.raises(InvalidCursorError):
                await ledger.queries.query_by_contract("eth", "0xccc", cursor=cursor)

    asyncio.run(scenario())


def test_unknown_contract_yields_empty_page(open_ledger):
    async def scenario():
        async with open_ledger() as ledger:
            page = await ledger.queries.query_by_contract("eth", "0xfff")
            assert len(page) == 0
            assert page.next_cursor is None

    asyncio.run(scenario())


def test_iteration_can_stop_early(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            await ledger.ingestor.ingest_batch([make_event(hash=f"0x{i:02x}", block=i) for i in range(10)])

            seen = []
            async for record in ledger.queries.iter_by_contract("eth", "0xccc", page_size=3):
                seen.append(record.block)
                if len(seen) == 4:
                    break
            assert seen == [0, 1, 2, 3]

            by_address = [r.block async for r in ledger.queries.iter_by_address("eth", "0xaaa", (7, 100))]
            assert by_address == [7, 8, 9]

    asyncio.run(scenario())


def test_get_normalizes_hash(open_ledger, make_event):
    async def scenario():
        async with open_ledger() as ledger:
            await ledger.ingestor.ingest(make_event(hash="0xDEAD"))
            record = await ledger.queries.get("0xdEaD")
            assert record is not None
            assert record.hash == "0xdead"

    asyncio.run(scenario())
