"""End-to-end tests of the ledger CLI against a SQLite database."""

import json

import pytest
from typer.testing import CliRunner

from interaction_ledger.app.interface.cli.__main__ import app

runner = CliRunner()


def _json_lines(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


def _invoke(*args: str, database_url: str):
    return runner.invoke(app, ["ledger", *args, "--database-url", database_url])


@pytest.fixture
def events_file(tmp_path):
    events = [
        {"hash": "0x01", "block": 5, "address": "0xaaa", "contract": "0xccc", "chain": "eth"},
        {"hash": "0x02", "block": 10, "address": "0xaaa", "contract": "0xccc", "chain": "eth"},
        {"hash": "0x03", "block": 15, "address": "0xbbb", "contract": "0xccc", "chain": "eth"},
        {"hash": "0x01", "block": 5, "address": "0xaaa", "contract": "0xccc", "chain": "eth"},
    ]
    path = tmp_path / "events.jsonl"
    path.write_text("\n".join(json.dumps(e) for e in events) + "\n\n", encoding="utf-8")
    return path


def test_ingest_query_and_revise(database_url, events_file, tmp_path):
    assert _invoke("init-db", database_url=database_url).exit_code == 0

    ingested = _invoke("ingest", str(events_file), database_url=database_url)
    assert ingested.exit_code == 0, ingested.output
    [report] = [line for line in _json_lines(ingested.stdout) if "total" in line]
    assert report["accepted"] == 3
    assert report["duplicate"] == 1
    assert report["total"] == 4

    queried = _invoke("query-contract", "eth", "0xCCC", "--to-block", "12", database_url=database_url)
    assert queried.exit_code == 0, queried.output
    lines = _json_lines(queried.stdout)
    assert [line["hash"] for line in lines if "hash" in line] == ["0x01", "0x02"]
    assert lines[-1] == {"next_cursor": None}

    by_address = _invoke("query-address", "eth", "0xbbb", database_url=database_url)
    assert [line.get("hash") for line in _json_lines(by_address.stdout)] == ["0x03", None]

    summary = _invoke("summary", "eth", database_url=database_url)
    assert _json_lines(summary.stdout) == [
        {"chain": "eth", "records": 3, "min_block": 5, "max_block": 15}
    ]

    superseded = _invoke(
        "supersede", "0x02",
        "--block", "11", "--address", "0xaaa", "--contract", "0xccc", "--chain", "eth",
        database_url=database_url,
    )
    assert superseded.exit_code == 0, superseded.output
    assert _json_lines(superseded.stdout)[0]["status"] == "superseded"

    revisions = _invoke("revisions", "--hash", "0x02", database_url=database_url)
    [revision] = _json_lines(revisions.stdout)
    assert revision["kind"] == "supersede"
    assert revision["source"] == "operator"
    assert revision["previous"]["block"] == 10
    assert revision["proposed"]["block"] == 11

    conflicting = tmp_path / "conflicting.jsonl"
    conflicting.write_text(
        json.dumps({"hash": "0x03", "block": 16, "address": "0xbbb", "contract": "0xccc", "chain": "eth"}),
        encoding="utf-8",
    )
    failed = _invoke("ingest", str(conflicting), database_url=database_url)
    assert failed.exit_code == 1
    assert "conflict" in failed.output


def test_ledger_errors_exit_with_code_two(database_url):
    _invoke("init-db", database_url=database_url)
    result = _invoke(
        "supersede", "0x404",
        "--block", "1", "--address", "0xaaa", "--contract", "0xccc", "--chain", "eth",
        database_url=database_url,
    )
    assert result.exit_code == 2
    assert "error[not_found]" in result.output


def test_query_on_empty_chain(database_url):
    _invoke("init-db", database_url=database_url)
    result = _invoke("query-contract", "eth", "0xccc", database_url=database_url)
    assert result.exit_code == 0
    assert _json_lines(result.stdout) == [{"next_cursor": None}]


@pytest.mark.parametrize(
    "args",
    [
        ("query-contract", "eth", "0xccc", "--from-block=-5"),
        ("revisions", "--kind", "bogus"),
    ],
)
def test_invalid_arguments_exit_with_code_two(database_url, events_file, args):
    _invoke("init-db", database_url=database_url)
    _invoke("ingest", str(events_file), database_url=database_url)

    result = _invoke(*args, database_url=database_url)
    assert result.exit_code == 2
    assert "error[invalid_argument]" in result.output


def test_from_block_past_the_last_block_yields_empty_page(database_url, events_file):
    _invoke("init-db", database_url=database_url)
    _invoke("ingest", str(events_file), database_url=database_url)

    result = _invoke("query-contract", "eth", "0xccc", "--from-block", "100", database_url=database_url)
    assert result.exit_code == 0, result.output
    assert _json_lines(result.stdout) == [{"next_cursor": None}]
