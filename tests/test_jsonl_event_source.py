import io

from interaction_ledger.app.infrastructure.sources.jsonl_event_source import (
    JsonLinesInteractionEventSource,
)


def test_yields_stripped_non_blank_lines(tmp_path):
    path = tmp_path / "events.jsonl"
    path.write_text('{"hash": "0x01"}\n\n   \n  {"hash": "0x02"}  \nnot json\n', encoding="utf-8")

    assert list(JsonLinesInteractionEventSource(path)) == [
        '{"hash": "0x01"}',
        '{"hash": "0x02"}',
        "not json",
    ]


def test_dash_reads_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO('{"hash": "0x01"}\n'))
    assert list(JsonLinesInteractionEventSource("-")) == ['{"hash": "0x01"}']
