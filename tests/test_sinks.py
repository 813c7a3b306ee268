import gzip
import json
from pathlib import Path

import pytest

from kvdoc.sinks.sinks import DocumentJSONLSink, GzipDocumentJSONLSink

RECORDS = [
    {"text": "first", "meta": {"title": "a", "id": "<97>a"}},
    {"text": "zweite Zeile ü", "meta": {"title": "b", "id": "<98>b", "score": 3}},
]


def test_jsonl_sink_writes_compact_lines_atomically(tmp_path: Path):
    out = tmp_path / "nested" / "docs.jsonl"
    sink = DocumentJSONLSink(out)
    sink.open()
    for rec in RECORDS:
        sink.write(rec)
    tmp = out.parent / "docs.jsonl.tmp"
    assert tmp.exists() and not out.exists()
    sink.close()

    assert not tmp.exists()
    lines = out.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == RECORDS
    assert lines[0] == '{"text":"first","meta":{"title":"a","id":"<97>a"}}'
    assert "ü" in lines[1]
    assert sink.records_written == 2


def test_jsonl_sink_requires_open(tmp_path: Path):
    sink = DocumentJSONLSink(tmp_path / "x.jsonl")
    with pytest.raises(ValueError):
        sink.write(RECORDS[0])
    sink.close()


def test_gzip_sink_context_manager(tmp_path: Path):
    out = tmp_path / "docs.jsonl.gz"
    with GzipDocumentJSONLSink(out) as sink:
        sink.write_many(RECORDS)

    with gzip.open(out, "rt", encoding="utf-8") as fp:
        assert [json.loads(line) for line in fp] == RECORDS


def test_parquet_sink_round_trip(tmp_path: Path):
    pq = pytest.importorskip("pyarrow.parquet")
    from kvdoc.sinks.parquet import ParquetDocumentSink

    out = tmp_path / "docs.parquet"
    sink = ParquetDocumentSink(out, row_group_size=1)
    with sink:
        for rec in RECORDS:
            sink.write(rec)
        sink.write({"text": None, "meta": None})

    table = pq.read_table(out)
    assert table.column_names == ["text", "title", "id", "uri", "collection_id", "language", "extra"]
    rows = table.to_pylist()
    assert [r["text"] for r in rows] == ["first", "zweite Zeile ü", ""]
    assert rows[0]["title"] == "a" and rows[0]["extra"] is None
    assert json.loads(rows[1]["extra"]) == {"score": 3}
    assert rows[2]["id"] is None
    assert sink.records_written == 3


def test_parquet_sink_empty_and_overwrite(tmp_path: Path):
    pq = pytest.importorskip("pyarrow.parquet")
    from kvdoc.sinks.parquet import ParquetDocumentSink

    out = tmp_path / "empty.parquet"
    with ParquetDocumentSink(out):
        pass
    assert pq.read_table(out).num_rows == 0

    with pytest.raises(FileExistsError):
        ParquetDocumentSink(out, overwrite=False).open()

    closed = ParquetDocumentSink(out)
    closed.write(RECORDS[0])
    assert closed.records_written == 0
