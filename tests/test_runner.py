import gzip
import json
import logging
from pathlib import Path

import pytest

from kvdoc.core.config import KvdocConfig, SinkConfig
from kvdoc.core.document import default_document_id
from kvdoc.core.registries import ExtractorConfigError, default_registries
from kvdoc.core.runner import SplitTask, build_sink, convert_split, run_conversion
from kvdoc.core.splits import FileSplit
from kvdoc.sinks.sinks import DocumentJSONLSink, GzipDocumentJSONLSink


def _write_lines(path: Path, count: int, prefix: str = "key") -> list[str]:
    keys = [f"{prefix}{i:03d}" for i in range(count)]
    path.write_text("".join(f"{k}\tvalue for {k}\n" for k in keys), encoding="utf-8")
    return keys


def _read_jsonl(path: Path) -> list[dict]:
    opener = gzip.open if path.suffix == ".gz" else open
    with opener(path, "rt", encoding="utf-8") as fp:
        return [json.loads(line) for line in fp if line.strip()]


def _config(tmp_path: Path, inputs, **sink_kwargs) -> KvdocConfig:
    cfg = KvdocConfig(inputs=list(inputs))
    cfg.extractors.load_plugins = False
    cfg.pipeline.max_workers = 1
    cfg.splits.split_size = 64
    cfg.sinks = SinkConfig(output_path=tmp_path / "out" / "docs.jsonl", **sink_kwargs)
    return cfg


def test_run_conversion_writes_every_record_once_in_file_order(tmp_path: Path):
    first = tmp_path / "a.tsv"
    second = tmp_path / "b.tsv"
    keys = _write_lines(first, 25, "a") + _write_lines(second, 7, "b")
    cfg = _config(tmp_path, [first, second])

    stats = run_conversion(cfg)

    assert stats["inputs"] == 2
    assert stats["splits"] > 2
    assert stats["records"] == len(keys)
    assert stats["failed_splits"] == 0
    records = _read_jsonl(cfg.sinks.output_path)
    assert [r["meta"]["title"] for r in records] == keys
    assert records[0] == {
        "text": "value for a000",
        "meta": {"title": "a000", "id": default_document_id("a000")},
    }
    assert not (cfg.sinks.output_path.parent / "docs.jsonl.tmp").exists()


def test_run_conversion_applies_configured_extractors(tmp_path: Path):
    path = tmp_path / "pages.tsv"
    path.write_text("https://x.example/1\t<b>bold</b> text\n", encoding="utf-8")
    cfg = _config(tmp_path, [path])
    cfg.extractors.text_extractor = "strip_html"
    cfg.extractors.metadata_extractor = "uri_from_key"

    run_conversion(cfg)

    (record,) = _read_jsonl(cfg.sinks.output_path)
    assert record["text"] == "bold text"
    assert record["meta"]["uri"] == "https://x.example/1"


def test_run_conversion_reads_gzip_and_writes_gzip(tmp_path: Path):
    path = tmp_path / "data.tsv.gz"
    path.write_bytes(gzip.compress(b"k1\tv1\nk2\tv2\n"))
    cfg = _config(tmp_path, [path], compress=True)
    cfg.sinks.output_path = tmp_path / "out" / "docs.jsonl.gz"

    stats = run_conversion(cfg)

    assert stats["splits"] == 1
    assert [r["text"] for r in _read_jsonl(cfg.sinks.output_path)] == ["v1", "v2"]
    with gzip.open(cfg.sinks.output_path, "rt", encoding="utf-8") as fp:
        assert fp.readline().startswith("{")


def test_unknown_extractor_fails_before_output(tmp_path: Path):
    path = tmp_path / "a.tsv"
    _write_lines(path, 3)
    cfg = _config(tmp_path, [path])
    cfg.extractors.text_extractor = "does.not.Exist"

    with pytest.raises(ExtractorConfigError):
        run_conversion(cfg)
    assert not cfg.sinks.output_path.exists()


def test_missing_input_and_empty_inputs(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        run_conversion(_config(tmp_path, [tmp_path / "absent.tsv"]))
    with pytest.raises(ValueError, match="No input files"):
        run_conversion(_config(tmp_path, []))


def test_failed_split_is_counted_without_fail_fast(tmp_path: Path, caplog):
    good = tmp_path / "good.tsv"
    bad = tmp_path / "bad.tsv"
    _write_lines(good, 3)
    bad.write_bytes(b"broken\t\xff\xfe\n")
    cfg = _config(tmp_path, [good, bad])
    cfg.pipeline.fail_fast = False

    with caplog.at_level(logging.ERROR, logger="kvdoc"):
        stats = run_conversion(cfg)

    assert stats["failed_splits"] == 1
    assert stats["records"] == 3
    assert len(_read_jsonl(cfg.sinks.output_path)) == 3
    assert any("Failed converting" in r.getMessage() for r in caplog.records)


def test_failed_split_aborts_with_fail_fast(tmp_path: Path):
    bad = tmp_path / "bad.tsv"
    bad.write_bytes(b"broken\t\xff\n")
    with pytest.raises(UnicodeDecodeError):
        run_conversion(_config(tmp_path, [bad]))


def test_process_executor_produces_same_records(tmp_path: Path):
    path = tmp_path / "a.tsv"
    keys = _write_lines(path, 30)
    cfg = _config(tmp_path, [path])
    cfg.pipeline.executor_kind = "process"
    cfg.pipeline.max_workers = 2

    stats = run_conversion(cfg)

    assert stats["records"] == 30
    titles = sorted(r["meta"]["title"] for r in _read_jsonl(cfg.sinks.output_path))
    assert titles == keys


def test_run_conversion_accepts_injected_sink(tmp_path: Path):
    class ListSink:
        def __init__(self):
            self.records = []
            self.opened = self.closed = False

        def open(self):
            self.opened = True

        def write(self, record):
            self.records.append(record)

        def close(self):
            self.closed = True

    path = tmp_path / "a.tsv"
    _write_lines(path, 4)
    cfg = KvdocConfig(inputs=[path])
    cfg.extractors.load_plugins = False
    sink = ListSink()

    stats = run_conversion(cfg, sink=sink, registries=default_registries(load_plugins=False))

    assert sink.opened and sink.closed
    assert len(sink.records) == 4
    assert stats["output_path"] is None


def test_convert_split_returns_records_and_counts(tmp_path: Path):
    path = tmp_path / "a.tsv"
    path.write_bytes(b"k\tv\n" + b"x" * 100 + b"\n")
    task = SplitTask(
        split=FileSplit(path=path, start=0, length=path.stat().st_size),
        properties={},
        load_plugins=False,
    )
    task.reader.max_line_bytes = 20

    result = convert_split(task)

    assert result.records == [{"text": "v", "meta": {"title": "k", "id": default_document_id("k")}}]
    assert result.oversized_lines == 1
    assert result.anomalies == 0


def test_build_sink_selects_implementation(tmp_path: Path):
    assert isinstance(build_sink(SinkConfig(output_path=tmp_path / "a.jsonl")), DocumentJSONLSink)
    assert isinstance(build_sink(SinkConfig(output_path=tmp_path / "a.jsonl.gz")), GzipDocumentJSONLSink)
    assert isinstance(build_sink(SinkConfig(output_path=tmp_path / "a.jsonl", compress=True)), GzipDocumentJSONLSink)
    with pytest.raises(ValueError):
        build_sink(SinkConfig())


def test_build_sink_parquet(tmp_path: Path):
    pytest.importorskip("pyarrow")
    from kvdoc.sinks.parquet import ParquetDocumentSink

    sink = build_sink(SinkConfig(output_path=tmp_path / "a.parquet", format="parquet"))
    assert isinstance(sink, ParquetDocumentSink)
