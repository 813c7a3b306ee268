from __future__ import annotations

import gzip
import logging
from contextlib import contextmanager
from pathlib import Path

import pytest

from kvdoc.core.config import SEPARATOR_KEY, ReaderConfig
from kvdoc.core.interfaces import KeyValueRecord
from kvdoc.core.splits import FileSplit, plan_splits
from kvdoc.sources.kv_lines import (
    KeyValueLineReader,
    LineReadPolicy,
    open_split_reader,
    split_key_value,
)


class _ListHandler(logging.Handler):
    def __init__(self, level: int) -> None:
        super().__init__(level)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@contextmanager
def _capture_reader_logs(level: int = logging.DEBUG):
    logger = logging.getLogger("kvdoc.sources.kv_lines")
    handler = _ListHandler(level)
    logger.addHandler(handler)
    old_level = logger.level
    logger.setLevel(level)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)
        logger.setLevel(old_level)


def _whole(path: Path) -> FileSplit:
    return FileSplit(path=path, start=0, length=path.stat().st_size)


def _read_all(split: FileSplit, **kwargs) -> list[KeyValueRecord]:
    with KeyValueLineReader(split, **kwargs) as reader:
        return list(reader)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("a\tb", ("a", "b")),
        ("a\tb\tc", ("a", "b\tc")),
        ("no separator", ("no separator", "")),
        ("\tvalue only", ("", "value only")),
        ("key\t", ("key", "")),
    ],
)
def test_split_key_value_uses_first_separator(line, expected):
    assert tuple(split_key_value(line)) == expected


def test_reader_strips_line_endings(tmp_path: Path):
    path = tmp_path / "crlf.tsv"
    path.write_bytes(b"one\t1\r\ntwo\t2\nthree\t3")

    records = _read_all(_whole(path))

    assert [(r.key, r.value) for r in records] == [("one", "1"), ("two", "2"), ("three", "3")]


def test_every_line_read_exactly_once_across_splits(tmp_path: Path):
    lines = [f"key{i}\t" + "v" * (i % 7) for i in range(40)]
    path = tmp_path / "many.tsv"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    expected = [f"key{i}" for i in range(40)]

    for split_size in (1, 2, 3, 5, 8, 13, 64, 10_000):
        keys: list[str] = []
        for split in plan_splits(path, split_size=split_size):
            keys.extend(r.key for r in _read_all(split))
        assert keys == expected, split_size


def test_split_starting_mid_line_skips_partial_line(tmp_path: Path):
    path = tmp_path / "two.tsv"
    path.write_bytes(b"aaaa\t1\nbbbb\t2\ncccc\t3\n")

    first = FileSplit(path=path, start=0, length=3)
    second = FileSplit(path=path, start=3, length=path.stat().st_size - 3)

    assert [r.key for r in _read_all(first)] == ["aaaa"]
    assert [r.key for r in _read_all(second)] == ["bbbb", "cccc"]


def test_split_boundary_on_line_start_belongs_to_previous_split(tmp_path: Path):
    path = tmp_path / "edge.tsv"
    path.write_bytes(b"aa\t1\nbb\t2\n")

    first = FileSplit(path=path, start=0, length=5)
    second = FileSplit(path=path, start=5, length=5)

    assert [r.key for r in _read_all(first)] == ["aa", "bb"]
    assert _read_all(second) == []


def test_custom_separator_from_policy_and_properties(tmp_path: Path):
    path = tmp_path / "pipe.txt"
    path.write_text("k|v|w\nplain\n", encoding="utf-8")

    records = _read_all(_whole(path), policy=LineReadPolicy(separator="|"))
    assert [(r.key, r.value) for r in records] == [("k", "v|w"), ("plain", "")]

    with open_split_reader(_whole(path), properties={SEPARATOR_KEY: "|"}) as reader:
        assert [r.key for r in reader] == ["k", "plain"]


def test_empty_separator_is_rejected(tmp_path: Path):
    path = tmp_path / "x.tsv"
    path.write_text("a\tb\n", encoding="utf-8")
    with pytest.raises(ValueError):
        KeyValueLineReader(_whole(path), policy=LineReadPolicy(separator=""))


def test_oversized_lines_are_skipped_with_bounded_warnings(tmp_path: Path):
    path = tmp_path / "long.tsv"
    body = [b"ok\t1", b"x" * 50, b"exact\t" + b"y" * 4, b"z" * 60, b"w" * 70, b"q" * 80, b"last\t2"]
    path.write_bytes(b"\r\n".join(body) + b"\r\n")
    policy = LineReadPolicy(max_line_bytes=10, max_oversized_line_warnings=2)

    with _capture_reader_logs() as logs:
        reader = KeyValueLineReader(_whole(path), policy=policy)
        keys = [r.key for r in reader]
        reader.close()

    assert keys == ["ok", "exact", "last"]
    assert reader.oversized_lines == 4
    assert reader.lines_read == 3
    warnings = [r for r in logs if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert "exceeding max_line_bytes=10" in warnings[0].getMessage()
    summary = [r for r in logs if r.levelno == logging.INFO]
    assert summary and "oversized_skipped=4" in summary[0].getMessage()


def test_gzip_input_reads_whole_file(tmp_path: Path):
    path = tmp_path / "data.tsv.gz"
    path.write_bytes(gzip.compress(b"a\t1\nb\t2\n"))
    split = plan_splits(path, split_size=4)[0]

    assert [r.key for r in _read_all(split)] == ["a", "b"]


def test_gzip_input_rejects_mid_file_split(tmp_path: Path):
    path = tmp_path / "data.tsv.gz"
    path.write_bytes(gzip.compress(b"a\t1\nb\t2\n"))
    with pytest.raises(ValueError, match="whole-file split"):
        KeyValueLineReader(FileSplit(path=path, start=5, length=5))


def test_strict_decoding_propagates_errors(tmp_path: Path):
    path = tmp_path / "bad.tsv"
    path.write_bytes(b"good\t1\nbad\t\xff\n")

    reader = KeyValueLineReader(_whole(path))
    it = iter(reader)
    assert next(it).key == "good"
    with pytest.raises(UnicodeDecodeError):
        next(it)
    reader.close()

    lenient = open_split_reader(_whole(path), reader_config=ReaderConfig(decode_errors="replace"))
    with lenient:
        assert [r.value for r in lenient] == ["1", "\ufffd"]


def test_close_is_idempotent_and_stops_iteration(tmp_path: Path):
    path = tmp_path / "x.tsv"
    path.write_text("a\t1\nb\t2\n", encoding="utf-8")
    reader = KeyValueLineReader(_whole(path))
    reader.close()
    reader.close()
    assert list(reader) == []


def test_missing_file_raises_oserror(tmp_path: Path):
    with pytest.raises(OSError):
        KeyValueLineReader(FileSplit(path=tmp_path / "absent.tsv", start=0, length=10))
