# kv_lines.py
# SPDX-License-Identifier: MIT

"""Key/value line reader over one byte range of a text file.

Each line holds one record: the key, a separator, then the value. Only the
first separator splits; a line without one becomes a key with an empty
value.

Split boundaries follow the usual line-split contract so that every line of
a file is read by exactly one split: a split that does not start at offset 0
skips its first (possibly partial) line, and a split keeps reading while the
next line starts at or before its end offset.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from ..core.codecs import default_codec_registry
from ..core.config import SEPARATOR_KEY, ReaderConfig
from ..core.interfaces import CodecLookup, KeyValueRecord
from ..core.log import BoundedWarnings, get_logger
from ..core.splits import FileSplit

log = get_logger(__name__)

__all__ = ["LineReadPolicy", "KeyValueLineReader", "split_key_value", "open_split_reader"]

_DEFAULT_MAX_OVERSIZED_WARNINGS = 3


@dataclass
class LineReadPolicy:
    """Separator, decoding and size limits for key/value lines."""

    separator: str = "\t"
    encoding: str = "utf-8"
    decode_errors: str = "strict"
    max_line_bytes: int | None = None
    max_oversized_line_warnings: int = _DEFAULT_MAX_OVERSIZED_WARNINGS

    @classmethod
    def from_config(
        cls,
        cfg: ReaderConfig,
        properties: Mapping[str, Any] | None = None,
    ) -> LineReadPolicy:
        """Build a policy from reader config; a separator job property wins."""
        separator = cfg.separator
        if properties and properties.get(SEPARATOR_KEY):
            separator = str(properties[SEPARATOR_KEY])
        return cls(
            separator=separator,
            encoding=cfg.encoding,
            decode_errors=cfg.decode_errors,
            max_line_bytes=cfg.max_line_bytes,
        )


def split_key_value(line: str, separator: str = "\t") -> KeyValueRecord:
    """Split ``line`` at the first ``separator`` into a record."""
    key, _, value = line.partition(separator)
    return KeyValueRecord(key=key, value=value)


def _strip_eol(raw: bytes) -> bytes:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


class KeyValueLineReader:
    """Reads :class:`KeyValueRecord` items from one :class:`FileSplit`.

    The file is opened on construction and released by :meth:`close`; use
    the reader as a context manager. Compressed inputs are decompressed with
    the codec registry and can only be read as a whole-file split.

    Attributes:
        split (FileSplit): Byte range assigned to this reader.
        policy (LineReadPolicy): Separator, decoding and size limits.
        lines_read (int): Records yielded so far.
        oversized_lines (int): Lines skipped for exceeding
            ``policy.max_line_bytes``.
    """

    def __init__(
        self,
        split: FileSplit,
        *,
        codecs: CodecLookup | None = None,
        policy: LineReadPolicy | None = None,
    ) -> None:
        self.split = split
        self.policy = policy or LineReadPolicy()
        if not self.policy.separator:
            raise ValueError("LineReadPolicy.separator must be non-empty")
        self.lines_read = 0
        self._oversized = BoundedWarnings(
            log,
            limit=self.policy.max_oversized_line_warnings,
            label=f"oversized line warnings for {split.path}",
        )
        registry = codecs if codecs is not None else default_codec_registry()
        codec = split.codec if split.codec is not None else registry.codec_for(split.path)
        self._fp: IO[bytes] | None = None
        if codec is not None:
            if split.start != 0:
                raise ValueError(
                    f"Cannot start reading {split.path} at offset {split.start}: "
                    f"{codec.name} input is only readable as a whole-file split"
                )
            self._fp = registry.open(split.path)
            self._end: int | None = None
        else:
            self._fp = open(Path(split.path), "rb")
            self._end = split.end
        self._pos = split.start
        if split.start != 0:
            try:
                self._fp.seek(split.start)
                # The previous split owns the line that crosses our start offset.
                self._pos += len(self._fp.readline())
            except BaseException:
                self.close()
                raise

    @property
    def position(self) -> int:
        """Offset of the next unread byte (decompressed offset for codecs)."""
        return self._pos

    @property
    def oversized_lines(self) -> int:
        return self._oversized.count

    def __enter__(self) -> KeyValueLineReader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[KeyValueRecord]:
        return self._records()

    def _readline(self) -> bytes:
        assert self._fp is not None
        limit = self.policy.max_line_bytes
        if limit is None:
            return self._fp.readline()
        # Room for a CRLF terminator after a line of exactly `limit` bytes.
        return self._fp.readline(limit + 2)

    def _drain_line(self) -> None:
        assert self._fp is not None
        while True:
            chunk = self._fp.readline(64 * 1024)
            self._pos += len(chunk)
            if not chunk or chunk.endswith(b"\n"):
                return

    def _records(self) -> Iterator[KeyValueRecord]:
        policy = self.policy
        while self._fp is not None and (self._end is None or self._pos <= self._end):
            raw = self._readline()
            if not raw:
                break
            self._pos += len(raw)
            limit = policy.max_line_bytes
            if limit is not None and len(_strip_eol(raw)) > limit:
                line_start = self._pos - len(raw)
                if not raw.endswith(b"\n"):
                    self._drain_line()
                self._oversized.warn(
                    "Skipping line at %s:%d exceeding max_line_bytes=%d",
                    self.split.path,
                    line_start,
                    limit,
                )
                continue
            line = _strip_eol(raw).decode(policy.encoding, policy.decode_errors)
            self.lines_read += 1
            yield split_key_value(line, policy.separator)

    def close(self) -> None:
        """Release the underlying file; safe to call more than once."""
        fp, self._fp = self._fp, None
        if fp is None:
            return
        fp.close()
        if self._oversized.count:
            log.info(
                "Finished %s [%d+%d]: lines=%d oversized_skipped=%d",
                self.split.path,
                self.split.start,
                self.split.length,
                self.lines_read,
                self._oversized.count,
            )


def open_split_reader(
    split: FileSplit,
    *,
    codecs: CodecLookup | None = None,
    reader_config: ReaderConfig | None = None,
    properties: Mapping[str, Any] | None = None,
) -> KeyValueLineReader:
    """Open a reader for ``split`` from config objects and job properties."""
    policy = LineReadPolicy.from_config(reader_config or ReaderConfig(), properties)
    return KeyValueLineReader(split, codecs=codecs, policy=policy)
