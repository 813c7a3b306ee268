# sinks.py
# SPDX-License-Identifier: MIT
"""JSONL sinks for converted document records."""
from __future__ import annotations

import gzip
import json
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, TextIO

from ..core.interfaces import Record
from ..core.log import get_logger

log = get_logger(__name__)


class _BaseJSONLSink:
    """Writes one compact JSON object per line to a temp file.

    The temp file is moved over the destination on :meth:`close`, so readers
    never observe a half-written output.
    """

    def __init__(self, out_path: str | os.PathLike[str]):
        self._path = Path(out_path)
        self._fp: TextIO | None = None
        self._tmp_path: Path | None = None
        self.records_written = 0

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Create the temp file next to the destination."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._tmp_path = self._path.parent / f"{self._path.name}.tmp"
        self._fp = self._open_handle(self._tmp_path)
        self.records_written = 0

    def write(self, record: Mapping[str, Any]) -> None:
        """Write a single JSON record as a compact line."""
        if self._fp is None:
            raise ValueError(f"{type(self).__name__} is not open")
        self._fp.write(json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n")
        self.records_written += 1

    def write_many(self, records: Iterable[Record]) -> None:
        for rec in records:
            self.write(rec)

    def close(self) -> None:
        """Close the handle and move the temp file into place."""
        if not self._fp:
            return
        try:
            self._fp.close()
        finally:
            self._fp = None
        if self._tmp_path:
            os.replace(self._tmp_path, self._path)
            self._tmp_path = None
        log.debug("Wrote %d record(s) to %s", self.records_written, self._path)

    def __enter__(self) -> _BaseJSONLSink:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _open_handle(self, path: Path):
        """Return a text write handle for ``path``."""
        raise NotImplementedError


class DocumentJSONLSink(_BaseJSONLSink):
    """Streaming JSONL sink (one document per line)."""

    def _open_handle(self, path: Path):
        return open(path, "w", encoding="utf-8", newline="")


class GzipDocumentJSONLSink(_BaseJSONLSink):
    """Streaming JSONL sink that gzip-compresses its output."""

    def _open_handle(self, path: Path):
        return gzip.open(path, "wt", encoding="utf-8", newline="")


__all__ = ["DocumentJSONLSink", "GzipDocumentJSONLSink"]
