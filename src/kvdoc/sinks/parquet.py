# parquet.py
# SPDX-License-Identifier: MIT
"""Parquet sink writing one row per converted document.

Rows have a fixed schema: ``text`` plus the core metadata fields as string
columns, and any extractor-specific metadata serialized as a JSON object in
``extra``. Requires the ``parquet`` extra (pyarrow).
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from ..core.interfaces import Record
from ..core.log import get_logger

log = get_logger(__name__)

CORE_COLUMNS = ("title", "id", "uri", "collection_id", "language")

DOCUMENT_SCHEMA = pa.schema(
    [("text", pa.string())]
    + [(name, pa.string()) for name in CORE_COLUMNS]
    + [("extra", pa.string())]
)


class ParquetDocumentSink:
    """Buffer document records and write them to a single Parquet file."""

    def __init__(
        self,
        path: str | Path,
        *,
        compression: str = "snappy",
        row_group_size: Optional[int] = 10_000,
        overwrite: bool = True,
    ) -> None:
        """Initialize the sink configuration.

        Args:
            path (str | Path): Target ``.parquet`` file.
            compression (str): Parquet compression codec name.
            row_group_size (int | None): Records buffered per row group;
                None buffers everything until close.
            overwrite (bool): Replace an existing file instead of failing.
        """
        self._target = Path(path)
        self._compression = compression or "snappy"
        self._row_group_size = row_group_size
        self._overwrite = bool(overwrite)
        self._buffer: list[Record] = []
        self._writer: Optional[pq.ParquetWriter] = None
        self._closed = True
        self.records_written = 0

    @property
    def path(self) -> Path:
        return self._target

    def open(self) -> None:
        """Prepare the destination for writing.

        Raises:
            FileExistsError: If the target exists and ``overwrite`` is False.
        """
        self._buffer.clear()
        self._writer = None
        self.records_written = 0
        self._target.parent.mkdir(parents=True, exist_ok=True)
        if self._target.exists():
            if not self._overwrite:
                raise FileExistsError(f"Parquet output {self._target} already exists")
            self._target.unlink()
        self._closed = False

    def write(self, record: Record) -> None:
        """Buffer a record and flush when the row group is full."""
        if self._closed:
            log.warning("Write called on closed ParquetDocumentSink; ignoring record.")
            return
        self._buffer.append(record)
        if self._row_group_size and len(self._buffer) >= self._row_group_size:
            self._flush_buffer()

    def close(self) -> None:
        """Flush buffered rows and close the file.

        A sink that received no records still produces a valid empty file.
        """
        if self._closed:
            return
        try:
            if self._buffer or self._writer is None:
                self._flush_buffer(force=True)
        finally:
            if self._writer is not None:
                try:
                    self._writer.close()
                finally:
                    self._writer = None
            self._closed = True
        log.debug("Wrote %d record(s) to %s", self.records_written, self._target)

    def __enter__(self) -> ParquetDocumentSink:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _flush_buffer(self, *, force: bool = False) -> None:
        if not self._buffer and not force:
            return
        table = build_table(self._buffer)
        if self._writer is None:
            self._writer = pq.ParquetWriter(self._target, DOCUMENT_SCHEMA, compression=self._compression)
        self._writer.write_table(table)
        self.records_written += len(self._buffer)
        self._buffer.clear()


def build_table(rows: Sequence[Record]) -> pa.Table:
    """Convert ``{"text", "meta"}`` records into a table with the document schema."""
    out_rows: list[dict[str, Any]] = []
    for rec in rows:
        text_val = rec.get("text") if isinstance(rec, Mapping) else None
        meta = rec.get("meta") if isinstance(rec, Mapping) else None
        if not isinstance(meta, Mapping):
            meta = {}
        row: dict[str, Any] = {"text": "" if text_val is None else str(text_val)}
        for name in CORE_COLUMNS:
            value = meta.get(name)
            row[name] = None if value is None else str(value)
        extra = {k: v for k, v in meta.items() if k not in CORE_COLUMNS}
        row["extra"] = json.dumps(extra, ensure_ascii=False, sort_keys=True) if extra else None
        out_rows.append(row)
    return pa.Table.from_pylist(out_rows, schema=DOCUMENT_SCHEMA)


__all__ = ["ParquetDocumentSink", "DOCUMENT_SCHEMA", "build_table"]
