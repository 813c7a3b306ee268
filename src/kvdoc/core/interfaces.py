# interfaces.py
# SPDX-License-Identifier: MIT
"""Protocols shared by the converter, its collaborators, and sinks."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .codecs import Codec
    from .document import DocumentMetadata


# -----------------------------------------------------------------------------
# Shared data types
# -----------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class KeyValueRecord:
    """One raw ``(key, value)`` line read from an input split."""

    key: str
    value: str

    def __iter__(self) -> Iterator[str]:
        yield self.key
        yield self.value


# A sink record is a dict-like ``{"text": ..., "meta": {...}}`` mapping.
Record = Mapping[str, Any]


# -----------------------------------------------------------------------------
# Extension points
# -----------------------------------------------------------------------------

@runtime_checkable
class TextExtractor(Protocol):
    """Derives the document body text from a raw key/value pair.

    Useful to strip markup from the value, or to take the text from the key
    instead. Implementations must be stateless; one instance serves every
    record of a split.
    """

    def extract_document_text(self, key: str, value: str) -> str:
        ...


@runtime_checkable
class MetadataExtractor(Protocol):
    """Adds or overrides fields on a document's metadata block.

    Runs after the default title and id are set, so it may overwrite them.
    """

    def extract_document_metadata(self, key: str, value: str, metadata: DocumentMetadata) -> None:
        ...


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------

class CodecLookup(Protocol):
    """Classifies files by compression codec."""

    def codec_for(self, path: str | Path) -> Codec | None:
        ...

    def supports_splitting(self, codec: Codec) -> bool:
        ...

    def open(self, path: str | Path) -> IO[bytes]:
        ...


class LineReader(Protocol):
    """Yields raw key/value records for one split and owns the open file."""

    def __iter__(self) -> Iterator[KeyValueRecord]:
        ...

    def close(self) -> None:
        ...


class DocumentContainer(Protocol):
    """Minimal surface the converter needs from a document object."""

    text: str | None
    metadata: DocumentMetadata | None

    def reset(self) -> None:
        ...


@runtime_checkable
class Sink(Protocol):
    """Receives converted document records."""

    def open(self) -> None:
        ...

    def write(self, record: Record) -> None:
        ...

    def close(self) -> None:
        ...


__all__ = [
    "KeyValueRecord",
    "Record",
    "TextExtractor",
    "MetadataExtractor",
    "CodecLookup",
    "LineReader",
    "DocumentContainer",
    "Sink",
]
