# convert.py
# SPDX-License-Identifier: MIT
"""Record-to-document conversion for one input split.

A :class:`KeyValueDocumentConverter` pulls raw key/value records from a line
reader and turns each into a populated document: body text from the value
(or the configured text extractor), a default title and id derived from the
key, then any fields set by the configured metadata extractor.
"""
from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .document import (
    Document,
    DocumentMetadata,
    MetadataExistsError,
    default_document_id,
    default_title,
)
from .interfaces import DocumentContainer, MetadataExtractor, TextExtractor
from .log import BoundedWarnings, get_logger
from .registries import ExtractorRegistry, shared_registries

log = get_logger(__name__)

__all__ = [
    "ConverterState",
    "MetadataAnomaly",
    "ConversionResult",
    "ConverterStats",
    "KeyValueDocumentConverter",
]

_MAX_ANOMALY_WARNINGS = 5


class ConverterState(enum.Enum):
    OPEN = "open"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class MetadataAnomaly:
    """A record whose document already carried a metadata block.

    Default metadata was not created and the metadata extractor did not run
    for this record; the existing block was left as is.
    """

    key: str
    reason: str


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """One converted record: its key, the document, and any anomaly."""

    key: str
    document: Any
    anomaly: MetadataAnomaly | None = None


@dataclass(slots=True)
class ConverterStats:
    records: int = 0
    anomalies: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"records": self.records, "anomalies": self.anomalies}


class KeyValueDocumentConverter:
    """Converts the key/value records of one split into documents.

    The converter is ``OPEN`` until the reader runs out, then ``EXHAUSTED``
    for good. It owns the reader: :meth:`close` (or leaving a ``with`` block)
    releases it, including when iteration is abandoned early.

    Args:
        reader (Iterable): Yields ``(key, value)`` pairs, usually a
            :class:`kvdoc.sources.kv_lines.KeyValueLineReader`. Read errors
            propagate unchanged.
        text_extractor (TextExtractor | None): Derives the body text; the raw
            value is used when None.
        metadata_extractor (MetadataExtractor | None): Adjusts metadata after
            the default title and id are set.
        document_factory (Callable[[], DocumentContainer]): Supplies the
            container for each record.
    """

    def __init__(
        self,
        reader: Iterable[Any],
        *,
        text_extractor: TextExtractor | None = None,
        metadata_extractor: MetadataExtractor | None = None,
        document_factory: Callable[[], DocumentContainer] = Document,
    ) -> None:
        self.reader = reader
        self.text_extractor = text_extractor
        self.metadata_extractor = metadata_extractor
        self.document_factory = document_factory
        self.stats = ConverterStats()
        self._records: Iterator[Any] | None = None
        self._state = ConverterState.OPEN
        self._closed = False
        self._anomaly_warnings = BoundedWarnings(
            log, limit=_MAX_ANOMALY_WARNINGS, label="metadata anomaly warnings"
        )

    @classmethod
    def from_properties(
        cls,
        reader: Iterable[Any],
        properties: Mapping[str, Any],
        *,
        registry: ExtractorRegistry | None = None,
        document_factory: Callable[[], DocumentContainer] = Document,
    ) -> KeyValueDocumentConverter:
        """Build a converter, resolving extractors named in ``properties``.

        Resolution happens once, here. Without ``registry`` the process-wide
        default registry from :func:`kvdoc.core.registries.shared_registries`
        is used. On a configuration error the reader is closed and the error
        re-raised before any record is read.

        Raises:
            ExtractorConfigError: If a configured extractor cannot be resolved.
        """
        try:
            resolved = (registry or shared_registries().extractors).resolve(properties)
        except Exception:
            _close_reader(reader)
            raise
        return cls(
            reader,
            text_extractor=resolved.text,
            metadata_extractor=resolved.metadata,
            document_factory=document_factory,
        )

    @property
    def state(self) -> ConverterState:
        return self._state

    # -------------------------
    # Record conversion
    # -------------------------
    def convert_value(self, key: str, value: str, document: DocumentContainer) -> MetadataAnomaly | None:
        """Populate ``document`` from one key/value pair.

        Returns:
            MetadataAnomaly | None: Set when ``document`` already had a
            metadata block, which is then left untouched.

        Raises:
            TypeError: If the text extractor returns a non-string.
        """
        if self.text_extractor is not None:
            text = self.text_extractor.extract_document_text(key, value)
            if not isinstance(text, str):
                raise TypeError(
                    f"{type(self.text_extractor).__name__}.extract_document_text returned "
                    f"{type(text).__name__}, expected str"
                )
        else:
            text = value

        document.reset()
        document.text = text

        title = default_title(key)
        try:
            metadata = DocumentMetadata.create(document)
        except MetadataExistsError as exc:
            anomaly = MetadataAnomaly(key=key, reason=str(exc))
            self.stats.anomalies += 1
            self._anomaly_warnings.warn("Keeping existing metadata for record %r: %s", title, exc)
            return anomaly
        metadata.title = title
        metadata.id = default_document_id(key, title)
        if self.metadata_extractor is not None:
            self.metadata_extractor.extract_document_metadata(key, value, metadata)
        return None

    def next(self) -> ConversionResult | None:
        """Convert the next record, or return None once the range is exhausted."""
        if self._state is ConverterState.EXHAUSTED:
            return None
        if self._closed:
            raise ValueError("Converter is closed")
        if self._records is None:
            self._records = iter(self.reader)
        try:
            key, value = next(self._records)
        except StopIteration:
            self._state = ConverterState.EXHAUSTED
            log.debug("Range exhausted after %d record(s)", self.stats.records)
            return None
        document = self.document_factory()
        anomaly = self.convert_value(key, value, document)
        self.stats.records += 1
        return ConversionResult(key=key, document=document, anomaly=anomaly)

    def __iter__(self) -> Iterator[ConversionResult]:
        while True:
            result = self.next()
            if result is None:
                return
            yield result

    def documents(self) -> Iterator[Any]:
        """Yield bare documents, dropping keys and anomalies."""
        for result in self:
            yield result.document

    # -------------------------
    # Lifecycle
    # -------------------------
    def close(self) -> None:
        """Release the reader; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._records = None
        _close_reader(self.reader)
        log.debug("Converter closed: %s", self.stats.as_dict())

    def __enter__(self) -> KeyValueDocumentConverter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _close_reader(reader: Any) -> None:
    close_fn = getattr(reader, "close", None)
    if callable(close_fn):
        close_fn()
