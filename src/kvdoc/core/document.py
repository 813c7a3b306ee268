# document.py
# SPDX-License-Identifier: MIT
"""Default document container and the default title/id derivation.

A :class:`Document` is the per-record output of the converter: a body text
plus an optional metadata block. Hosts that bring their own container only
need to match the small surface used by :mod:`kvdoc.core.convert`
(``reset()``, ``text`` and ``metadata``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "DEFAULT_TITLE_WIDTH",
    "ELLIPSIS",
    "Document",
    "DocumentMetadata",
    "MetadataExistsError",
    "abbreviate",
    "key_hash",
    "default_title",
    "default_document_id",
]

DEFAULT_TITLE_WIDTH = 50
ELLIPSIS = "..."


class MetadataExistsError(RuntimeError):
    """Raised when a metadata block is created on a document that has one."""


def abbreviate(text: str, max_width: int = DEFAULT_TITLE_WIDTH) -> str:
    """Shorten ``text`` to ``max_width`` characters using a trailing ``...``.

    Text that already fits is returned unchanged. Longer text keeps its first
    ``max_width - 3`` characters followed by :data:`ELLIPSIS`, so the result
    is exactly ``max_width`` long.
    """
    if max_width < len(ELLIPSIS) + 1:
        raise ValueError(f"max_width must be at least {len(ELLIPSIS) + 1}; got {max_width}")
    if len(text) <= max_width:
        return text
    return text[: max_width - len(ELLIPSIS)] + ELLIPSIS


def key_hash(key: str) -> int:
    """Return the 32-bit signed polynomial hash of ``key``.

    Computed as ``s[0]*31^(n-1) + ... + s[n-1]`` over UTF-16 code units with
    int32 wraparound, which keeps ids identical across processes and
    compatible with ids produced by JVM-based tooling for the same keys.
    Python's builtin ``hash`` is salted per process and cannot be used here.
    """
    h = 0
    data = key.encode("utf-16-be", "surrogatepass")
    for i in range(0, len(data), 2):
        h = (31 * h + ((data[i] << 8) | data[i + 1])) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def default_title(key: str) -> str:
    return abbreviate(key, DEFAULT_TITLE_WIDTH)


def default_document_id(key: str, title: str | None = None) -> str:
    """Return ``<hash>title`` for ``key``; the hash covers the full key."""
    if title is None:
        title = default_title(key)
    return f"<{key_hash(key)}>{title}"


@dataclass(slots=True)
class DocumentMetadata:
    """Identifying metadata attached to a :class:`Document`.

    Attributes:
        title (str | None): Human-readable title.
        id (str | None): Document identifier, unique within a collection.
        uri (str | None): Optional source URI.
        collection_id (str | None): Optional collection/corpus identifier.
        language (str | None): Optional language tag.
        extra (dict[str, Any]): Free-form fields set by metadata extractors.
    """

    title: str | None = None
    id: str | None = None
    uri: str | None = None
    collection_id: str | None = None
    language: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, document: Document) -> DocumentMetadata:
        """Attach a fresh metadata block to ``document`` and return it.

        Raises:
            MetadataExistsError: If ``document`` already carries metadata.
        """
        if document.metadata is not None:
            raise MetadataExistsError("DocumentMetadata already present.")
        metadata = cls()
        document.metadata = metadata
        return metadata

    def as_dict(self) -> dict[str, Any]:
        """Return set fields as a flat dict; ``extra`` keys never shadow core fields."""
        out: dict[str, Any] = {}
        for key in ("title", "id", "uri", "collection_id", "language"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        for key, value in self.extra.items():
            out.setdefault(str(key), value)
        return out


@dataclass(slots=True)
class Document:
    """Mutable per-record container with body text and metadata.

    ``reset()`` drops all prior state, the metadata block included, so one
    container can be reused for every record of a split.
    """

    text: str | None = None
    metadata: DocumentMetadata | None = None
    language: str | None = None
    annotations: list[Any] = field(default_factory=list)

    def reset(self) -> None:
        self.text = None
        self.metadata = None
        self.language = None
        self.annotations.clear()

    def to_record(self) -> dict[str, Any]:
        """Return a JSON-ready ``{"text", "meta"}`` mapping for sinks."""
        meta = self.metadata.as_dict() if self.metadata is not None else {}
        if self.language and "language" not in meta:
            meta["language"] = self.language
        return {"text": self.text if self.text is not None else "", "meta": meta}
