# extractors.py
# SPDX-License-Identifier: MIT
"""Bundled text and metadata extractors.

All extractors are stateless and constructible without arguments, so the
registry can build them from a configured name. They are registered under
their fully-qualified class names and the short aliases listed in
:func:`register_builtin_extractors`.
"""

from __future__ import annotations

import json
import re
from html import unescape
from html.parser import HTMLParser
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from .log import get_logger

if TYPE_CHECKING:  # pragma: no cover - type-only deps
    from .document import DocumentMetadata
    from .registries import ExtractorRegistry

log = get_logger(__name__)

__all__ = [
    "KeyAsTextExtractor",
    "KeyAndValueTextExtractor",
    "StripHtmlTextExtractor",
    "JsonFieldTextExtractor",
    "UriKeyMetadataExtractor",
    "JsonFieldMetadataExtractor",
    "register_builtin_extractors",
]

_WS_RE = re.compile(r"\s+")
_BLOCK_TAGS = {
    "p", "div", "br", "li", "ul", "ol", "tr", "table", "section", "article",
    "h1", "h2", "h3", "h4", "h5", "h6", "header", "footer", "blockquote", "pre",
}
_SKIP_TAGS = {"script", "style", "noscript", "template"}


class KeyAsTextExtractor:
    """Uses the record key as document text."""

    def extract_document_text(self, key: str, value: str) -> str:
        return key


class KeyAndValueTextExtractor:
    """Joins key and value with a blank line, e.g. a title above a body."""

    def extract_document_text(self, key: str, value: str) -> str:
        if not value:
            return key
        return f"{key}\n\n{value}"


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.parts.append(data)


class StripHtmlTextExtractor:
    """Removes HTML markup from the value and normalizes whitespace.

    Block-level elements become line breaks; script and style contents are
    dropped; entities are unescaped.
    """

    def extract_document_text(self, key: str, value: str) -> str:
        if "<" not in value:
            return _collapse(unescape(value))
        parser = _TextCollector()
        parser.feed(value)
        parser.close()
        return _collapse("".join(parser.parts))


def _collapse(text: str) -> str:
    lines = (_WS_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _load_json_object(value: str) -> dict[str, Any] | None:
    stripped = value.lstrip()
    if not stripped.startswith("{"):
        return None
    try:
        obj = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


class JsonFieldTextExtractor:
    """Reads the ``text`` field of a JSON-object value.

    Values that are not JSON objects, or whose ``text`` is not a string, are
    used verbatim.
    """

    text_key = "text"

    def extract_document_text(self, key: str, value: str) -> str:
        obj = _load_json_object(value)
        if obj is None:
            return value
        text = obj.get(self.text_key)
        return text if isinstance(text, str) else value


class UriKeyMetadataExtractor:
    """Treats URL-shaped keys as the document URI and host as collection."""

    def extract_document_metadata(self, key: str, value: str, metadata: DocumentMetadata) -> None:
        parsed = urlparse(key.strip())
        if not (parsed.scheme and parsed.netloc):
            return
        metadata.uri = key.strip()
        metadata.collection_id = parsed.netloc.lower()


class JsonFieldMetadataExtractor:
    """Copies fields from a JSON-object value into the metadata block.

    ``title``, ``id``, ``uri``, ``language`` and ``collection_id`` override
    the corresponding metadata fields; other scalar fields except ``text``
    land in ``metadata.extra``.
    """

    core_fields = ("title", "id", "uri", "language", "collection_id")

    def extract_document_metadata(self, key: str, value: str, metadata: DocumentMetadata) -> None:
        obj = _load_json_object(value)
        if obj is None:
            return
        for name, field_value in obj.items():
            if name == "text":
                continue
            if name in self.core_fields:
                if field_value is not None:
                    setattr(metadata, name, str(field_value))
                continue
            if isinstance(field_value, (str, int, float, bool)):
                metadata.extra[name] = field_value


def register_builtin_extractors(registry: ExtractorRegistry) -> None:
    """Register the bundled extractors with their short aliases."""
    registry.register_text_extractor(KeyAsTextExtractor, aliases=("key_as_text",))
    registry.register_text_extractor(KeyAndValueTextExtractor, aliases=("key_and_value",))
    registry.register_text_extractor(StripHtmlTextExtractor, aliases=("strip_html",))
    registry.register_text_extractor(JsonFieldTextExtractor, aliases=("json_text",))
    registry.register_metadata_extractor(UriKeyMetadataExtractor, aliases=("uri_from_key",))
    registry.register_metadata_extractor(JsonFieldMetadataExtractor, aliases=("json_metadata",))
