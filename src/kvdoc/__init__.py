# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`kvdoc`.

kvdoc turns line-oriented key/value text files into analysis documents. The
main pieces are:

- :func:`is_splittable` / :func:`plan_splits` decide how an input file can be
  divided into independently readable byte ranges.
- :class:`ExtractorRegistry` maps configured names to text and metadata
  extractors, with entry-point plugins under the ``kvdoc.plugins`` group.
- :class:`KeyValueDocumentConverter` reads one split and produces one
  :class:`Document` per record, titled and identified from the record key.
- :func:`run_conversion` runs a whole job locally from a :class:`KvdocConfig`
  and writes the documents to a JSONL or Parquet sink.

Examples:
    Convert one split by hand::

        >>> from kvdoc import KeyValueDocumentConverter, KeyValueLineReader, plan_splits
        >>> split = plan_splits("pages.tsv", split_size=64 << 20)[0]
        >>> with KeyValueDocumentConverter(KeyValueLineReader(split)) as conv:
        ...     docs = [r.document for r in conv]

    Config-driven run::

        >>> from kvdoc import load_config_from_path, run_conversion
        >>> stats = run_conversion(load_config_from_path("job.toml"))
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Package version
# ---------------------------------------------------------------------------
try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("kvdoc")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


from .core.codecs import Codec, CodecRegistry, default_codec_registry
from .core.config import (
    METADATA_EXTRACTOR_KEY,
    SEPARATOR_KEY,
    TEXT_EXTRACTOR_KEY,
    KvdocConfig,
    load_config_from_path,
)
from .core.convert import (
    ConversionResult,
    ConverterState,
    KeyValueDocumentConverter,
    MetadataAnomaly,
)
from .core.document import Document, DocumentMetadata, MetadataExistsError
from .core.interfaces import KeyValueRecord, MetadataExtractor, TextExtractor
from .core.log import configure_logging, get_logger, temp_level
from .core.registries import (
    ExtractorConfigError,
    ExtractorRegistry,
    default_extractor_registry,
    set_metadata_extractor,
    set_text_extractor,
)
from .core.runner import run_conversion
from .core.splits import FileSplit, SplittabilityOracle, is_splittable, plan_splits
from .sinks.sinks import DocumentJSONLSink, GzipDocumentJSONLSink
from .sources.kv_lines import KeyValueLineReader, LineReadPolicy

# Optional extras (available only when optional dependencies are installed).
try:  # pragma: no cover - optional dependency
    from .sinks.parquet import ParquetDocumentSink
except Exception:  # pragma: no cover - keep import errors silent
    pass

PRIMARY_API = [
    "__version__",
    "KvdocConfig",
    "load_config_from_path",
    "TEXT_EXTRACTOR_KEY",
    "METADATA_EXTRACTOR_KEY",
    "SEPARATOR_KEY",
    "Codec",
    "CodecRegistry",
    "default_codec_registry",
    "FileSplit",
    "SplittabilityOracle",
    "is_splittable",
    "plan_splits",
    "KeyValueRecord",
    "KeyValueLineReader",
    "LineReadPolicy",
    "TextExtractor",
    "MetadataExtractor",
    "ExtractorRegistry",
    "ExtractorConfigError",
    "default_extractor_registry",
    "set_text_extractor",
    "set_metadata_extractor",
    "Document",
    "DocumentMetadata",
    "MetadataExistsError",
    "KeyValueDocumentConverter",
    "ConverterState",
    "ConversionResult",
    "MetadataAnomaly",
    "DocumentJSONLSink",
    "GzipDocumentJSONLSink",
    "run_conversion",
    "configure_logging",
    "get_logger",
    "temp_level",
]

__all__ = list(PRIMARY_API)
