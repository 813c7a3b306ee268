# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and helpers for kvdoc runs.

Declarative dataclasses for extractor selection, line reading, split
planning, execution, sinks and logging, plus helpers to serialize them and
load them from JSON or TOML. Converters themselves only see a flat mapping of
string job properties (see :meth:`KvdocConfig.job_properties`), which is the
form a hosting framework passes per split.
"""
from __future__ import annotations

import json
try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .log import DEFAULT_LOG_FORMAT, PACKAGE_LOGGER_NAME, configure_logging

__all__ = [
    "TEXT_EXTRACTOR_KEY",
    "METADATA_EXTRACTOR_KEY",
    "SEPARATOR_KEY",
    "DEFAULT_SPLIT_SIZE",
    "ExtractorConfig",
    "ReaderConfig",
    "SplitConfig",
    "PipelineConfig",
    "SinkConfig",
    "LoggingConfig",
    "KvdocConfig",
    "load_config_from_path",
    "set_property",
]

# Job property keys read once when a split reader is constructed.
TEXT_EXTRACTOR_KEY = "kvdoc.text2doc.documenttextextractor"
METADATA_EXTRACTOR_KEY = "kvdoc.text2doc.documentmetadataextractor"
SEPARATOR_KEY = "kvdoc.keyvaluelinereader.separator"

DEFAULT_SPLIT_SIZE = 128 * 1024 * 1024


@dataclass(slots=True)
class ExtractorConfig:
    """Selects the text and metadata extractors by registered name.

    Attributes:
        text_extractor (str | None): Registered text extractor name; None
            keeps the raw value as document text.
        metadata_extractor (str | None): Registered metadata extractor name;
            None keeps only the default title and id.
        load_plugins (bool): Whether entry-point plugins are loaded into the
            registry before names are resolved.
    """
    text_extractor: Optional[str] = None
    metadata_extractor: Optional[str] = None
    load_plugins: bool = True


@dataclass(slots=True)
class ReaderConfig:
    """Line reading options for the bundled key/value reader.

    Attributes:
        separator (str): Separates key from value; the first occurrence wins.
        encoding (str): Text encoding of input lines.
        decode_errors (str): ``errors`` argument for decoding lines.
        max_line_bytes (int | None): Lines longer than this are skipped.
    """
    separator: str = "\t"
    encoding: str = "utf-8"
    decode_errors: str = "strict"
    max_line_bytes: Optional[int] = None


@dataclass(slots=True)
class SplitConfig:
    """Byte-range planning for splittable inputs."""

    split_size: int = DEFAULT_SPLIT_SIZE


@dataclass(slots=True)
class PipelineConfig:
    """
    Controls how splits are executed by the local runner.

    max_workers = 0 → auto (os.cpu_count or 1, capped by the split count)
    submit_window = None → defaults to max_workers * 4
    executor_kind ∈ {"thread", "process"}
    fail_fast: re-raise the first failed split instead of logging and
    counting it.
    """
    max_workers: int = 0
    submit_window: Optional[int] = None
    executor_kind: str = "thread"
    fail_fast: bool = True


@dataclass(slots=True)
class SinkConfig:
    """Output options.

    Attributes:
        output_path (Path | None): Destination file (JSONL) or dataset
            path (Parquet).
        format (str): ``"jsonl"`` or ``"parquet"``.
        compress (bool): Gzip-compress JSONL output.
    """
    output_path: Optional[Path] = None
    format: str = "jsonl"
    compress: bool = False


@dataclass(slots=True)
class LoggingConfig:
    """Controls the package logger; set propagate/logger_name to integrate
    with host applications.
    """
    level: Union[int, str] = "INFO"
    propagate: bool = False
    fmt: Optional[str] = DEFAULT_LOG_FORMAT
    logger_name: str = PACKAGE_LOGGER_NAME

    def apply(self) -> None:
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name or PACKAGE_LOGGER_NAME,
        )


T = TypeVar("T")


@dataclass(slots=True)
class KvdocConfig:
    """Top-level configuration for a kvdoc run.

    Attributes:
        inputs (list[Path]): Key/value text files to convert.
        extractors (ExtractorConfig): Extractor selection.
        reader (ReaderConfig): Line reading options.
        splits (SplitConfig): Split planning.
        pipeline (PipelineConfig): Split execution.
        sinks (SinkConfig): Output options.
        logging (LoggingConfig): Package logger settings.
        properties (dict[str, str]): Extra raw job properties passed to every
            split reader; extractor settings above take precedence.
    """
    inputs: List[Path] = field(default_factory=list)
    extractors: ExtractorConfig = field(default_factory=ExtractorConfig)
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    splits: SplitConfig = field(default_factory=SplitConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    sinks: SinkConfig = field(default_factory=SinkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    properties: Dict[str, str] = field(default_factory=dict)

    def job_properties(self) -> Dict[str, str]:
        """Return the flat string properties handed to each split reader."""
        props: Dict[str, str] = {str(k): str(v) for k, v in self.properties.items()}
        if self.extractors.text_extractor:
            props[TEXT_EXTRACTOR_KEY] = self.extractors.text_extractor
        if self.extractors.metadata_extractor:
            props[METADATA_EXTRACTOR_KEY] = self.extractors.metadata_extractor
        props.setdefault(SEPARATOR_KEY, self.reader.separator)
        return props

    def validate(self) -> None:
        """Check value ranges and normalize enum-like strings.

        Raises:
            ValueError: On an empty separator, a non-positive split size, an
                unknown executor kind or sink format, or a negative worker
                count.
        """
        if not self.reader.separator:
            raise ValueError("reader.separator must be a non-empty string.")
        if self.reader.max_line_bytes is not None and self.reader.max_line_bytes <= 0:
            raise ValueError("reader.max_line_bytes must be positive when set.")
        if self.splits.split_size <= 0:
            raise ValueError(f"splits.split_size must be positive; got {self.splits.split_size!r}.")
        kind = (self.pipeline.executor_kind or "thread").strip().lower()
        if kind not in {"thread", "process"}:
            raise ValueError(
                f"pipeline.executor_kind must be 'thread' or 'process'; got {self.pipeline.executor_kind!r}."
            )
        self.pipeline.executor_kind = kind
        if self.pipeline.max_workers < 0:
            raise ValueError("pipeline.max_workers must be >= 0.")
        fmt = (self.sinks.format or "jsonl").strip().lower()
        if fmt not in {"jsonl", "parquet"}:
            raise ValueError(f"sinks.format must be 'jsonl' or 'parquet'; got {self.sinks.format!r}.")
        self.sinks.format = fmt

    # -------------------------
    # Serialization helpers
    # -------------------------
    def to_dict(self) -> Dict[str, Any]:
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Write this configuration as JSON and return the path written."""
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a KvdocConfig from a TOML file.

        Tables mirror the dataclass layout: [extractors], [reader], [splits],
        [pipeline], [sinks], [logging], [properties].
        """
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
        if not isinstance(data, Mapping):
            raise TypeError(f"Top-level TOML document must be a mapping; got {type(data).__name__}.")
        return cls.from_dict(data)


def load_config_from_path(path: str | Path) -> KvdocConfig:
    """Load a KvdocConfig from a ``.toml`` or ``.json`` file.

    Raises:
        ValueError: If the file extension is not ``.toml`` or ``.json``.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        return KvdocConfig.from_toml(p)
    if suffix == ".json":
        return KvdocConfig.from_json(p)
    raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")


def set_property(properties: MutableMapping[str, str], key: str, value: str | None) -> None:
    """Set ``key`` to ``value``, removing it when ``value`` is None or empty."""
    if value:
        properties[key] = value
    else:
        properties.pop(key, None)


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize a dataclass to a JSON-friendly dict, skipping None values."""
    result: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        result[f.name] = _serialize_value(value)
    return result


def _serialize_value(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items() if v is not None}
    return value


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Instantiate dataclass ``cls`` from a mapping, recursing into nested configs.

    Raises:
        ValueError: If ``data`` contains keys that are not fields of ``cls``.
    """
    if data is None:
        return cls()  # type: ignore[call-arg]
    type_hints = get_type_hints(cls)
    known = {f.name for f in fields(cls)}
    unknown = sorted(k for k in data if k not in known)
    if unknown:
        raise ValueError(
            f"Unsupported options for {cls.__name__}: {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(known))}"
        )
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = _coerce_value(type_hints.get(f.name, f.type), data[f.name])
    return cls(**kwargs)  # type: ignore[arg-type]


def _coerce_value(expected_type: Any, value: Any) -> Any:
    """Coerce ``value`` into the shape implied by ``expected_type``."""
    if value is None:
        return None
    base_type = _strip_optional(expected_type)
    if isinstance(base_type, type) and is_dataclass(base_type):
        return _dataclass_from_dict(base_type, value)
    origin = get_origin(base_type)
    if origin in (list, tuple):
        args = get_args(base_type)
        inner = args[0] if args else Any
        items = [_coerce_value(inner, v) for v in value]
        return tuple(items) if origin is tuple else items
    if origin is dict:
        key_type, val_type = get_args(base_type) or (Any, Any)
        return {_coerce_value(key_type, k): _coerce_value(val_type, v) for k, v in value.items()}
    if base_type is Path:
        return Path(value)
    if base_type in {str, int, float, bool}:
        return base_type(value)
    return value


def _strip_optional(typ: Any) -> Any:
    """Return the non-None member of ``Optional[X]``; other types pass through."""
    if get_origin(typ) is Union:
        args = [arg for arg in get_args(typ) if arg is not type(None)]
        if len(args) == 1:
            return _strip_optional(args[0])
    return typ
