# registries.py
# SPDX-License-Identifier: MIT
"""Name → factory registry for the text and metadata extraction strategies.

Names are resolved once per split, when a converter is built; the resulting
instances are then applied to every record of that split. A name that cannot
be resolved is a configuration error and is raised immediately instead of
silently falling back to the default behavior.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from .config import METADATA_EXTRACTOR_KEY, TEXT_EXTRACTOR_KEY, set_property
from .interfaces import MetadataExtractor, TextExtractor
from .log import get_logger

if TYPE_CHECKING:  # pragma: no cover - type-only deps
    from .codecs import CodecRegistry
    from .document import DocumentMetadata

log = get_logger(__name__)

__all__ = [
    "ExtractorConfigError",
    "ResolvedExtractors",
    "CallableTextExtractor",
    "CallableMetadataExtractor",
    "ExtractorRegistry",
    "qualified_name",
    "set_text_extractor",
    "set_metadata_extractor",
    "default_extractor_registry",
    "RegistryBundle",
    "default_registries",
    "shared_registries",
]

F = TypeVar("F", bound=Callable[..., Any])


class ExtractorConfigError(ValueError):
    """An extractor name is unknown, not constructible, or of the wrong kind."""


def qualified_name(obj: Any) -> str:
    """Return ``module.QualName`` for a class or function."""
    return f"{obj.__module__}.{obj.__qualname__}"


@dataclass(slots=True, frozen=True)
class ResolvedExtractors:
    """Extractor instances for one split; None means default behavior."""

    text: TextExtractor | None = None
    metadata: MetadataExtractor | None = None


@dataclass(slots=True, frozen=True)
class CallableTextExtractor:
    """Adapter exposing a ``(key, value) -> str`` function as a TextExtractor."""

    fn: Callable[[str, str], str]

    def extract_document_text(self, key: str, value: str) -> str:
        return self.fn(key, value)


@dataclass(slots=True, frozen=True)
class CallableMetadataExtractor:
    """Adapter exposing a ``(key, value, metadata) -> None`` function as a MetadataExtractor."""

    fn: Callable[[str, str, "DocumentMetadata"], None]

    def extract_document_metadata(self, key: str, value: str, metadata: DocumentMetadata) -> None:
        self.fn(key, value, metadata)


class ExtractorRegistry:
    """Registry for text and metadata extractor factories.

    A factory is any zero-argument callable returning an extractor, usually
    the extractor class itself. Each factory is registered under its
    fully-qualified name unless ``name`` is given, plus optional aliases.
    """

    def __init__(self) -> None:
        self._text: dict[str, Callable[[], TextExtractor]] = {}
        self._metadata: dict[str, Callable[[], MetadataExtractor]] = {}

    # -------------------------
    # Registration
    # -------------------------
    @staticmethod
    def _add(
        table: dict[str, Any],
        kind: str,
        factory: Callable[[], Any],
        *,
        name: str | None,
        aliases: Iterable[str],
        replace: bool,
    ) -> str:
        if not callable(factory):
            raise TypeError(f"{kind} extractor factory must be callable; got {factory!r}")
        primary = name or qualified_name(factory)
        names = [primary, *aliases]
        if not replace:
            taken = [n for n in names if n in table]
            if taken:
                raise ValueError(f"{kind.capitalize()} extractor {taken[0]!r} is already registered")
        for n in names:
            table[n] = factory
        return primary

    def register_text_extractor(
        self,
        factory: Callable[[], TextExtractor],
        *,
        name: str | None = None,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> str:
        """Register a text extractor factory and return its primary name."""
        return self._add(self._text, "text", factory, name=name, aliases=aliases, replace=replace)

    def register_metadata_extractor(
        self,
        factory: Callable[[], MetadataExtractor],
        *,
        name: str | None = None,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> str:
        """Register a metadata extractor factory and return its primary name."""
        return self._add(self._metadata, "metadata", factory, name=name, aliases=aliases, replace=replace)

    def register_text_function(
        self,
        fn: Callable[[str, str], str],
        *,
        name: str | None = None,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> str:
        """Register a plain ``(key, value) -> str`` function as a text extractor."""
        return self.register_text_extractor(
            lambda: CallableTextExtractor(fn),
            name=name or qualified_name(fn),
            aliases=aliases,
            replace=replace,
        )

    def register_metadata_function(
        self,
        fn: Callable[[str, str, DocumentMetadata], None],
        *,
        name: str | None = None,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> str:
        """Register a plain ``(key, value, metadata)`` function as a metadata extractor."""
        return self.register_metadata_extractor(
            lambda: CallableMetadataExtractor(fn),
            name=name or qualified_name(fn),
            aliases=aliases,
            replace=replace,
        )

    def text_extractor(
        self,
        name: str | None = None,
        *,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> Callable[[F], F]:
        """Class decorator registering a text extractor."""
        def decorator(factory: F) -> F:
            self.register_text_extractor(factory, name=name, aliases=aliases, replace=replace)
            return factory

        return decorator

    def metadata_extractor(
        self,
        name: str | None = None,
        *,
        aliases: Iterable[str] = (),
        replace: bool = False,
    ) -> Callable[[F], F]:
        """Class decorator registering a metadata extractor."""
        def decorator(factory: F) -> F:
            self.register_metadata_extractor(factory, name=name, aliases=aliases, replace=replace)
            return factory

        return decorator

    def text_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._text))

    def metadata_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._metadata))

    # -------------------------
    # Resolution
    # -------------------------
    @staticmethod
    def _build(
        table: Mapping[str, Callable[[], Any]],
        kind: str,
        name: str,
        protocol: type,
        method: str,
    ) -> Any:
        factory = table.get(name)
        if factory is None:
            known = ", ".join(sorted(table)) or "<none>"
            raise ExtractorConfigError(f"Unknown {kind} extractor {name!r}. Registered: {known}")
        try:
            instance = factory()
        except Exception as exc:
            raise ExtractorConfigError(f"Could not construct {kind} extractor {name!r}: {exc}") from exc
        if not isinstance(instance, protocol):
            raise ExtractorConfigError(
                f"{kind.capitalize()} extractor {name!r} built {type(instance).__name__}, "
                f"which does not implement {method}()"
            )
        return instance

    def build_text_extractor(self, name: str) -> TextExtractor:
        """Instantiate the text extractor registered as ``name``.

        Raises:
            ExtractorConfigError: If the name is unknown, the factory fails,
                or the result lacks ``extract_document_text``.
        """
        return self._build(self._text, "text", name, TextExtractor, "extract_document_text")

    def build_metadata_extractor(self, name: str) -> MetadataExtractor:
        """Instantiate the metadata extractor registered as ``name``.

        Raises:
            ExtractorConfigError: If the name is unknown, the factory fails,
                or the result lacks ``extract_document_metadata``.
        """
        return self._build(
            self._metadata, "metadata", name, MetadataExtractor, "extract_document_metadata"
        )

    def resolve(self, properties: Mapping[str, Any]) -> ResolvedExtractors:
        """Resolve both extractors from job properties.

        Missing or empty keys mean "no extractor". Each configured name is
        instantiated exactly once.

        Args:
            properties (Mapping[str, Any]): Job properties, typically from
                :meth:`kvdoc.core.config.KvdocConfig.job_properties`.

        Returns:
            ResolvedExtractors: Instances for this split.

        Raises:
            ExtractorConfigError: If a configured name cannot be resolved.
        """
        text_name = _clean_name(properties.get(TEXT_EXTRACTOR_KEY))
        meta_name = _clean_name(properties.get(METADATA_EXTRACTOR_KEY))
        text = self.build_text_extractor(text_name) if text_name else None
        metadata = self.build_metadata_extractor(meta_name) if meta_name else None
        if text_name or meta_name:
            log.debug("Resolved extractors text=%s metadata=%s", text_name, meta_name)
        return ResolvedExtractors(text=text, metadata=metadata)


def _clean_name(value: Any) -> str | None:
    if value is None:
        return None
    name = str(value).strip()
    return name or None


def _name_of(extractor: str | Callable[..., Any] | None) -> str | None:
    if extractor is None or isinstance(extractor, str):
        return extractor
    return qualified_name(extractor)


def set_text_extractor(
    properties: MutableMapping[str, str],
    extractor: str | Callable[..., Any] | None,
) -> None:
    """Select the text extractor in ``properties`` by name or registered class.

    Passing None removes the selection so the raw value is used as text.
    """
    set_property(properties, TEXT_EXTRACTOR_KEY, _name_of(extractor))


def set_metadata_extractor(
    properties: MutableMapping[str, str],
    extractor: str | Callable[..., Any] | None,
) -> None:
    """Select the metadata extractor in ``properties`` by name or registered class."""
    set_property(properties, METADATA_EXTRACTOR_KEY, _name_of(extractor))


def default_extractor_registry(*, load_plugins: bool = True) -> ExtractorRegistry:
    """Return a registry with the bundled extractors, optionally plus plugins."""
    from .extractors import register_builtin_extractors
    from .plugins import load_entrypoint_plugins  # local import to avoid cycles

    registry = ExtractorRegistry()
    register_builtin_extractors(registry)
    if load_plugins:
        load_entrypoint_plugins(extractor_registry=registry)
    return registry


@dataclass(slots=True)
class RegistryBundle:
    """Extractor and codec registries used together for one run."""

    extractors: ExtractorRegistry
    codecs: CodecRegistry


def default_registries(*, load_plugins: bool = True) -> RegistryBundle:
    """Return bundled extractors and codecs, with plugins loaded into both."""
    from .codecs import default_codec_registry
    from .extractors import register_builtin_extractors
    from .plugins import load_entrypoint_plugins

    extractors = ExtractorRegistry()
    register_builtin_extractors(extractors)
    codecs = default_codec_registry()
    if load_plugins:
        load_entrypoint_plugins(extractor_registry=extractors, codec_registry=codecs)
    return RegistryBundle(extractors=extractors, codecs=codecs)


# Bundles built by shared_registries(), keyed by load_plugins.
_SHARED_REGISTRIES: dict[bool, RegistryBundle] = {}


def shared_registries(*, load_plugins: bool = True) -> RegistryBundle:
    """Return the default registries, built once per process and then reused.

    Converters and workers created without explicit registries use this so
    entry-point plugins are discovered once rather than per split.
    """
    bundle = _SHARED_REGISTRIES.get(load_plugins)
    if bundle is None:
        bundle = default_registries(load_plugins=load_plugins)
        _SHARED_REGISTRIES[load_plugins] = bundle
    return bundle
