# plugins.py
# SPDX-License-Identifier: MIT
"""Entry-point discovery for third-party extractors and codecs."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from importlib import metadata
from typing import TYPE_CHECKING, cast

from .log import get_logger

if TYPE_CHECKING:  # pragma: no cover - type-only deps
    from .codecs import CodecRegistry
    from .registries import ExtractorRegistry

log = get_logger(__name__)

PLUGIN_GROUP = "kvdoc.plugins"

PluginRegistrar = Callable[..., None]


def iter_plugin_entry_points(group: str = PLUGIN_GROUP) -> Sequence[metadata.EntryPoint]:
    try:
        entry_points = metadata.entry_points()
    except Exception as exc:  # pragma: no cover - importlib.metadata safety
        log.debug("Plugin discovery skipped: %s", exc)
        return ()
    if hasattr(entry_points, "select"):
        return cast(Sequence[metadata.EntryPoint], tuple(entry_points.select(group=group)))
    grouped = cast(Mapping[str, Sequence[metadata.EntryPoint]], entry_points)
    return tuple(grouped.get(group, ()))


def load_entrypoint_plugins(
    *,
    extractor_registry: ExtractorRegistry | None = None,
    codec_registry: CodecRegistry | None = None,
    group: str = PLUGIN_GROUP,
) -> list[str]:
    """Discover plugin entry points and let them register into the registries.

    A plugin is a callable accepting ``extractor_registry`` and
    ``codec_registry`` keyword arguments (either may be None). Plugins that
    only take the extractor registry positionally are also supported. Import
    and execution failures are logged and skipped: a broken plugin must not
    break runs that never select it. Selecting a name the plugin would have
    provided still fails later, at resolution time.

    Returns:
        list[str]: Names of plugins that loaded successfully.
    """
    loaded: list[str] = []
    for ep in iter_plugin_entry_points(group):
        try:
            register = ep.load()
        except Exception as exc:  # noqa: BLE001
            log.warning("Failed to import plugin %s: %s", ep.name, exc)
            continue
        try:
            try:
                register(extractor_registry=extractor_registry, codec_registry=codec_registry)
            except TypeError:
                register(extractor_registry)
        except Exception as exc:  # noqa: BLE001
            log.warning("Plugin %s execution failed: %s", ep.name, exc)
            continue
        loaded.append(ep.name)
    if loaded:
        log.debug("Loaded plugins: %s", ", ".join(loaded))
    return loaded


__all__ = ["PLUGIN_GROUP", "iter_plugin_entry_points", "load_entrypoint_plugins"]
