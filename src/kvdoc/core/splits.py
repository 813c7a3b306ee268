# splits.py
# SPDX-License-Identifier: MIT
"""Split descriptors, the splittability check, and byte-range planning.

A split is a contiguous byte range of one input file handed to a single
reader. Plain text can be cut anywhere because readers realign on line
boundaries; compressed files can only be cut when their codec exposes block
boundaries.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .codecs import Codec, default_codec_registry
from .interfaces import CodecLookup
from .log import get_logger

log = get_logger(__name__)

__all__ = [
    "SPLIT_SLOP",
    "FileSplit",
    "SplittabilityOracle",
    "is_splittable",
    "plan_splits",
]

# The last split may run up to 10% over split_size instead of leaving a sliver.
SPLIT_SLOP = 1.1


@dataclass(frozen=True, slots=True)
class FileSplit:
    """Byte range ``[start, start + length)`` of ``path``.

    Attributes:
        path (Path): Input file.
        start (int): Offset of the first byte in the range.
        length (int): Number of bytes in the range.
        codec (Codec | None): Detected compression codec, None for plain text.
    """

    path: Path
    start: int
    length: int
    codec: Codec | None = None

    @property
    def end(self) -> int:
        return self.start + self.length

    def describe(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "start": self.start,
            "length": self.length,
            "codec": self.codec.name if self.codec else None,
        }


class SplittabilityOracle:
    """Decides whether a file may be divided into independent byte ranges."""

    def __init__(self, codecs: CodecLookup | None = None) -> None:
        self.codecs = codecs if codecs is not None else default_codec_registry()

    def is_splittable(self, path: str | Path) -> bool:
        """Return True when ``path`` can be read by several readers.

        Files without a codec are splittable. Compressed files are splittable
        only when the codec supports split-aware decompression. A lookup
        failure answers False so a file is never split incorrectly.
        """
        try:
            codec = self.codecs.codec_for(path)
            if codec is None:
                return True
            return bool(self.codecs.supports_splitting(codec))
        except Exception as exc:  # noqa: BLE001
            log.debug("Codec lookup failed for %s; treating as non-splittable: %s", path, exc)
            return False

    __call__ = is_splittable


def is_splittable(path: str | Path, codecs: CodecLookup | None = None) -> bool:
    """Functional form of :meth:`SplittabilityOracle.is_splittable`."""
    return SplittabilityOracle(codecs).is_splittable(path)


def plan_splits(
    path: str | Path,
    *,
    split_size: int,
    codecs: CodecLookup | None = None,
    size: int | None = None,
) -> list[FileSplit]:
    """Divide ``path`` into splits of roughly ``split_size`` bytes.

    Non-splittable and compressed files become a single whole-file split
    because the bundled line reader cannot start inside a compressed stream.
    Empty files still produce one zero-length split so they are accounted for.

    Args:
        path (str | Path): Input file.
        split_size (int): Target bytes per split; must be positive.
        codecs (CodecLookup | None): Codec registry, default registry when
            omitted.
        size (int | None): File size override; read from disk when omitted.

    Returns:
        list[FileSplit]: Splits in file order covering every byte once.

    Raises:
        ValueError: If ``split_size`` is not positive.
    """
    if split_size <= 0:
        raise ValueError(f"split_size must be positive; got {split_size}")
    p = Path(path)
    registry = codecs if codecs is not None else default_codec_registry()
    oracle = SplittabilityOracle(registry)
    try:
        codec = registry.codec_for(p)
    except Exception as exc:  # noqa: BLE001
        log.debug("Codec lookup failed for %s: %s", p, exc)
        codec = None
    total = size if size is not None else os.path.getsize(p)

    if total == 0 or codec is not None or not oracle.is_splittable(p):
        if codec is not None and oracle.is_splittable(p):
            log.debug("%s uses split-aware codec %s; reading as one split", p, codec.name)
        return [FileSplit(path=p, start=0, length=total, codec=codec)]

    splits: list[FileSplit] = []
    remaining = total
    while remaining / split_size > SPLIT_SLOP:
        splits.append(FileSplit(path=p, start=total - remaining, length=split_size))
        remaining -= split_size
    if remaining:
        splits.append(FileSplit(path=p, start=total - remaining, length=remaining))
    log.debug("Planned %d split(s) for %s (%d bytes)", len(splits), p, total)
    return splits
