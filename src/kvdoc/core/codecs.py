# codecs.py
# SPDX-License-Identifier: MIT
"""Compression codec registry keyed by file suffix.

The registry answers two questions for the splittability check: which codec
a file uses (``codec_for``) and whether that codec can be decompressed from
block boundaries in the middle of a file (``supports_splitting``). It also
opens a decompressed byte stream for the line reader.
"""

from __future__ import annotations

import bz2
import gzip
import lzma
import zlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .log import get_logger

log = get_logger(__name__)

__all__ = [
    "Codec",
    "CodecRegistry",
    "GZIP",
    "DEFLATE",
    "BZIP2",
    "XZ",
    "default_codec_registry",
]

Opener = Callable[[Path], IO[bytes]]


class _DeflateReader:
    """Minimal read-only stream over a raw zlib (``.deflate``) file."""

    def __init__(self, path: Path, chunk_size: int = 64 * 1024) -> None:
        self._fp = open(path, "rb")
        self._inflater = zlib.decompressobj()
        self._buffer = b""
        self._chunk_size = chunk_size
        self._eof = False

    def _fill(self, want: int | None) -> None:
        while not self._eof and (want is None or len(self._buffer) < want):
            chunk = self._fp.read(self._chunk_size)
            if not chunk:
                self._buffer += self._inflater.flush()
                self._eof = True
                break
            self._buffer += self._inflater.decompress(chunk)

    def read(self, n: int = -1) -> bytes:
        self._fill(None if n is None or n < 0 else n)
        if n is None or n < 0:
            out, self._buffer = self._buffer, b""
        else:
            out, self._buffer = self._buffer[:n], self._buffer[n:]
        return out

    def readline(self, limit: int = -1) -> bytes:
        while True:
            idx = self._buffer.find(b"\n")
            if idx >= 0 or self._eof:
                break
            if limit is not None and limit >= 0 and len(self._buffer) >= limit:
                break
            self._fill(len(self._buffer) + self._chunk_size)
        end = idx + 1 if idx >= 0 else len(self._buffer)
        if limit is not None and limit >= 0:
            end = min(end, limit)
        out, self._buffer = self._buffer[:end], self._buffer[end:]
        return out

    def close(self) -> None:
        self._fp.close()

    @property
    def closed(self) -> bool:
        return self._fp.closed

    def __enter__(self) -> _DeflateReader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@dataclass(frozen=True, slots=True)
class Codec:
    """A compression scheme recognised by file suffix.

    Attributes:
        name (str): Registry id, e.g. ``"gzip"``.
        suffixes (tuple[str, ...]): Lowercase file suffixes including the dot.
        splittable (bool): True when the format exposes block boundaries that
            allow decompression to start mid-file.
        opener (Callable[[Path], IO[bytes]] | None): Returns a decompressed
            binary stream; None when the codec cannot be read locally.
    """

    name: str
    suffixes: tuple[str, ...]
    splittable: bool = False
    opener: Opener | None = field(default=None, compare=False, repr=False)


def _open_gzip(path: Path) -> IO[bytes]:
    return gzip.open(path, "rb")


def _open_bz2(path: Path) -> IO[bytes]:
    return bz2.open(path, "rb")


def _open_xz(path: Path) -> IO[bytes]:
    return lzma.open(path, "rb")


GZIP = Codec("gzip", (".gz", ".gzip"), splittable=False, opener=_open_gzip)
DEFLATE = Codec("deflate", (".deflate",), splittable=False, opener=_DeflateReader)
BZIP2 = Codec("bzip2", (".bz2",), splittable=True, opener=_open_bz2)
XZ = Codec("xz", (".xz", ".lzma"), splittable=False, opener=_open_xz)


class CodecRegistry:
    """Suffix → codec lookup with registration for plugin codecs."""

    def __init__(self, codecs: Iterable[Codec] = ()) -> None:
        self._by_name: dict[str, Codec] = {}
        self._by_suffix: dict[str, Codec] = {}
        for codec in codecs:
            self.register(codec)

    def register(self, codec: Codec, *, replace: bool = False) -> None:
        """Register ``codec`` under its name and suffixes.

        Raises:
            ValueError: If the name or a suffix is already taken and
                ``replace`` is False.
        """
        if not replace:
            if codec.name in self._by_name:
                raise ValueError(f"Codec {codec.name!r} is already registered")
            taken = [s for s in codec.suffixes if s.lower() in self._by_suffix]
            if taken:
                raise ValueError(f"Suffixes {taken} are already bound to another codec")
        self._by_name[codec.name] = codec
        for suffix in codec.suffixes:
            self._by_suffix[suffix.lower()] = codec

    def get(self, name: str) -> Codec | None:
        return self._by_name.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(self._by_name)

    def codec_for(self, path: str | Path) -> Codec | None:
        """Return the codec for ``path`` based on its last suffix, or None."""
        suffix = Path(path).suffix.lower()
        if not suffix:
            return None
        return self._by_suffix.get(suffix)

    def supports_splitting(self, codec: Codec) -> bool:
        return bool(codec.splittable)

    def open(self, path: str | Path) -> IO[bytes]:
        """Open ``path`` as a decompressed binary stream.

        Raises:
            ValueError: If the codec for ``path`` has no local opener.
        """
        p = Path(path)
        codec = self.codec_for(p)
        if codec is None:
            return open(p, "rb")
        if codec.opener is None:
            raise ValueError(f"No reader available for codec {codec.name!r} ({p})")
        log.debug("Opening %s with codec %s", p, codec.name)
        return codec.opener(p)


def default_codec_registry() -> CodecRegistry:
    """Return a registry with gzip, deflate, bzip2 and xz registered."""
    return CodecRegistry((GZIP, DEFLATE, BZIP2, XZ))
