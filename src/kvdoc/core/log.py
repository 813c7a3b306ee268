# log.py
# SPDX-License-Identifier: MIT
"""Package logging helpers.

The ``kvdoc`` logger carries a NullHandler so library use stays quiet until
an application (or the CLI) calls :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass

__all__ = [
    "PACKAGE_LOGGER_NAME",
    "DEFAULT_LOG_FORMAT",
    "BoundedWarnings",
    "get_logger",
    "configure_logging",
    "temp_level",
]

PACKAGE_LOGGER_NAME = "kvdoc"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logging.getLogger(PACKAGE_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``name`` as a logger, defaulting to the package logger."""
    return logging.getLogger(name or PACKAGE_LOGGER_NAME)


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream=None,
    fmt: str | None = None,
    datefmt: str | None = None,
    propagate: bool | None = None,
    logger_name: str = PACKAGE_LOGGER_NAME,
) -> logging.Logger:
    """Attach a single stream handler to a kvdoc logger and set its level.

    Args:
        level (int | str): Level number or name such as ``"DEBUG"``.
            Unknown names fall back to INFO.
        stream (IO[str] | None): Destination stream, ``sys.stderr`` when
            omitted.
        fmt (str | None): Record format, :data:`DEFAULT_LOG_FORMAT` when
            omitted.
        datefmt (str | None): Optional ``asctime`` format.
        propagate (bool | None): Whether records also reach ancestor
            handlers. ``None`` keeps propagation on so pytest's ``caplog``
            still sees records.
        logger_name (str): Logger to configure.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = get_logger(logger_name)
    logger.setLevel(_coerce_level(level))
    logger.propagate = True if propagate is None else bool(propagate)

    target = stream if stream is not None else sys.stderr
    stream_handlers = [
        h for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]
    if stream_handlers:
        # Re-point handlers whose stream was closed (e.g. a finished pytest capture).
        for handler in stream_handlers:
            if getattr(handler.stream, "closed", False):
                handler.setStream(target)
        return logger

    handler = logging.StreamHandler(target)
    handler.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_LOG_FORMAT, datefmt=datefmt))
    logger.addHandler(handler)
    return logger


@contextmanager
def temp_level(level: int | str, name: str | None = None):
    """Set a logger level for the duration of a ``with`` block."""
    logger = get_logger(name)
    previous = logger.level
    logger.setLevel(_coerce_level(level))
    try:
        yield logger
    finally:
        logger.setLevel(previous)


@dataclass
class BoundedWarnings:
    """Emit at most ``limit`` warnings for a repeating condition.

    The first ``limit`` occurrences are logged at WARNING; the occurrence
    that reaches the limit also logs a DEBUG note that further warnings are
    suppressed. ``count`` keeps counting past the limit.
    """

    logger: logging.Logger
    limit: int = 5
    label: str = "warnings"
    count: int = 0

    def warn(self, msg: str, *args) -> None:
        self.count += 1
        if self.count > self.limit:
            return
        self.logger.warning(msg, *args)
        if self.count == self.limit:
            self.logger.debug("Suppressing further %s", self.label)
