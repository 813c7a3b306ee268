# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from ..core.config import KvdocConfig, load_config_from_path
from ..core.log import configure_logging
from ..core.registries import default_extractor_registry, default_registries
from ..core.runner import run_conversion
from ..core.splits import SplittabilityOracle, plan_splits


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level kvdoc CLI argument parser.

    Returns:
        argparse.ArgumentParser: Parser with ``splits``, ``convert`` and
        ``extractors`` subcommands.
    """
    parser = argparse.ArgumentParser(prog="kvdoc", description="Key/value text to document converter")
    parser.add_argument(
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING); overrides [logging] in a config file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    splits_p = subparsers.add_parser("splits", help="Show splittability and planned splits.")
    splits_p.add_argument("files", nargs="+", type=Path, help="Input files.")
    splits_p.add_argument("--split-size", type=int, help="Target bytes per split.")

    conv_p = subparsers.add_parser("convert", help="Convert key/value files into documents.")
    conv_p.add_argument("files", nargs="*", type=Path, help="Input files (default: inputs from --config).")
    conv_p.add_argument("-o", "--output", type=Path, help="Output path (JSONL or Parquet).")
    conv_p.add_argument("-c", "--config", help="Path to config file (TOML or JSON).")
    conv_p.add_argument("--text-extractor", help="Registered text extractor name.")
    conv_p.add_argument("--metadata-extractor", help="Registered metadata extractor name.")
    conv_p.add_argument("--separator", help="Key/value separator (default: TAB).")
    conv_p.add_argument("--split-size", type=int, help="Target bytes per split.")
    conv_p.add_argument("--max-workers", type=int, help="Override pipeline.max_workers.")
    conv_p.add_argument(
        "--executor-kind",
        choices=["thread", "process"],
        help="Override pipeline.executor_kind.",
    )
    conv_p.add_argument("--format", choices=["jsonl", "parquet"], help="Output format.")
    conv_p.add_argument("--gzip", action="store_true", help="Gzip-compress JSONL output.")
    conv_p.add_argument("--no-plugins", action="store_true", help="Skip entry-point plugins.")

    ext_p = subparsers.add_parser("extractors", help="List registered extractor names.")
    ext_p.add_argument("--no-plugins", action="store_true", help="Skip entry-point plugins.")

    return parser


def _config_from_args(args: argparse.Namespace) -> KvdocConfig:
    """Load the optional config file and apply command-line overrides."""
    cfg = load_config_from_path(args.config) if args.config else KvdocConfig()
    if args.files:
        cfg.inputs = list(args.files)
    if args.output is not None:
        cfg.sinks.output_path = args.output
    if args.text_extractor:
        cfg.extractors.text_extractor = args.text_extractor
    if args.metadata_extractor:
        cfg.extractors.metadata_extractor = args.metadata_extractor
    if args.separator:
        # Shells make a literal TAB awkward to pass.
        cfg.reader.separator = "\t" if args.separator == "\\t" else args.separator
    if args.split_size is not None:
        cfg.splits.split_size = args.split_size
    if args.max_workers is not None:
        cfg.pipeline.max_workers = args.max_workers
    if args.executor_kind:
        cfg.pipeline.executor_kind = args.executor_kind
    if args.format:
        cfg.sinks.format = args.format
    if args.gzip:
        cfg.sinks.compress = True
    if args.no_plugins:
        cfg.extractors.load_plugins = False
    return cfg


def _cmd_splits(args: argparse.Namespace) -> int:
    cfg = KvdocConfig()
    split_size = args.split_size or cfg.splits.split_size
    codecs = default_registries().codecs
    oracle = SplittabilityOracle(codecs)
    report: list[dict[str, Any]] = []
    for path in args.files:
        codec = codecs.codec_for(path)
        splits = plan_splits(path, split_size=split_size, codecs=codecs)
        report.append(
            {
                "path": str(path),
                "size": os.path.getsize(path),
                "codec": codec.name if codec else None,
                "splittable": oracle.is_splittable(path),
                "splits": [s.describe() for s in splits],
            }
        )
    print(json.dumps(report, indent=2))
    return 0


def _cmd_extractors(args: argparse.Namespace) -> int:
    registry = default_extractor_registry(load_plugins=not args.no_plugins)
    listing = {"text": list(registry.text_names()), "metadata": list(registry.metadata_names())}
    print(json.dumps(listing, indent=2))
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch a parsed CLI command to its handler.

    Returns:
        int: Process exit code, 0 on success.
    """
    cmd = args.command

    if cmd == "convert":
        cfg = _config_from_args(args)
        if args.log_level:
            cfg.logging.level = args.log_level
        cfg.logging.apply()
        stats = run_conversion(cfg)
        print(json.dumps(stats, indent=2))
        return 0 if not stats.get("failed_splits") else 1

    configure_logging(level=args.log_level or "INFO")

    if cmd == "splits":
        return _cmd_splits(args)

    if cmd == "extractors":
        return _cmd_extractors(args)

    print(f"Unknown command: {cmd}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the kvdoc command-line interface.

    Args:
        argv (Sequence[str] | None): Argument strings to parse instead of
            ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code; errors print ``Error: ...`` to stderr and
        return 1.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _dispatch(args)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
