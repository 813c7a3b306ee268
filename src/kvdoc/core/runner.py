# runner.py
# SPDX-License-Identifier: MIT
"""Local execution of a conversion job.

Every input file is planned into splits, each split is converted by its own
line reader and converter on a worker, and the resulting records are
written to one sink from the calling thread. Output order follows split
completion order; use ``max_workers = 1`` for file order.
"""
from __future__ import annotations

import dataclasses
import functools
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..sources.kv_lines import open_split_reader
from .concurrency import process_items_parallel, resolve_pipeline_executor_config
from .config import KvdocConfig, ReaderConfig, SinkConfig
from .convert import KeyValueDocumentConverter
from .interfaces import Sink
from .log import get_logger
from .registries import RegistryBundle, default_registries, shared_registries
from .splits import FileSplit, plan_splits

log = get_logger(__name__)

__all__ = [
    "SplitTask",
    "SplitResult",
    "RunStats",
    "convert_split",
    "plan_job",
    "build_sink",
    "run_conversion",
]


@dataclass(slots=True)
class SplitTask:
    """Everything a worker needs to convert one split."""

    split: FileSplit
    properties: dict[str, str]
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    load_plugins: bool = True


@dataclass(slots=True)
class SplitResult:
    split: FileSplit
    records: list[dict[str, Any]]
    anomalies: int = 0
    oversized_lines: int = 0


@dataclass(slots=True)
class RunStats:
    """Counters for one run, returned by :func:`run_conversion` as a dict."""

    inputs: int = 0
    splits: int = 0
    records: int = 0
    anomalies: int = 0
    oversized_lines: int = 0
    failed_splits: int = 0
    output_path: str | None = None

    def as_dict(self) -> dict[str, object]:
        return dataclasses.asdict(self)


def convert_split(task: SplitTask, *, registries: RegistryBundle | None = None) -> SplitResult:
    """Convert one split into ``{"text", "meta"}`` records.

    Without ``registries`` the bundled registries (plus plugins when enabled)
    are built once per worker process and reused.

    Raises:
        ExtractorConfigError: If the configured extractors cannot be resolved.
        OSError: If the split cannot be read.
    """
    bundle = registries or shared_registries(load_plugins=task.load_plugins)
    try:
        reader = open_split_reader(
            task.split,
            codecs=bundle.codecs,
            reader_config=task.reader,
            properties=task.properties,
        )
        converter = KeyValueDocumentConverter.from_properties(
            reader, task.properties, registry=bundle.extractors
        )
        with converter:
            records = [result.document.to_record() for result in converter]
    except Exception as exc:
        log.error("Failed converting %s [%d+%d]: %s", task.split.path, task.split.start, task.split.length, exc)
        raise
    return SplitResult(
        split=task.split,
        records=records,
        anomalies=converter.stats.anomalies,
        oversized_lines=reader.oversized_lines,
    )


def plan_job(cfg: KvdocConfig, registries: RegistryBundle) -> list[FileSplit]:
    """Plan splits for every configured input, in input order.

    Raises:
        FileNotFoundError: If an input does not exist.
    """
    splits: list[FileSplit] = []
    for path in cfg.inputs:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Input file not found: {p}")
        splits.extend(plan_splits(p, split_size=cfg.splits.split_size, codecs=registries.codecs))
    return splits


def build_sink(sink_cfg: SinkConfig) -> Sink:
    """Construct the sink selected by ``sink_cfg``.

    Raises:
        ValueError: If no output path is configured.
        RuntimeError: If Parquet output is requested without pyarrow.
    """
    if sink_cfg.output_path is None:
        raise ValueError("sinks.output_path is required.")
    out = Path(sink_cfg.output_path)
    if (sink_cfg.format or "jsonl") == "parquet":
        try:
            from ..sinks.parquet import ParquetDocumentSink
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "Parquet output requires the 'parquet' extra (install kvdoc[parquet])."
            ) from exc
        return ParquetDocumentSink(out)
    from ..sinks.sinks import DocumentJSONLSink, GzipDocumentJSONLSink

    if sink_cfg.compress or out.suffix.lower() == ".gz":
        return GzipDocumentJSONLSink(out)
    return DocumentJSONLSink(out)


def run_conversion(
    cfg: KvdocConfig,
    *,
    registries: RegistryBundle | None = None,
    sink: Sink | None = None,
) -> dict[str, object]:
    """Run the job described by ``cfg`` and return run statistics.

    Extractor names are resolved once before any split runs, so a bad name
    fails the job without producing output. Worker errors are re-raised when
    ``pipeline.fail_fast`` is set, otherwise logged and counted in
    ``failed_splits``.

    Args:
        cfg (KvdocConfig): Job configuration; validated here.
        registries (RegistryBundle | None): Registries for thread workers and
            split planning. Process workers always rebuild the bundled
            registries (with plugins) in each worker.
        sink (Sink | None): Output sink; built from ``cfg.sinks`` when omitted.

    Returns:
        dict[str, object]: :class:`RunStats` as a plain dict.
    """
    cfg.validate()
    if not cfg.inputs:
        raise ValueError("No input files configured.")
    bundle = registries or default_registries(load_plugins=cfg.extractors.load_plugins)
    properties = cfg.job_properties()
    bundle.extractors.resolve(properties)

    splits = plan_job(cfg, bundle)
    exec_cfg, fail_fast = resolve_pipeline_executor_config(cfg, task_count=len(splits))
    if exec_cfg.kind == "process":
        # Codec openers may not pickle; workers re-detect codecs by suffix.
        splits = [dataclasses.replace(s, codec=None) for s in splits]
        worker = convert_split
    else:
        worker = functools.partial(convert_split, registries=bundle)
    tasks = [
        SplitTask(
            split=s,
            properties=dict(properties),
            reader=cfg.reader,
            load_plugins=cfg.extractors.load_plugins,
        )
        for s in splits
    ]

    stats = RunStats(inputs=len(cfg.inputs), splits=len(tasks))
    out_sink = sink or build_sink(cfg.sinks)
    path = getattr(out_sink, "path", None)
    stats.output_path = str(path) if path is not None else None
    log.info(
        "Converting %d split(s) from %d input(s) with %d %s worker(s)",
        len(tasks),
        len(cfg.inputs),
        exec_cfg.max_workers,
        exec_cfg.kind,
    )

    def _on_result(result: SplitResult) -> None:
        for rec in result.records:
            out_sink.write(rec)
        stats.records += len(result.records)
        stats.anomalies += result.anomalies
        stats.oversized_lines += result.oversized_lines

    def _on_error(exc: BaseException) -> None:
        stats.failed_splits += 1

    out_sink.open()
    try:
        process_items_parallel(
            tasks,
            worker,
            _on_result,
            cfg=exec_cfg,
            fail_fast=fail_fast,
            on_worker_error=_on_error,
        )
    finally:
        out_sink.close()
    log.info("Conversion finished: %s", _summary(stats.as_dict()))
    return stats.as_dict()


def _summary(data: Mapping[str, object]) -> str:
    return " ".join(f"{k}={v}" for k, v in data.items() if k != "output_path")
