# concurrency.py
# SPDX-License-Identifier: MIT
"""Bounded thread/process pools for converting splits in parallel.

Splits are independent units of work, so the local runner fans them out to
a pool while keeping a limited number of tasks in flight. Results come back
in completion order and are handed to a callback running in the caller's
thread, which is where sinks are written.
"""
from __future__ import annotations

import functools
import os
from collections.abc import Callable, Iterable
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from .config import KvdocConfig
from .log import get_logger

log = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _call_process_one(process_one: Callable[[T], R], item: T) -> R:
    """Top-level helper so process pool workers can pickle the callable."""
    return process_one(item)


@dataclass(frozen=True)
class ExecutorConfig:
    """Immutable pool settings.

    Attributes:
        max_workers (int): Worker threads or processes.
        window (int): In-flight tasks allowed before submission blocks.
        kind (Literal["thread", "process"]): Pool implementation.
    """
    max_workers: int
    window: int
    kind: Literal["thread", "process"]


class Executor:
    """Runs tasks on a pool, keeping at most ``cfg.window`` in flight."""

    def __init__(self, cfg: ExecutorConfig) -> None:
        self.cfg = cfg

    def _make_executor(self):
        if self.cfg.max_workers < 1:
            raise ValueError("Executor requires max_workers >= 1")
        if self.cfg.kind == "process":
            return ProcessPoolExecutor(max_workers=self.cfg.max_workers)
        return ThreadPoolExecutor(max_workers=self.cfg.max_workers, thread_name_prefix="kvdoc")

    def map_unordered(
        self,
        items: Iterable[T],
        fn: Callable[[T], R],
        on_result: Callable[[R], None],
        *,
        fail_fast: bool = False,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Apply ``fn`` to every item and feed results to ``on_result``.

        Results arrive in completion order; tasks found finished together
        are handed over in submission order. A failed task is reported to
        ``on_error``; with ``fail_fast`` the error is also re-raised, and
        leaving the pool context waits for tasks already submitted.

        Raises:
            Exception: The first task error when ``fail_fast`` is True.
        """
        window = max(self.cfg.window, self.cfg.max_workers)
        with self._make_executor() as pool:
            pending: list[Future[R]] = []

            def _drain(block: bool = False) -> None:
                nonlocal pending
                if not pending:
                    return
                done, _ = wait(
                    pending,
                    timeout=None if block else 0.0,
                    return_when=FIRST_COMPLETED,
                )
                # Hand over finished tasks in submission order.
                finished = [f for f in pending if f in done]
                pending = [f for f in pending if f not in done]
                for fut in finished:
                    try:
                        result = fut.result()
                    except Exception as exc:  # noqa: BLE001
                        if on_error:
                            on_error(exc)
                        if fail_fast:
                            for other in pending:
                                other.cancel()
                            raise
                        continue
                    on_result(result)

            for item in items:
                pending.append(pool.submit(fn, item))
                if len(pending) >= window:
                    _drain(block=True)

            while pending:
                _drain(block=True)


def process_items_parallel(
    items: Iterable[T],
    process_one: Callable[[T], R],
    on_result: Callable[[R], None],
    *,
    cfg: ExecutorConfig,
    fail_fast: bool,
    on_worker_error: Callable[[BaseException], None] | None = None,
) -> None:
    """Run ``process_one`` over ``items`` on a pool built from ``cfg``.

    For process pools ``process_one`` and the items must be picklable; the
    callable is wrapped in a module-level helper for that purpose.
    """
    worker_fn: Callable[[T], R]
    if cfg.kind == "process":
        worker_fn = functools.partial(_call_process_one, process_one)
    else:
        worker_fn = process_one
    Executor(cfg).map_unordered(
        items,
        worker_fn,
        on_result,
        fail_fast=fail_fast,
        on_error=on_worker_error,
    )


def resolve_pipeline_executor_config(
    cfg: KvdocConfig,
    *,
    task_count: int | None = None,
) -> tuple[ExecutorConfig, bool]:
    """Build pool settings for a run from the ``pipeline`` section.

    ``max_workers = 0`` means one worker per CPU, capped by ``task_count``
    when known so small inputs do not spin up idle workers.

    Returns:
        tuple[ExecutorConfig, bool]: Pool settings and the ``fail_fast`` flag.
    """
    pc = cfg.pipeline
    max_workers = pc.max_workers or (os.cpu_count() or 1)
    if not pc.max_workers and task_count is not None:
        max_workers = min(max_workers, task_count)
    max_workers = max(1, max_workers)
    window = pc.submit_window or (max_workers * 4)
    kind = (pc.executor_kind or "thread").strip().lower()
    if kind not in {"thread", "process"}:
        kind = "thread"
    exec_cfg = ExecutorConfig(max_workers=max_workers, window=max(window, max_workers), kind=kind)  # type: ignore[arg-type]
    return exec_cfg, bool(pc.fail_fast)


__all__ = [
    "Executor",
    "ExecutorConfig",
    "process_items_parallel",
    "resolve_pipeline_executor_config",
]
