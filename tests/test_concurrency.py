import pytest

from kvdoc.core.concurrency import (
    Executor,
    ExecutorConfig,
    process_items_parallel,
    resolve_pipeline_executor_config,
)
from kvdoc.core.config import KvdocConfig


def _square(x):
    return x * x


def test_map_unordered_collects_all_results():
    executor = Executor(ExecutorConfig(max_workers=2, window=2, kind="thread"))
    seen = []
    executor.map_unordered(range(10), _square, seen.append)
    assert sorted(seen) == [x * x for x in range(10)]


def test_map_unordered_reports_errors_and_continues():
    executor = Executor(ExecutorConfig(max_workers=2, window=4, kind="thread"))

    def fn(x):
        if x == 3:
            raise RuntimeError("bad item")
        return x

    seen, errors = [], []
    executor.map_unordered(range(6), fn, seen.append, on_error=errors.append)

    assert sorted(seen) == [0, 1, 2, 4, 5]
    assert len(errors) == 1 and "bad item" in str(errors[0])


def test_map_unordered_fail_fast_reraises():
    executor = Executor(ExecutorConfig(max_workers=1, window=1, kind="thread"))

    def fn(x):
        raise ValueError(f"boom {x}")

    errors = []
    with pytest.raises(ValueError, match="boom 0"):
        executor.map_unordered([0, 1, 2], fn, lambda r: None, fail_fast=True, on_error=errors.append)
    assert len(errors) == 1


def test_executor_requires_workers():
    executor = Executor(ExecutorConfig(max_workers=0, window=1, kind="thread"))
    with pytest.raises(ValueError):
        executor.map_unordered([1], _square, lambda r: None)


def test_process_items_parallel_with_process_pool():
    seen = []
    process_items_parallel(
        [1, 2, 3],
        _square,
        seen.append,
        cfg=ExecutorConfig(max_workers=2, window=2, kind="process"),
        fail_fast=True,
    )
    assert sorted(seen) == [1, 4, 9]


def test_resolve_pipeline_executor_config_caps_auto_workers(monkeypatch):
    monkeypatch.setattr("kvdoc.core.concurrency.os.cpu_count", lambda: 8)
    cfg = KvdocConfig()

    exec_cfg, fail_fast = resolve_pipeline_executor_config(cfg, task_count=3)
    assert exec_cfg == ExecutorConfig(max_workers=3, window=12, kind="thread")
    assert fail_fast is True

    cfg.pipeline.max_workers = 5
    cfg.pipeline.submit_window = 2
    cfg.pipeline.executor_kind = "process"
    cfg.pipeline.fail_fast = False
    exec_cfg, fail_fast = resolve_pipeline_executor_config(cfg, task_count=1)
    assert exec_cfg == ExecutorConfig(max_workers=5, window=5, kind="process")
    assert fail_fast is False


def test_resolve_pipeline_executor_config_never_below_one_worker(monkeypatch):
    monkeypatch.setattr("kvdoc.core.concurrency.os.cpu_count", lambda: None)
    exec_cfg, _ = resolve_pipeline_executor_config(KvdocConfig(), task_count=0)
    assert exec_cfg.max_workers == 1
