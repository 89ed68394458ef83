"""Windowed batch orchestration.

Tasks are dispatched in consecutive windows of `concurrency_limit`; a window
must finish completely before the next one starts. This caps the number of
in-flight provider calls and keeps progress reporting simple, at the price of
a slow task holding back the next window.

Every task ends in exactly one result, stored at the task's input index. Task
failures are data: the batch always runs to the end. The only error raised
here is `ConfigurationError` for an invalid invocation.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ..credentials import Credentials
from .tasks import BatchReport, GenerationFailure, GenerationResult, GenerationTask, ProgressUpdate


CANCELLED_REASON = "cancelled before dispatch"

ProgressCallback = Callable[[ProgressUpdate], None]


class ConfigurationError(RuntimeError):
    """Invalid orchestrator invocation (bad concurrency bound, empty batch)."""


class TaskRunner(Protocol):
    def generate(
        self,
        task: GenerationTask,
        credentials: Credentials,
        output_directory: Path | None = None,
    ) -> GenerationResult:
        ...


def validate_concurrency(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"concurrency_limit must be an integer, got {value!r}")
    if value < 1:
        raise ConfigurationError(f"concurrency_limit must be >= 1, got {value}")
    return value


class BatchOrchestrator:
    def __init__(self, client: TaskRunner, concurrency_limit: int = 1) -> None:
        self.client = client
        self.concurrency_limit = validate_concurrency(concurrency_limit)

    def run(
        self,
        tasks: Sequence[GenerationTask],
        credentials: Credentials,
        *,
        output_directory: Path | None = None,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
        require_tasks: bool = True,
    ) -> BatchReport:
        task_list = list(tasks)
        if not task_list and require_tasks:
            raise ConfigurationError("At least one generation task is required")

        started = time.monotonic()
        total = len(task_list)
        results: list[GenerationResult | None] = [None] * total
        completed = 0

        def record(index: int, result: GenerationResult) -> None:
            nonlocal completed
            results[index] = result
            completed += 1
            if on_progress is not None:
                on_progress(ProgressUpdate(completed_count=completed, total_count=total, last_result=result))

        for window_start in range(0, total, self.concurrency_limit):
            window = range(window_start, min(window_start + self.concurrency_limit, total))
            if should_continue is not None and not should_continue():
                for index in range(window_start, total):
                    record(index, GenerationFailure(task=task_list[index], reason=CANCELLED_REASON, duration_ms=0))
                break
            with ThreadPoolExecutor(max_workers=len(window)) as pool:
                future_map = {
                    pool.submit(self._run_one, task_list[index], credentials, output_directory): index
                    for index in window
                }
                for future in as_completed(future_map):
                    record(future_map[future], future.result())

        elapsed_ms = max(0, int((time.monotonic() - started) * 1000))
        return BatchReport.from_results([result for result in results if result is not None], elapsed_ms)

    def _run_one(
        self,
        task: GenerationTask,
        credentials: Credentials,
        output_directory: Path | None,
    ) -> GenerationResult:
        started = time.monotonic()
        try:
            return self.client.generate(task, credentials, output_directory)
        except Exception as exc:
            return GenerationFailure(
                task=task,
                reason=f"{type(exc).__name__}: {exc}",
                duration_ms=max(0, int((time.monotonic() - started) * 1000)),
            )
