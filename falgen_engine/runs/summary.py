"""Batch summary written next to the generated images."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..generation.tasks import BatchReport, GenerationSuccess
from ..pricing.estimator import CostBreakdown
from ..utils import now_utc_iso, write_json


@dataclass
class RunSummary:
    run_id: str
    started_at: str
    finished_at: str
    report: BatchReport
    estimate: CostBreakdown | None = None
    concurrency_limit: int = 1


def summary_payload(summary: RunSummary) -> dict[str, Any]:
    report = summary.report
    tasks = []
    for result in report.results:
        entry: dict[str, Any] = {
            "sequence_index": result.task.sequence_index,
            "model": result.task.model_id,
            "prompt": result.task.prompt,
            "ok": result.ok,
            "duration_ms": result.duration_ms,
        }
        if isinstance(result, GenerationSuccess):
            entry["image_urls"] = list(result.image_urls)
            entry["saved_paths"] = list(result.saved_paths)
            if result.persistence_errors:
                entry["persistence_errors"] = list(result.persistence_errors)
        else:
            entry["reason"] = result.reason
        tasks.append(entry)
    return {
        "run_id": summary.run_id,
        "started_at": summary.started_at,
        "finished_at": summary.finished_at,
        "total": report.total,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "total_duration_ms": report.total_duration_ms,
        "concurrency_limit": summary.concurrency_limit,
        "estimate": summary.estimate.as_dict() if summary.estimate else None,
        "tasks": tasks,
    }


def write_summary(path: Path, summary: RunSummary, extra: dict[str, Any] | None = None) -> None:
    payload = summary_payload(summary)
    payload["ts"] = now_utc_iso()
    if extra:
        payload.update(extra)
    write_json(path, payload)
