"""Core falgen engine: estimate, gate and run generation batches."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Sequence

from .credentials import Credentials
from .generation.client import GenerationClient
from .generation.orchestrator import BatchOrchestrator, ProgressCallback
from .generation.tasks import BatchReport, GenerationSuccess, GenerationTask, ProgressUpdate
from .models.catalog import ModelCatalog
from .pricing.estimator import CostBreakdown, CostEstimator
from .pricing.guard import DEFAULT_SPENDING_LIMIT, RequireConfirmation, SpendingDecision, SpendingGuard
from .providers.base import Transport
from .providers.fal import FalTransport
from .runs.events import EventWriter
from .runs.summary import RunSummary, write_summary
from .utils import now_utc_iso


@dataclass(frozen=True)
class BatchOutcome:
    estimate: CostBreakdown
    decision: SpendingDecision
    report: BatchReport | None = None

    @property
    def needs_confirmation(self) -> bool:
        return isinstance(self.decision, RequireConfirmation)


class GenerationEngine:
    def __init__(
        self,
        *,
        catalog: ModelCatalog | None = None,
        transport: Transport | None = None,
        events_path: Path | None = None,
        spending_limit: Decimal | float | str = DEFAULT_SPENDING_LIMIT,
        estimator: CostEstimator | None = None,
        run_id: str | None = None,
    ) -> None:
        self.run_id = run_id or str(uuid.uuid4())
        self.events = EventWriter(events_path, self.run_id)
        self.catalog = (catalog or ModelCatalog()).ensure_loaded()
        self.transport = transport or FalTransport()
        self.estimator = estimator or CostEstimator()
        self.guard = SpendingGuard(spending_limit)
        self.last_estimate: CostBreakdown | None = None
        self.last_report: BatchReport | None = None
        self.started_at = now_utc_iso()
        self.events.emit(
            "run_started",
            transport=self.transport.name,
            models_loaded=len(self.catalog.list()),
            spending_limit=self.guard.threshold,
        )
        for warning in self.catalog.warnings:
            self.events.emit("catalog_warning", message=warning)

    def estimate_cost(self, tasks: Sequence[GenerationTask]) -> CostBreakdown:
        estimate = self.estimator.estimate(tasks, self.catalog)
        self.last_estimate = estimate
        self.events.emit("cost_estimated", tasks=len(tasks), **estimate.as_dict())
        return estimate

    def check_spending(self, estimate: CostBreakdown, confirmed: bool = False) -> SpendingDecision:
        decision = self.guard.check(estimate, confirmed)
        if isinstance(decision, RequireConfirmation):
            self.events.emit(
                "spending_confirmation_required",
                estimated_cost=decision.estimate,
                spending_limit=decision.threshold,
            )
        return decision

    def run_batch(
        self,
        tasks: Sequence[GenerationTask],
        credentials: Credentials,
        *,
        concurrency_limit: int = 1,
        output_directory: Path | None = None,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
        estimate: CostBreakdown | None = None,
    ) -> BatchReport:
        orchestrator = BatchOrchestrator(GenerationClient(self.transport), concurrency_limit)
        started_at = now_utc_iso()
        self.events.emit(
            "batch_started",
            tasks=len(tasks),
            concurrency_limit=orchestrator.concurrency_limit,
            output_directory=output_directory,
        )

        def progress(update: ProgressUpdate) -> None:
            result = update.last_result
            if isinstance(result, GenerationSuccess):
                self.events.emit(
                    "task_completed",
                    sequence_index=result.task.sequence_index,
                    model=result.task.model_id,
                    image_urls=result.image_urls,
                    saved_paths=result.saved_paths,
                    persistence_errors=result.persistence_errors,
                    duration_ms=result.duration_ms,
                    completed=update.completed_count,
                    total=update.total_count,
                )
            else:
                self.events.emit(
                    "task_failed",
                    sequence_index=result.task.sequence_index,
                    model=result.task.model_id,
                    reason=result.reason,
                    duration_ms=result.duration_ms,
                    completed=update.completed_count,
                    total=update.total_count,
                )
            if on_progress is not None:
                on_progress(update)

        report = orchestrator.run(
            tasks,
            credentials,
            output_directory=output_directory,
            on_progress=progress,
            should_continue=should_continue,
        )
        self.last_report = report
        self.events.emit(
            "batch_finished",
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
            total_duration_ms=report.total_duration_ms,
        )
        if output_directory is not None:
            summary = RunSummary(
                run_id=self.run_id,
                started_at=started_at,
                finished_at=now_utc_iso(),
                report=report,
                estimate=estimate or self.estimator.estimate(tasks, self.catalog),
                concurrency_limit=orchestrator.concurrency_limit,
            )
            summary_path = Path(output_directory) / "summary.json"
            try:
                write_summary(summary_path, summary)
            except OSError as exc:
                self.events.emit("summary_failed", path=summary_path, error=str(exc))
        return report

    def submit_batch(
        self,
        tasks: Sequence[GenerationTask],
        credentials: Credentials,
        *,
        confirmed: bool = False,
        concurrency_limit: int = 1,
        output_directory: Path | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchOutcome:
        """Estimate, gate and (when allowed) run a batch in one call."""

        estimate = self.estimate_cost(tasks)
        decision = self.check_spending(estimate, confirmed)
        if isinstance(decision, RequireConfirmation):
            return BatchOutcome(estimate=estimate, decision=decision)
        report = self.run_batch(
            tasks,
            credentials,
            concurrency_limit=concurrency_limit,
            output_directory=output_directory,
            on_progress=on_progress,
            estimate=estimate,
        )
        return BatchOutcome(estimate=estimate, decision=decision, report=report)

    def finish(self) -> None:
        self.events.emit(
            "run_finished",
            started_at=self.started_at,
            batches_reported=self.last_report is not None,
        )
