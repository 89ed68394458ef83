"""Batch image generation: tasks, single-task client and orchestrator."""

from __future__ import annotations

from .client import GenerationClient
from .orchestrator import BatchOrchestrator, ConfigurationError
from .tasks import (
    BatchReport,
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    GenerationTask,
    ProgressUpdate,
    expand_tasks,
)

__all__ = [
    "BatchOrchestrator",
    "BatchReport",
    "ConfigurationError",
    "GenerationClient",
    "GenerationFailure",
    "GenerationResult",
    "GenerationSuccess",
    "GenerationTask",
    "ProgressUpdate",
    "expand_tasks",
]
