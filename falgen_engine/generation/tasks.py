"""Generation tasks, per-task results and batch reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence, Union


@dataclass(frozen=True)
class GenerationTask:
    model_id: str
    prompt: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    sequence_index: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters or {})))

    @property
    def image_count(self) -> int:
        raw = self.parameters.get("num_images", 1)
        try:
            return max(1, int(raw))
        except (TypeError, ValueError):
            return 1

    def payload(self) -> dict[str, Any]:
        body = dict(self.parameters)
        body["prompt"] = self.prompt
        return body


@dataclass(frozen=True)
class GenerationSuccess:
    task: GenerationTask
    image_urls: tuple[str, ...]
    duration_ms: int
    saved_paths: tuple[str, ...] = ()
    persistence_errors: tuple[str, ...] = ()
    request_id: str | None = None

    ok = True


@dataclass(frozen=True)
class GenerationFailure:
    task: GenerationTask
    reason: str
    duration_ms: int

    ok = False


GenerationResult = Union[GenerationSuccess, GenerationFailure]


@dataclass(frozen=True)
class ProgressUpdate:
    completed_count: int
    total_count: int
    last_result: GenerationResult


@dataclass(frozen=True)
class BatchReport:
    total: int
    succeeded: int
    failed: int
    results: tuple[GenerationResult, ...]
    total_duration_ms: int

    @classmethod
    def from_results(cls, results: Sequence[GenerationResult], total_duration_ms: int) -> "BatchReport":
        succeeded = sum(1 for result in results if result.ok)
        return cls(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=tuple(results),
            total_duration_ms=total_duration_ms,
        )

    def image_urls(self) -> list[str]:
        return [url for result in self.results if isinstance(result, GenerationSuccess) for url in result.image_urls]

    def saved_paths(self) -> list[str]:
        return [path for result in self.results if isinstance(result, GenerationSuccess) for path in result.saved_paths]

    def failures(self) -> list[GenerationFailure]:
        return [result for result in self.results if isinstance(result, GenerationFailure)]


def expand_tasks(
    prompts: Sequence[str],
    model_ids: Sequence[str],
    iterations: int = 1,
    parameters: Mapping[str, Mapping[str, Any]] | None = None,
) -> list[GenerationTask]:
    """Flatten prompts x models x iterations into an ordered task list.

    `parameters` maps a model id to the parameters used for that model.
    """

    tasks: list[GenerationTask] = []
    per_model = parameters or {}
    for prompt in prompts:
        for model_id in model_ids:
            for _ in range(max(1, int(iterations))):
                tasks.append(
                    GenerationTask(
                        model_id=model_id,
                        prompt=prompt,
                        parameters=per_model.get(model_id, {}),
                        sequence_index=len(tasks),
                    )
                )
    return tasks
