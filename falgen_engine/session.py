"""Immutable generation session.

Each front-end step takes a `SessionConfig` and returns a new one; nothing is
shared or mutated between steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from .generation.orchestrator import ConfigurationError
from .generation.tasks import GenerationTask, expand_tasks


@dataclass(frozen=True)
class SessionConfig:
    model_ids: tuple[str, ...] = ()
    prompts: tuple[str, ...] = ()
    parameters: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    iterations: int = 1
    concurrency: int = 1
    output_directory: Path | None = None
    confirmed: bool = False

    def __post_init__(self) -> None:
        frozen = {str(k): MappingProxyType(dict(v)) for k, v in dict(self.parameters or {}).items()}
        object.__setattr__(self, "parameters", MappingProxyType(frozen))

    def with_models(self, model_ids: Sequence[str]) -> "SessionConfig":
        unique = tuple(dict.fromkeys(mid.strip() for mid in model_ids if mid and mid.strip()))
        return replace(self, model_ids=unique)

    def with_prompts(self, prompts: Sequence[str]) -> "SessionConfig":
        cleaned = tuple(p.strip() for p in prompts if p and p.strip())
        return replace(self, prompts=cleaned)

    def with_parameters(self, model_id: str, parameters: Mapping[str, Any]) -> "SessionConfig":
        merged = {key: dict(value) for key, value in self.parameters.items()}
        merged[model_id] = dict(parameters)
        return replace(self, parameters=merged)

    def with_iterations(self, iterations: int) -> "SessionConfig":
        if iterations < 1:
            raise ConfigurationError("images per model must be >= 1")
        return replace(self, iterations=int(iterations))

    def with_concurrency(self, concurrency: int) -> "SessionConfig":
        if concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")
        return replace(self, concurrency=int(concurrency))

    def with_output_directory(self, path: Path | None) -> "SessionConfig":
        return replace(self, output_directory=Path(path) if path is not None else None)

    def with_confirmation(self, confirmed: bool = True) -> "SessionConfig":
        return replace(self, confirmed=bool(confirmed))

    def tasks(self) -> list[GenerationTask]:
        if not self.model_ids:
            raise ConfigurationError("Select at least one model")
        if not self.prompts:
            raise ConfigurationError("Provide at least one prompt")
        return expand_tasks(self.prompts, self.model_ids, self.iterations, self.parameters)
