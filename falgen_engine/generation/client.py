"""Single-task generation against a transport."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..credentials import Credentials
from ..providers.base import ProviderError, Transport
from ..utils import model_slug
from .extractors import DEFAULT_EXTRACTORS, UrlExtractor, extract_image_urls
from .storage import PersistenceError, build_image_filename, ensure_directory, write_file
from .tasks import GenerationFailure, GenerationResult, GenerationSuccess, GenerationTask


NO_IMAGES_REASON = "no images returned"


class GenerationClient:
    def __init__(
        self,
        transport: Transport,
        extractors: Sequence[UrlExtractor] = DEFAULT_EXTRACTORS,
    ) -> None:
        self.transport = transport
        self.extractors = tuple(extractors)

    def generate(
        self,
        task: GenerationTask,
        credentials: Credentials,
        output_directory: Path | None = None,
    ) -> GenerationResult:
        """Run one task. Provider problems come back as `GenerationFailure`, never raised."""

        started = time.monotonic()
        try:
            response = self.transport.submit(task.model_id, task.payload(), credentials)
        except ProviderError as exc:
            return GenerationFailure(task=task, reason=str(exc), duration_ms=_elapsed_ms(started))
        except Exception as exc:
            return GenerationFailure(
                task=task,
                reason=f"{type(exc).__name__}: {exc}",
                duration_ms=_elapsed_ms(started),
            )

        urls, _ = extract_image_urls(response, self.extractors)
        if not urls:
            return GenerationFailure(task=task, reason=NO_IMAGES_REASON, duration_ms=_elapsed_ms(started))

        saved_paths: list[str] = []
        errors: list[str] = []
        if output_directory is not None:
            saved_paths, errors = self._persist(task, urls, Path(output_directory))

        return GenerationSuccess(
            task=task,
            image_urls=tuple(urls),
            saved_paths=tuple(saved_paths),
            persistence_errors=tuple(errors),
            duration_ms=_elapsed_ms(started),
            request_id=_request_id(response),
        )

    def _persist(self, task: GenerationTask, urls: Sequence[str], base_dir: Path) -> tuple[list[str], list[str]]:
        saved: list[str] = []
        errors: list[str] = []
        try:
            target_dir = ensure_directory(base_dir / model_slug(task.model_id))
        except PersistenceError as exc:
            return saved, [str(exc)]
        for idx, url in enumerate(urls):
            path = target_dir / build_image_filename(task.model_id, task.sequence_index, idx, url)
            try:
                data = self.transport.fetch(url)
                write_file(path, data)
            except Exception as exc:
                errors.append(f"image {idx + 1}: {exc}")
                continue
            saved.append(str(path))
        return saved, errors


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


def _request_id(response: Mapping[str, Any]) -> str | None:
    value = response.get("request_id") or response.get("requestId")
    return str(value) if value else None
