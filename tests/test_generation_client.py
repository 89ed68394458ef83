from __future__ import annotations

from pathlib import Path

from falgen_engine.credentials import DRYRUN_API_KEY, Credentials
from falgen_engine.generation.client import NO_IMAGES_REASON, GenerationClient
from falgen_engine.generation.tasks import GenerationFailure, GenerationSuccess, GenerationTask
from falgen_engine.providers.base import ProviderError
from falgen_engine.providers.dryrun import DryRunTransport

CREDENTIALS = Credentials(api_key=DRYRUN_API_KEY, source="dryrun")


class ScriptedTransport:
    name = "scripted"

    def __init__(self, response=None, error: Exception | None = None, bad_urls: set[str] | None = None) -> None:
        self.response = response
        self.error = error
        self.bad_urls = bad_urls or set()
        self.submitted: list[tuple[str, dict]] = []

    def submit(self, model_id, payload, credentials):
        self.submitted.append((model_id, dict(payload)))
        if self.error is not None:
            raise self.error
        return self.response

    def fetch(self, url: str) -> bytes:
        if url in self.bad_urls:
            raise ProviderError(f"Download failed (404): {url}")
        return f"bytes-of-{url}".encode("utf-8")


def _task(**overrides) -> GenerationTask:
    values = {"model_id": "fal-ai/flux/dev", "prompt": "a lighthouse", "parameters": {"num_images": 2}}
    values.update(overrides)
    return GenerationTask(**values)


def test_success_returns_urls_in_order() -> None:
    transport = ScriptedTransport({"images": [{"url": "https://x/1.png"}, {"url": "https://x/2.png"}], "request_id": "r1"})
    result = GenerationClient(transport).generate(_task(), CREDENTIALS)
    assert isinstance(result, GenerationSuccess)
    assert result.image_urls == ("https://x/1.png", "https://x/2.png")
    assert result.saved_paths == ()
    assert result.request_id == "r1"
    assert result.duration_ms >= 0
    assert transport.submitted == [("fal-ai/flux/dev", {"num_images": 2, "prompt": "a lighthouse"})]


def test_provider_error_becomes_failure() -> None:
    transport = ScriptedTransport(error=ProviderError("fal request failed: timed out"))
    result = GenerationClient(transport).generate(_task(), CREDENTIALS)
    assert isinstance(result, GenerationFailure)
    assert result.reason == "fal request failed: timed out"


def test_unexpected_error_becomes_failure() -> None:
    transport = ScriptedTransport(error=KeyError("images"))
    result = GenerationClient(transport).generate(_task(), CREDENTIALS)
    assert isinstance(result, GenerationFailure)
    assert result.reason.startswith("KeyError")


def test_response_without_images_is_a_failure() -> None:
    transport = ScriptedTransport({"images": [], "seed": 7})
    result = GenerationClient(transport).generate(_task(), CREDENTIALS)
    assert isinstance(result, GenerationFailure)
    assert result.reason == NO_IMAGES_REASON


def test_persistence_writes_unique_files_per_model(tmp_path: Path) -> None:
    transport = ScriptedTransport({"images": [{"url": "https://x/1.png"}, {"url": "https://x/2.jpeg"}]})
    client = GenerationClient(transport)
    first = client.generate(_task(), CREDENTIALS, tmp_path)
    second = client.generate(_task(sequence_index=1), CREDENTIALS, tmp_path)
    assert isinstance(first, GenerationSuccess)
    assert isinstance(second, GenerationSuccess)
    paths = [Path(path) for path in first.saved_paths + second.saved_paths]
    assert len(paths) == 4
    assert len(set(paths)) == 4
    assert all(path.parent == tmp_path / "fal_ai_flux_dev" for path in paths)
    assert paths[0].suffix == ".png"
    assert paths[1].suffix == ".jpg"
    assert paths[0].read_bytes() == b"bytes-of-https://x/1.png"


def test_one_failed_download_keeps_the_others(tmp_path: Path) -> None:
    transport = ScriptedTransport(
        {"images": ["https://x/1.png", "https://x/2.png", "https://x/3.png"]},
        bad_urls={"https://x/2.png"},
    )
    result = GenerationClient(transport).generate(_task(), CREDENTIALS, tmp_path)
    assert isinstance(result, GenerationSuccess)
    assert len(result.image_urls) == 3
    assert len(result.saved_paths) == 2
    assert len(result.persistence_errors) == 1
    assert result.persistence_errors[0].startswith("image 2:")


def test_unwritable_output_directory_is_not_a_task_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("file, not a directory", encoding="utf-8")
    transport = ScriptedTransport({"images": ["https://x/1.png"]})
    result = GenerationClient(transport).generate(_task(), CREDENTIALS, blocker)
    assert isinstance(result, GenerationSuccess)
    assert result.saved_paths == ()
    assert result.persistence_errors


def test_dryrun_transport_end_to_end(tmp_path: Path) -> None:
    result = GenerationClient(DryRunTransport()).generate(_task(), CREDENTIALS, tmp_path)
    assert isinstance(result, GenerationSuccess)
    assert len(result.image_urls) == 2
    assert all(url.startswith("dryrun://") for url in result.image_urls)
    for path in result.saved_paths:
        assert Path(path).read_bytes().startswith(b"\x89PNG")
