from __future__ import annotations

import base64
import io
import json
import socket
from urllib.error import HTTPError, URLError

import pytest

from falgen_engine.credentials import Credentials
from falgen_engine.providers.base import ProviderError
from falgen_engine.providers.fal import FalTransport

API_KEY = "12345678-1234-1234-1234-123456789abc:" + "a" * 32
CREDENTIALS = Credentials(api_key=API_KEY)


class DummyResponse:
    def __init__(self, payload) -> None:
        self._data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._data

    def __enter__(self) -> "DummyResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


def _install(monkeypatch, responses):
    calls = []
    queue = list(responses)

    def fake_urlopen(req, timeout=None):
        calls.append(
            {
                "url": req.full_url,
                "method": req.get_method(),
                "headers": dict(req.header_items()),
                "body": json.loads(req.data.decode("utf-8")) if req.data else None,
                "timeout": timeout,
            }
        )
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return DummyResponse(item)

    monkeypatch.setattr("falgen_engine.providers.fal.urlopen", fake_urlopen)
    return calls


def test_submit_polls_until_completed(monkeypatch) -> None:
    calls = _install(
        monkeypatch,
        [
            {
                "request_id": "req-1",
                "status_url": "https://queue.fal.run/fal-ai/flux/dev/requests/req-1/status",
                "response_url": "https://queue.fal.run/fal-ai/flux/dev/requests/req-1",
            },
            {"status": "IN_QUEUE"},
            {"status": "IN_PROGRESS"},
            {"status": "COMPLETED"},
            {"images": [{"url": "https://fal.media/1.png"}], "seed": 42},
        ],
    )
    transport = FalTransport(poll_interval=0)
    result = transport.submit("fal-ai/flux/dev", {"prompt": "boat", "num_images": 1}, CREDENTIALS)

    assert result["images"][0]["url"] == "https://fal.media/1.png"
    assert result["request_id"] == "req-1"
    assert calls[0]["url"] == "https://queue.fal.run/fal-ai/flux/dev"
    assert calls[0]["method"] == "POST"
    assert calls[0]["body"] == {"prompt": "boat", "num_images": 1}
    assert calls[0]["headers"]["Authorization"] == f"Key {API_KEY}"
    assert [call["method"] for call in calls[1:]] == ["GET", "GET", "GET", "GET"]
    assert calls[-1]["url"] == "https://queue.fal.run/fal-ai/flux/dev/requests/req-1"


def test_synchronous_response_is_returned_directly(monkeypatch) -> None:
    _install(monkeypatch, [{"images": [{"url": "https://fal.media/sync.png"}]}])
    result = FalTransport().submit("fal-ai/flux/schnell", {"prompt": "boat"}, CREDENTIALS)
    assert result["images"][0]["url"] == "https://fal.media/sync.png"


def test_failed_status_raises(monkeypatch) -> None:
    _install(monkeypatch, [{"request_id": "req-2"}, {"status": "FAILED", "error": "nsfw"}])
    with pytest.raises(ProviderError, match="fal generation failed"):
        FalTransport(poll_interval=0).submit("fal-ai/flux/dev", {"prompt": "boat"}, CREDENTIALS)


def test_poll_timeout_raises(monkeypatch) -> None:
    _install(monkeypatch, [{"request_id": "req-3"}])
    with pytest.raises(ProviderError, match="timed out"):
        FalTransport(poll_timeout=0, poll_interval=0).submit("fal-ai/flux/dev", {"prompt": "boat"}, CREDENTIALS)


@pytest.mark.parametrize(
    "code,expected",
    [(401, "authentication failed"), (403, "authentication failed"), (429, "rate limit"), (422, "rejected")],
)
def test_http_errors_are_described(monkeypatch, code: int, expected: str) -> None:
    error = HTTPError("https://queue.fal.run/x", code, "error", {}, io.BytesIO(b'{"detail":"nope"}'))
    _install(monkeypatch, [error])
    with pytest.raises(ProviderError, match=expected):
        FalTransport().submit("fal-ai/flux/dev", {"prompt": "boat"}, CREDENTIALS)


def test_network_timeout_is_described(monkeypatch) -> None:
    _install(monkeypatch, [URLError(socket.timeout("timed out"))])
    with pytest.raises(ProviderError, match="timed out"):
        FalTransport().submit("fal-ai/flux/dev", {"prompt": "boat"}, CREDENTIALS)


def test_malformed_json_raises(monkeypatch) -> None:
    _install(monkeypatch, [b"<html>oops</html>"])
    with pytest.raises(ProviderError, match="malformed JSON"):
        FalTransport().submit("fal-ai/flux/dev", {"prompt": "boat"}, CREDENTIALS)


def test_fetch_downloads_bytes(monkeypatch) -> None:
    calls = _install(monkeypatch, [b"\x89PNG-bytes"])
    data = FalTransport(download_timeout=5).fetch("https://fal.media/1.png")
    assert data == b"\x89PNG-bytes"
    assert calls[0]["timeout"] == 5


def test_fetch_decodes_data_urls() -> None:
    encoded = base64.b64encode(b"image-bytes").decode("ascii")
    assert FalTransport().fetch(f"data:image/png;base64,{encoded}") == b"image-bytes"
    with pytest.raises(ProviderError):
        FalTransport().fetch("data:image/png;base64,@@@")
