"""fal.ai queue transport."""

from __future__ import annotations

import base64
import json
import socket
import time
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..credentials import Credentials
from .base import ProviderError


QUEUE_BASE_URL = "https://queue.fal.run"
COMPLETED_STATUSES = {"completed"}
PENDING_STATUSES = {"in_queue", "in_progress"}
FAILURE_STATUSES = {"failed", "error", "cancelled"}


class FalTransport:
    name = "fal"

    def __init__(
        self,
        api_base: str | None = None,
        *,
        request_timeout: float = 30.0,
        poll_timeout: float = 300.0,
        poll_interval: float = 1.0,
        download_timeout: float = 60.0,
    ) -> None:
        self.api_base = (api_base or QUEUE_BASE_URL).rstrip("/")
        self.request_timeout = request_timeout
        self.poll_timeout = poll_timeout
        self.poll_interval = max(0.0, poll_interval)
        self.download_timeout = download_timeout

    def submit(self, model_id: str, payload: Mapping[str, Any], credentials: Credentials) -> Mapping[str, Any]:
        headers = {
            "Authorization": credentials.authorization_header(),
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        endpoint = f"{self.api_base}/{model_id.strip('/')}"
        queued = _request_json("POST", endpoint, headers, self.request_timeout, payload=payload)
        request_id = queued.get("request_id")
        status_url = queued.get("status_url") or (f"{endpoint}/requests/{request_id}/status" if request_id else None)
        response_url = queued.get("response_url") or (f"{endpoint}/requests/{request_id}" if request_id else None)
        if not status_url or not response_url:
            # synchronous endpoints answer with the result directly
            if "request_id" not in queued and "status" not in queued:
                return queued
            raise ProviderError(f"fal queue response missing request_id: {_truncate(queued)}")

        started = time.monotonic()
        while time.monotonic() - started < self.poll_timeout:
            status_payload = _request_json("GET", status_url, headers, self.request_timeout)
            status = str(status_payload.get("status") or "").lower()
            if status in COMPLETED_STATUSES:
                error = status_payload.get("error")
                if error:
                    raise ProviderError(f"fal generation failed: {error}")
                result = dict(_request_json("GET", response_url, headers, self.request_timeout))
                result.setdefault("request_id", request_id)
                return result
            if status in FAILURE_STATUSES:
                raise ProviderError(f"fal generation failed: {_truncate(status_payload)}")
            if status not in PENDING_STATUSES:
                raise ProviderError(f"fal returned unknown queue status '{status}'")
            time.sleep(self.poll_interval)

        raise ProviderError(f"fal request {request_id} timed out after {self.poll_timeout:.1f}s")

    def fetch(self, url: str) -> bytes:
        if url.startswith("data:"):
            return _decode_data_url(url)
        req = Request(url, method="GET")
        try:
            with urlopen(req, timeout=self.download_timeout) as response:
                return response.read()
        except HTTPError as exc:
            raise ProviderError(f"Download failed ({exc.code}): {url}") from exc
        except (URLError, socket.timeout, TimeoutError) as exc:
            raise ProviderError(f"Download failed: {_describe_network_error(exc)}") from exc


def _request_json(
    method: str,
    url: str,
    headers: Mapping[str, str],
    timeout_s: float,
    *,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = Request(url, data=body, headers=dict(headers), method=method)
    try:
        with urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
        raise ProviderError(_http_error_message(exc.code, raw)) from exc
    except (URLError, socket.timeout, TimeoutError) as exc:
        raise ProviderError(f"fal request failed: {_describe_network_error(exc)}") from exc
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"fal returned malformed JSON: {raw[:200]}") from exc
    if not isinstance(parsed, dict):
        raise ProviderError(f"fal returned unexpected payload type {type(parsed).__name__}")
    return parsed


def _http_error_message(code: int, raw: str) -> str:
    detail = _truncate(raw)
    if code in (401, 403):
        return f"fal authentication failed ({code}): check FAL_KEY. {detail}"
    if code == 429:
        return f"fal rate limit exceeded (429): {detail}"
    if code in (400, 404, 422):
        return f"fal rejected the request ({code}): {detail}"
    return f"fal request failed ({code}): {detail}"


def _describe_network_error(exc: Exception) -> str:
    reason = getattr(exc, "reason", exc)
    if isinstance(reason, (socket.timeout, TimeoutError)):
        return "timed out"
    return str(reason)


def _decode_data_url(url: str) -> bytes:
    header, _, data = url.partition(",")
    if not data:
        raise ProviderError("Malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(data, validate=True)
        except ValueError as exc:
            raise ProviderError("Malformed base64 data URL") from exc
    return data.encode("utf-8")


def _truncate(value: Any, limit: int = 300) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else f"{text[:limit]}..."
