"""Transport base classes."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from ..credentials import Credentials


class ProviderError(RuntimeError):
    """A single provider call failed (auth, rate limit, bad request, timeout)."""


class Transport(Protocol):
    name: str

    def submit(self, model_id: str, payload: Mapping[str, Any], credentials: Credentials) -> Mapping[str, Any]:
        ...

    def fetch(self, url: str) -> bytes:
        ...


class TransportRegistry:
    def __init__(self, transports: Iterable[Transport]) -> None:
        self._transports = {transport.name: transport for transport in transports}

    def get(self, name: str) -> Transport | None:
        return self._transports.get(name)

    def list(self) -> list[str]:
        return sorted(self._transports.keys())
