"""Transport registry."""

from __future__ import annotations

from .base import ProviderError, Transport, TransportRegistry
from .dryrun import DryRunTransport
from .fal import FalTransport


def default_registry(
    *,
    request_timeout: float = 30.0,
    poll_timeout: float = 300.0,
) -> TransportRegistry:
    return TransportRegistry(
        [
            DryRunTransport(),
            FalTransport(request_timeout=request_timeout, poll_timeout=poll_timeout),
        ]
    )


__all__ = ["ProviderError", "Transport", "TransportRegistry", "DryRunTransport", "FalTransport", "default_registry"]
