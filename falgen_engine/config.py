"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from .pricing.guard import DEFAULT_SPENDING_LIMIT
from .utils import getenv_flag


DEFAULT_OUTPUT_DIR = Path("generated-images")
MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    models_dir: Path | None = None
    spending_limit: Decimal = DEFAULT_SPENDING_LIMIT
    concurrency: int = 1
    output_dir: Path = DEFAULT_OUTPUT_DIR
    dry_run: bool = False
    request_timeout: float = 30.0
    poll_timeout: float = 300.0


def load_settings() -> Settings:
    models_dir = os.getenv("FALGEN_MODELS_DIR")
    output_dir = os.getenv("FALGEN_OUTPUT_DIR")
    return Settings(
        api_key=os.getenv("FAL_KEY") or os.getenv("FAL_API_KEY"),
        models_dir=Path(models_dir).expanduser() if models_dir else None,
        spending_limit=_env_decimal("FALGEN_SPENDING_LIMIT", DEFAULT_SPENDING_LIMIT),
        concurrency=clamp_concurrency(_env_int("FALGEN_CONCURRENCY", 1)),
        output_dir=Path(output_dir).expanduser() if output_dir else DEFAULT_OUTPUT_DIR,
        dry_run=getenv_flag("FALGEN_DRYRUN", False),
        request_timeout=_env_float("FALGEN_REQUEST_TIMEOUT", 30.0),
        poll_timeout=_env_float("FALGEN_POLL_TIMEOUT", 300.0),
    )


def clamp_concurrency(value: int) -> int:
    return max(1, min(MAX_CONCURRENCY, int(value)))


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_decimal(key: str, default: Decimal) -> Decimal:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return default
    return value if value >= 0 else default
