"""API key resolution for the fal.ai provider."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


DRYRUN_API_KEY = "00000000-0000-0000-0000-000000000000:" + "0" * 32
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class CredentialsError(RuntimeError):
    pass


@dataclass(frozen=True)
class Credentials:
    api_key: str
    source: str = "env"

    def __repr__(self) -> str:
        return f"Credentials(api_key='{mask_api_key(self.api_key)}', source='{self.source}')"

    def authorization_header(self) -> str:
        return f"Key {self.api_key}"


def validate_api_key_format(api_key: str | None) -> bool:
    """fal keys look like `<uuid>:<token>` with a token of at least 32 chars."""
    if not api_key or not isinstance(api_key, str):
        return False
    parts = api_key.strip().split(":")
    if len(parts) != 2:
        return False
    key_id, token = parts
    return bool(_UUID_RE.match(key_id)) and len(token) >= 32


def mask_api_key(api_key: str) -> str:
    if len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}...{api_key[-4:]}"


def resolve_credentials(api_key: str | None = None, *, dry_run: bool = False) -> Credentials:
    if dry_run:
        return Credentials(api_key=DRYRUN_API_KEY, source="dryrun")
    key = api_key or os.getenv("FAL_KEY") or os.getenv("FAL_API_KEY")
    if not key:
        raise CredentialsError("No FAL API key found. Set FAL_KEY (or FAL_API_KEY) before generating.")
    key = key.strip()
    if not validate_api_key_format(key):
        raise CredentialsError(
            "Invalid API key format. Expected format: "
            "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx:xxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx"
        )
    source = "argument" if api_key else "env"
    return Credentials(api_key=key, source=source)
