"""JSON model configs: one file per model."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping


BUNDLED_MODELS_DIR = Path(__file__).with_name("configs")
USER_MODELS_DIR = Path.home() / ".falgen" / "models"


@dataclass(frozen=True)
class RawRecord:
    source: str
    data: Mapping[str, Any] | None = None
    error: str | None = None


Loader = Callable[[], list[RawRecord]]


def load_json_directory(path: Path) -> list[RawRecord]:
    """Read every `*.json` file under `path`.

    Raises OSError when the directory itself cannot be listed. Unparseable
    files come back as records carrying an error instead of data.
    """

    records: list[RawRecord] = []
    for file_path in sorted(path.iterdir()):
        if file_path.suffix.lower() != ".json" or not file_path.is_file():
            continue
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            records.append(RawRecord(source=file_path.name, error=str(exc)))
            continue
        if not isinstance(data, dict):
            records.append(RawRecord(source=file_path.name, error="model config must be a JSON object"))
            continue
        records.append(RawRecord(source=file_path.name, data=data))
    return records


def user_models_dir() -> Path:
    raw = os.getenv("FALGEN_MODELS_DIR")
    return Path(raw).expanduser() if raw else USER_MODELS_DIR


def default_loader(
    bundled_dir: Path | None = None,
    override_dir: Path | None = None,
) -> Loader:
    """Bundled configs, overridden by id from the user's models directory."""

    def load_all() -> list[RawRecord]:
        bundled = load_json_directory(bundled_dir or BUNDLED_MODELS_DIR)
        overrides_path = override_dir or user_models_dir()
        if not overrides_path.is_dir():
            return bundled
        overrides = load_json_directory(overrides_path)
        override_ids = {
            record.data.get("id") for record in overrides if record.data is not None and record.data.get("id")
        }
        merged = [
            record
            for record in bundled
            if record.data is None or record.data.get("id") not in override_ids
        ]
        merged.extend(overrides)
        return merged

    return load_all
