"""Filesystem side of image persistence."""

from __future__ import annotations

import secrets
import time
from pathlib import Path
from urllib.parse import urlparse

from ..utils import model_slug


_KNOWN_EXTENSIONS = {"png", "jpg", "jpeg", "webp"}


class PersistenceError(RuntimeError):
    """Downloading or writing one image failed."""


def ensure_directory(path: Path) -> Path:
    # create-if-missing; concurrent callers may race on the same directory
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PersistenceError(f"Cannot create output directory {path}: {exc}") from exc
    return path


def write_file(path: Path, data: bytes) -> Path:
    try:
        # "x" mode: never overwrite another task's image
        with path.open("xb") as handle:
            handle.write(data)
    except OSError as exc:
        raise PersistenceError(f"Cannot write {path}: {exc}") from exc
    return path


def build_image_filename(model_id: str, sequence_index: int, image_index: int, url: str) -> str:
    """`<model>_<seq>_<ms timestamp>_<random>_<n>.<ext>`; never derived from the URL body."""

    stamp = int(time.time() * 1000)
    suffix = secrets.token_hex(3)
    return (
        f"{model_slug(model_id)}_{sequence_index:04d}_{stamp}_{suffix}_{image_index + 1}"
        f".{_extension_for(url)}"
    )


def _extension_for(url: str) -> str:
    if url.startswith("data:image/"):
        ext = url[len("data:image/"):].split(";", 1)[0].lower()
    else:
        path = urlparse(url).path
        ext = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    if ext == "jpeg":
        ext = "jpg"
    return ext if ext in _KNOWN_EXTENSIONS else "jpg"
