"""Dry-run transport (offline)."""

from __future__ import annotations

import hashlib
import io
import random
import uuid
from typing import Any, Mapping
from urllib.parse import parse_qs, urlparse

from PIL import Image, ImageDraw, ImageFont

from ..credentials import Credentials
from ..utils import model_slug
from .base import ProviderError


_IMAGE_SIZES: dict[str, tuple[int, int]] = {
    "square_hd": (1024, 1024),
    "square": (512, 512),
    "portrait_4_3": (768, 1024),
    "portrait_16_9": (576, 1024),
    "landscape_4_3": (1024, 768),
    "landscape_16_9": (1024, 576),
}
_PREVIEW_MAX_SIDE = 256


class DryRunTransport:
    name = "dryrun"

    def submit(self, model_id: str, payload: Mapping[str, Any], credentials: Credentials) -> Mapping[str, Any]:
        prompt = str(payload.get("prompt") or "")
        if not prompt.strip():
            raise ProviderError("dryrun rejected the request: prompt is empty")
        try:
            count = max(1, int(payload.get("num_images") or 1))
        except (TypeError, ValueError):
            count = 1
        width, height = _resolve_dims(payload)
        seed = payload.get("seed")
        if seed is None:
            seed = random.randint(1, 10_000_000)
        request_id = uuid.uuid4().hex
        images = []
        for idx in range(count):
            url = f"dryrun://{model_slug(model_id)}/{request_id}-{idx:02d}.png?w={width}&h={height}&seed={seed}"
            images.append({"url": url, "width": width, "height": height, "content_type": "image/png"})
        return {
            "images": images,
            "seed": seed,
            "request_id": request_id,
            "prompt": prompt,
            "dryrun": True,
        }

    def fetch(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme != "dryrun":
            raise ProviderError(f"dryrun cannot fetch non-dryrun URL: {url}")
        query = parse_qs(parsed.query)
        width = _int_param(query, "w", 1024)
        height = _int_param(query, "h", 1024)
        scale = min(1.0, _PREVIEW_MAX_SIDE / float(max(width, height)))
        size = (max(1, int(width * scale)), max(1, int(height * scale)))
        image = Image.new("RGB", size, _color_from_url(url))
        draw = ImageDraw.Draw(image)
        draw.text((8, 8), f"dryrun\n{parsed.netloc}", fill=(255, 255, 255), font=ImageFont.load_default())
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def _resolve_dims(payload: Mapping[str, Any]) -> tuple[int, int]:
    image_size = payload.get("image_size")
    if isinstance(image_size, str) and image_size in _IMAGE_SIZES:
        return _IMAGE_SIZES[image_size]
    if isinstance(image_size, Mapping):
        try:
            return int(image_size["width"]), int(image_size["height"])
        except (KeyError, TypeError, ValueError):
            pass
    ratio = payload.get("aspect_ratio")
    if isinstance(ratio, str) and ":" in ratio:
        try:
            w_part, h_part = (float(part) for part in ratio.split(":", 1))
        except ValueError:
            return (1024, 1024)
        if w_part > 0 and h_part > 0:
            if w_part >= h_part:
                return 1024, max(64, int(1024 * h_part / w_part))
            return max(64, int(1024 * w_part / h_part)), 1024
    return (1024, 1024)


def _int_param(query: Mapping[str, list[str]], key: str, default: int) -> int:
    try:
        return max(1, int(query.get(key, [default])[0]))
    except (TypeError, ValueError):
        return default


def _color_from_url(url: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(url.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
