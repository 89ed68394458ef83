"""Image URL extraction from provider responses.

Providers place image references under different shapes depending on the
model. Each extractor handles exactly one shape; `extract_image_urls` tries
them in order and keeps the first non-empty answer. Supporting a new shape
means appending an extractor, not editing the existing ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence


_URL_KEYS = ("url", "image_url")


@dataclass(frozen=True)
class UrlExtractor:
    name: str
    extract: Callable[[Mapping[str, Any]], list[str]]


def _url_from_item(item: Any) -> str | None:
    if isinstance(item, str):
        text = item.strip()
        return text or None
    if isinstance(item, Mapping):
        for key in _URL_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _urls_from_list(items: Any) -> list[str]:
    if not isinstance(items, (list, tuple)):
        return []
    urls: list[str] = []
    for item in items:
        url = _url_from_item(item)
        if url:
            urls.append(url)
    return urls


def _nested(response: Mapping[str, Any], *path: str) -> Any:
    current: Any = response
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _single(value: Any) -> list[str]:
    if isinstance(value, str):
        # a bare string under `image` is not a known shape
        return []
    url = _url_from_item(value)
    return [url] if url else []


DEFAULT_EXTRACTORS: tuple[UrlExtractor, ...] = (
    UrlExtractor("images", lambda response: _urls_from_list(response.get("images"))),
    UrlExtractor("image", lambda response: _single(response.get("image"))),
    UrlExtractor("data.images", lambda response: _urls_from_list(_nested(response, "data", "images"))),
    UrlExtractor("data.image", lambda response: _single(_nested(response, "data", "image"))),
    UrlExtractor("output.images", lambda response: _urls_from_list(_nested(response, "output", "images"))),
)


def extract_image_urls(
    response: Mapping[str, Any] | None,
    extractors: Sequence[UrlExtractor] = DEFAULT_EXTRACTORS,
) -> tuple[list[str], str | None]:
    """Return (urls, extractor name) for the first extractor that finds anything."""

    if not isinstance(response, Mapping):
        return [], None
    for extractor in extractors:
        urls = extractor.extract(response)
        if urls:
            return urls, extractor.name
    return [], None
