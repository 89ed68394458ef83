from __future__ import annotations

from falgen_engine.generation.extractors import DEFAULT_EXTRACTORS, UrlExtractor, extract_image_urls


def test_images_list_of_objects() -> None:
    urls, name = extract_image_urls({"images": [{"url": "https://x/1.png"}, {"url": "https://x/2.png"}]})
    assert urls == ["https://x/1.png", "https://x/2.png"]
    assert name == "images"


def test_single_image_object() -> None:
    urls, name = extract_image_urls({"image": {"url": "https://x/1.jpg"}})
    assert urls == ["https://x/1.jpg"]
    assert name == "image"


def test_nested_shapes() -> None:
    assert extract_image_urls({"data": {"images": ["https://x/a.png"]}})[0] == ["https://x/a.png"]
    assert extract_image_urls({"data": {"image": {"image_url": "https://x/b.png"}}})[0] == ["https://x/b.png"]
    assert extract_image_urls({"output": {"images": [{"url": "https://x/c.png"}]}})[0] == ["https://x/c.png"]


def test_first_non_empty_shape_wins() -> None:
    response = {
        "images": [],
        "image": {"url": "https://x/from-image.png"},
        "data": {"images": [{"url": "https://x/from-data.png"}]},
    }
    urls, name = extract_image_urls(response)
    assert urls == ["https://x/from-image.png"]
    assert name == "image"


def test_no_known_shape_returns_empty() -> None:
    assert extract_image_urls({"result": "https://x/1.png"}) == ([], None)
    assert extract_image_urls({"images": [{"width": 10}]}) == ([], None)
    assert extract_image_urls(None) == ([], None)


def test_extra_extractor_can_be_appended() -> None:
    custom = UrlExtractor("result.url", lambda response: [response["result"]] if "result" in response else [])
    urls, name = extract_image_urls({"result": "https://x/1.png"}, DEFAULT_EXTRACTORS + (custom,))
    assert urls == ["https://x/1.png"]
    assert name == "result.url"
