from __future__ import annotations

import re

import pytest

from page_cloner.errors import InvalidUrl
from page_cloner.utils import (
    classify_asset,
    create_output_dir,
    extract_css_urls,
    get_extension,
    hash_url,
    normalize_url,
    parse_srcset,
    resolve_url,
    safe_folder_name,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("example.com", "https://example.com/"),
        ("  https://Example.COM/shop?x=1  ", "https://example.com/shop?x=1"),
        ("HTTP://example.com:8080/a", "http://example.com:8080/a"),
        ("localhost:3000/page", "https://localhost:3000/page"),
    ],
)
def test_normalize_url_accepts(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "ftp://example.com/file", "https://", "exa mple.com"])
def test_normalize_url_rejects(raw):
    with pytest.raises(InvalidUrl):
        normalize_url(raw)


def test_invalid_url_is_a_value_error():
    with pytest.raises(ValueError):
        normalize_url("javascript://alert(1)")


def test_hash_url_is_stable_and_short():
    assert hash_url("https://a.test/x.png") == hash_url("https://a.test/x.png")
    assert hash_url("https://a.test/x.png") != hash_url("https://a.test/y.png")
    assert re.fullmatch(r"[0-9a-f]{12}", hash_url("https://a.test/x.png"))


def test_safe_folder_name():
    assert safe_folder_name("https://shop.example.com/a", 1700000000000) == "shop.example.com_1700000000000"
    assert safe_folder_name("https://[::1]:8080/", 5) == "__1_5"
    assert safe_folder_name("not a url", 7) == "unknown_7"


def test_create_output_dir_never_reuses_a_folder(tmp_path, monkeypatch):
    monkeypatch.setattr("page_cloner.utils.safe_folder_name", lambda url: "example.com_1")
    first = create_output_dir(tmp_path, "https://example.com/")
    second = create_output_dir(tmp_path, "https://example.com/")
    assert first.name == "example.com_1"
    assert second.name == "example.com_1-2"
    assert first.is_dir() and second.is_dir()


def test_resolve_url_passes_data_urls_through():
    assert resolve_url("https://a.test/p/", "img.png") == "https://a.test/p/img.png"
    assert resolve_url("https://a.test/p/", "../img.png") == "https://a.test/img.png"
    assert resolve_url("https://a.test/p/", "//cdn.test/x.js") == "https://cdn.test/x.js"
    assert resolve_url("https://a.test/", "data:image/png;base64,AAA") == "data:image/png;base64,AAA"


def test_parse_srcset_drops_descriptors_and_data_urls():
    srcset = "a-480.jpg 480w, a-800.jpg 800w, data:image/gif 1x"
    assert parse_srcset(srcset) == ["a-480.jpg", "a-800.jpg"]
    assert parse_srcset(None) == []


def test_extract_css_urls_handles_quotes():
    css = """
    .a { background: url(img/a.png); }
    .b { background: url("img/b.png"); }
    .c { background: url( 'img/c.png' ); }
    .d { background: url(data:image/png;base64,AAAA); }
    """
    assert extract_css_urls(css) == ["img/a.png", "img/b.png", "img/c.png"]


def test_get_extension_prefers_path_then_content_type():
    assert get_extension("https://a.test/style.CSS?v=2") == ".css"
    assert get_extension("https://a.test/asset", "image/webp; charset=binary") == ".webp"
    assert get_extension("https://a.test/asset", "application/octet-stream") == ""


@pytest.mark.parametrize(
    ("extension", "content_type", "bucket"),
    [
        (".css", "", "css"),
        (".woff2", "", "fonts"),
        (".jpg", "text/plain", "images"),
        ("", "font/woff2", "fonts"),
        ("", "application/javascript", "js"),
        (".ogg", "", "video"),
        ("", "application/octet-stream", "other"),
    ],
)
def test_classify_asset(extension, content_type, bucket):
    assert classify_asset(extension, content_type) == bucket
