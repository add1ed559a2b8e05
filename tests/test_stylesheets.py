from __future__ import annotations

import posixpath
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web

from conftest import PNG_BYTES, serve_app
from page_cloner.fetch import AssetFetcher
from page_cloner.models import AssetCatalog
from page_cloner.stylesheets import process_stylesheet, process_stylesheets, rewrite_css_urls

MAIN_CSS = """@import url("theme.css");
body { background: url(../img/bg.png); }
.gone { background: url(/missing.png); }
.inline { background: url(data:image/png;base64,AAAA); }
@font-face { font-family: A; src: url('fonts/a.woff2') format('woff2'); }
"""
THEME_CSS = ".t { background-image: url( ../img/t.png ); }"


@pytest_asyncio.fixture
async def css_server(unused_tcp_port: int) -> AsyncIterator[str]:
    app = web.Application()

    async def handle_main(_):
        return web.Response(text=MAIN_CSS, content_type="text/css")

    async def handle_theme(_):
        return web.Response(text=THEME_CSS, content_type="text/css")

    async def handle_image(_):
        return web.Response(body=PNG_BYTES, content_type="image/png")

    async def handle_font(_):
        return web.Response(body=b"wOF2-font", content_type="font/woff2")

    app.router.add_get("/static/css/main.css", handle_main)
    app.router.add_get("/static/css/theme.css", handle_theme)
    app.router.add_get("/static/img/{name}", handle_image)
    app.router.add_get("/static/css/fonts/a.woff2", handle_font)

    async for base in serve_app(app, unused_tcp_port):
        yield base


def test_rewrite_css_urls_keeps_quoting():
    css = "a{b:url('x.png')} c{d:url(y.png)} e{f:url(\"z.png\")}"
    updated = rewrite_css_urls(css, {"x.png": "L/x.png", "z.png": "L/z.png"})
    assert updated == "a{b:url('L/x.png')} c{d:url(y.png)} e{f:url(\"L/z.png\")}"


@pytest.mark.asyncio()
async def test_nested_assets_are_downloaded_and_relinked(css_server, tmp_path, clone_config):
    main_url = f"{css_server}/static/css/main.css"
    catalog = AssetCatalog()
    catalog.add(main_url)

    fetcher = AssetFetcher(tmp_path, clone_config)
    try:
        await fetcher.fetch_catalog(catalog)
        processed = await process_stylesheets(catalog, fetcher, tmp_path)
    finally:
        fetcher.close()

    assert processed == 2
    assert len(catalog) == 6
    assert [record.source_url for record in catalog.failed()] == [f"{css_server}/missing.png"]

    main = catalog.get(main_url)
    css_dir = posixpath.dirname(main.local_path)
    css = (tmp_path / main.local_path).read_text()

    font = catalog.get(f"{css_server}/static/css/fonts/a.woff2")
    theme = catalog.get(f"{css_server}/static/css/theme.css")
    background = catalog.get(f"{css_server}/static/img/bg.png")
    assert f"url('{posixpath.relpath(font.local_path, css_dir)}')" in css
    assert f'url("{posixpath.relpath(theme.local_path, css_dir)}")' in css
    assert f"url({posixpath.relpath(background.local_path, css_dir)})" in css
    assert f"url({css_server}/missing.png)" in css
    assert "url(data:image/png;base64,AAAA)" in css

    for record in (font, theme, background):
        relative = posixpath.relpath(record.local_path, css_dir)
        assert (tmp_path / css_dir / relative).resolve().is_file()

    theme_css = (tmp_path / theme.local_path).read_text()
    nested = catalog.get(f"{css_server}/static/img/t.png")
    assert f"url( {posixpath.relpath(nested.local_path, css_dir)} )" in theme_css


@pytest.mark.asyncio()
async def test_unreadable_stylesheet_is_skipped(tmp_path, clone_config):
    catalog = AssetCatalog()
    record = catalog.add("https://cdn.test/css/gone.css")
    record.local_path = "assets/css/gone.css"
    record.bucket = "css"

    fetcher = AssetFetcher(tmp_path, clone_config)
    try:
        processed = await process_stylesheets(catalog, fetcher, tmp_path)
    finally:
        fetcher.close()

    assert processed == 0


@pytest.mark.asyncio()
async def test_non_utf8_stylesheet_keeps_its_bytes(tmp_path, clone_config):
    catalog = AssetCatalog()
    image = catalog.add("https://cdn.test/img/x.png")
    image.local_path = "assets/images/x.png"
    sheet = catalog.add("https://cdn.test/css/a.css")
    sheet.local_path = "assets/css/a.css"
    sheet.bucket = "css"

    css_path = tmp_path / "assets" / "css" / "a.css"
    css_path.parent.mkdir(parents=True)
    css_path.write_bytes(b"/* caf\xe9 */ .a { background: url(../img/x.png); }")

    fetcher = AssetFetcher(tmp_path, clone_config)
    try:
        nested = await process_stylesheet(sheet, catalog, fetcher, tmp_path)
    finally:
        fetcher.close()

    assert nested == []
    assert css_path.read_bytes() == b"/* caf\xe9 */ .a { background: url(../images/x.png); }"
