# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from aiohttp import web

from page_cloner.config import CloneConfig
from page_cloner.models import AssetCatalog, CapturedPage

# Smallest valid PNG (1x1, transparent).
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


@pytest.fixture()
def clone_config(tmp_path: Path) -> CloneConfig:
    """Config with tiny delays so browser-free tests run fast."""
    return CloneConfig(
        output_root=tmp_path / "output",
        settle_delay=0,
        scroll_step_delay=0,
        network_idle_timeout=0.1,
        trailing_delay=0,
        asset_timeout=5.0,
        max_concurrent_downloads=4,
    )


def make_catalog(local_paths: dict[str, str | None], proxies: dict[str, str] | None = None) -> AssetCatalog:
    """Catalog whose records are already (or never) downloaded."""
    catalog = AssetCatalog()
    for url, local_path in local_paths.items():
        catalog.add(url).local_path = local_path
    for proxy_url, real_url in (proxies or {}).items():
        catalog.add_proxy(proxy_url, real_url)
    return catalog


def make_page(html: str, final_url: str = "https://shop.test/products/item") -> CapturedPage:
    return CapturedPage(html=html, final_url=final_url)
