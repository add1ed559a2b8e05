"""Discover every asset a rendered page references."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qs, unquote, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import (
    CONTEXT_CSS,
    CONTEXT_HREF,
    CONTEXT_PROXY,
    CONTEXT_SRC,
    CONTEXT_SRCSET,
    CONTEXT_STYLE,
    AssetCatalog,
    AssetReference,
    CapturedPage,
)
from .utils import extract_css_urls, is_data_url, parse_srcset, resolve_url

logger = logging.getLogger("page_cloner")

PROXY_SOURCE_PARAMS = ("source", "url", "src")
PRELOAD_TYPES = {"font", "style", "script", "image"}


def is_proxy_path(path: str) -> bool:
    """True for image-optimization routes such as ``/api/proxy-image`` or ``/_next/image``."""
    return (
        ("/api/" in path and "image" in path)
        or "/_next/image" in path
        or "proxy" in path
    )


def extract_proxy_image_url(url: str) -> Optional[str]:
    """Return the real image URL wrapped by a proxy URL, or ``None``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not is_proxy_path(parts.path):
        return None
    params = parse_qs(parts.query, keep_blank_values=False)
    for name in PROXY_SOURCE_PARAMS:
        values = params.get(name)
        if values and values[0]:
            return unquote(values[0])
    return None


def _rel_tokens(tag: Tag) -> str:
    rel = tag.get("rel") or ""
    if isinstance(rel, (list, tuple)):
        rel = " ".join(rel)
    return rel.lower()


class AssetExtractor:
    """Walks a captured page and fills an :class:`AssetCatalog`."""

    def __init__(self, page: CapturedPage) -> None:
        self.page = page
        self.catalog = AssetCatalog()

    def add(self, raw: Optional[str], context: str) -> None:
        if not raw or not raw.strip() or is_data_url(raw):
            return
        url = resolve_url(self.page.final_url, raw)
        if not url.lower().startswith(("http://", "https://")):
            logger.debug("Skipping non-http asset reference %s", raw)
            return
        self.catalog.add(url, AssetReference(raw=raw, url=url, context=context))

    def add_image(self, raw: Optional[str], context: str) -> None:
        """Register an image reference, following image-proxy URLs to their source."""
        if not raw or not raw.strip() or is_data_url(raw):
            return
        resolved = resolve_url(self.page.final_url, raw)
        real = extract_proxy_image_url(resolved)
        if real is None:
            self.add(raw, context)
            return
        real_url = resolve_url(self.page.final_url, real)
        self.catalog.add_proxy(resolved, real_url)
        self.catalog.add(real_url, AssetReference(raw=raw, url=real_url, context=CONTEXT_PROXY))
        logger.debug("Proxy image %s -> %s", resolved, real_url)

    def add_css_text(self, css: str, context: str) -> None:
        for raw in extract_css_urls(css):
            self.add(raw, context)

    def run(self) -> AssetCatalog:
        soup = BeautifulSoup(self.page.html, "html.parser")

        for img in soup.find_all("img", src=True):
            self.add_image(img.get("src"), CONTEXT_SRC)

        for attr in ("srcset", "imagesrcset"):
            for tag in soup.find_all(attrs={attr: True}):
                for raw in parse_srcset(tag.get(attr)):
                    self.add_image(raw, CONTEXT_SRCSET)

        for link in soup.find_all("link", href=True):
            rel = _rel_tokens(link)
            href = link.get("href")
            if "stylesheet" in rel.split():
                self.add(href, CONTEXT_HREF)
            elif "icon" in rel or "apple-touch" in rel:
                self.add(href, CONTEXT_HREF)
            elif "preload" in rel.split() and (link.get("as") or "").lower() in PRELOAD_TYPES:
                self.add(href, CONTEXT_HREF)

        for script in soup.find_all("script", src=True):
            self.add(script.get("src"), CONTEXT_SRC)

        for media in soup.find_all(["video", "audio", "source"], src=True):
            self.add(media.get("src"), CONTEXT_SRC)

        for style in soup.find_all("style"):
            self.add_css_text(style.string or style.get_text(), CONTEXT_CSS)

        for tag in soup.find_all(style=True):
            self.add_css_text(tag.get("style") or "", CONTEXT_STYLE)

        logger.info("Found %d assets to download", len(self.catalog))
        return self.catalog


def extract_assets(page: CapturedPage) -> AssetCatalog:
    """Build the asset catalog for a captured page."""
    return AssetExtractor(page).run()

