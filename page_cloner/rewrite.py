"""Point every downloaded asset reference in the page at its local copy.

The HTML is treated as text: replacements are plain substring swaps so the
rest of the document keeps its exact bytes. Two passes run in order:

1. the variant table, every textual form a downloaded URL may take in the
   serialized page, applied longest first so a short form never rewrites
   part of a longer one;
2. targeted regex passes for what the table cannot enumerate: relative
   ``src``/``href``/``url()`` references and ``srcset`` candidate lists.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from typing import Dict, Iterator, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from .extract import extract_proxy_image_url
from .models import AssetCatalog, CapturedPage
from .utils import resolve_url

logger = logging.getLogger("page_cloner")

# Wrappers a URL variant is matched inside; a bare substring is never replaced.
VARIANT_FORMS = (
    '"{}"',
    "'{}'",
    "url({})",
    'url("{}")',
    "url('{}')",
    "url(&quot;{}&quot;)",
)

ATTR_PATTERN = re.compile(
    r"""(?P<prefix>\b(?:src|href)=)(?P<q>["'])(?P<value>[^"']+)(?P=q)""",
    re.IGNORECASE,
)
SRCSET_PATTERN = re.compile(
    r"""(?P<prefix>\b(?:srcset|imagesrcset)=)(?P<q>["'])(?P<value>[^"']*)(?P=q)""",
    re.IGNORECASE,
)
HTML_CSS_URL_PATTERN = re.compile(
    r"""url\(\s*(&quot;|&\#39;|['"]?)([^'"()\s]+?)\1\s*\)""",
    re.IGNORECASE,
)
SRCSET_ENTRY_PATTERN = re.compile(r"(\s*)(\S+)(.*)", re.DOTALL)
SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _host(url: str) -> str:
    try:
        return urlsplit(url).netloc.lower()
    except ValueError:
        return ""


def _is_root_relative(variant: str) -> bool:
    return variant.startswith("/") and not variant.startswith("//")


def url_variants(url: str) -> List[Tuple[str, bool]]:
    """Textual forms a fetched absolute URL may take inside the page.

    Each form comes with a flag: ``True`` for forms that spell out the whole
    URL, ``False`` for query-stripped forms that other assets may also claim.
    """
    variants = [(url, True)]
    try:
        parts = urlsplit(url)
    except ValueError:
        return variants
    if not parts.netloc:
        return variants
    path = parts.path or "/"
    search = f"?{parts.query}" if parts.query else ""
    if path != "/" or search:
        variants.append((path + search, True))
    variants.append((f"//{parts.netloc}{path}{search}", True))
    if search:
        if path != "/":
            variants.append((path, False))
        variants.append((f"//{parts.netloc}{path}", False))
        variants.append((f"{parts.scheme}://{parts.netloc}{path}", False))
    return variants


class UrlVariantIndex:
    """Maps every URL variant to the local path it should become.

    A form that spells out an asset's whole URL always wins over a
    query-stripped form derived from some other asset.
    """

    def __init__(self) -> None:
        self._variants: Dict[str, str] = {}
        self._exact: Set[str] = set()

    def __len__(self) -> int:
        return len(self._variants)

    def __contains__(self, variant: object) -> bool:
        return variant in self._variants

    def get(self, variant: str) -> Optional[str]:
        return self._variants.get(variant)

    def add(self, variant: str, local_path: str, exact: bool = True) -> None:
        if not variant:
            return
        if exact:
            self._variants[variant] = local_path
            self._exact.add(variant)
        elif variant not in self._variants:
            self._variants[variant] = local_path

    def local_paths(self) -> Set[str]:
        return set(self._variants.values())

    def ordered(self) -> List[Tuple[str, str]]:
        """Longest variant first; ties broken alphabetically for stable output."""
        return sorted(self._variants.items(), key=lambda item: (-len(item[0]), item[0]))

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.ordered())

    @classmethod
    def build(cls, catalog: AssetCatalog, page_url: str) -> "UrlVariantIndex":
        """Index every downloaded asset of *catalog* as seen from *page_url*.

        Root-relative forms (``/img/a.png``) only ever mean the page's own
        host, so they are indexed for same-host assets alone.
        """
        page_host = _host(page_url)
        index = cls()
        for record in catalog.downloaded():
            same_host = _host(record.source_url) == page_host
            for variant, exact in url_variants(record.source_url):
                if _is_root_relative(variant) and not same_host:
                    continue
                index.add(variant, record.local_path, exact)

        for mapping in catalog.proxies:
            local_path = catalog.local_path_for(mapping.real_url)
            if not local_path:
                continue
            index.add(mapping.proxy_url, local_path)
            try:
                parts = urlsplit(mapping.proxy_url)
            except ValueError:
                continue
            if parts.netloc and parts.netloc.lower() != page_host:
                continue
            path_with_search = parts.path + (f"?{parts.query}" if parts.query else "")
            index.add(path_with_search, local_path)

        for variant, local_path in list(index._variants.items()):
            if "&" in variant and "&amp;" not in variant:
                index.add(variant.replace("&", "&amp;"), local_path, variant in index._exact)
        return index


def apply_variants(html: str, index: UrlVariantIndex) -> str:
    for variant, local_path in index.ordered():
        for form in VARIANT_FORMS:
            html = html.replace(form.format(variant), form.format(local_path))
    return html


def is_relative_reference(value: str) -> bool:
    """Scheme-less, not root- or protocol-relative, not a fragment or query."""
    value = value.strip()
    return bool(value) and not SCHEME_PATTERN.match(value) and value[0] not in "/#?"


class ReferenceRewriter:
    """Rewrites one captured page against one completed asset catalog."""

    def __init__(self, page: CapturedPage, catalog: AssetCatalog) -> None:
        self.page = page
        self.catalog = catalog
        self.index = UrlVariantIndex.build(catalog, page.final_url)
        self._local_paths = self.index.local_paths()

    def lookup(self, raw: str) -> Optional[str]:
        """Local path for a reference as written in the HTML, if downloaded."""
        value = html_lib.unescape(raw.strip())
        if not value or value in self._local_paths:
            return None
        absolute = resolve_url(self.page.final_url, value)
        local_path = self.catalog.local_path_for(absolute)
        if local_path:
            return local_path
        real = extract_proxy_image_url(absolute)
        if real:
            return self.catalog.local_path_for(resolve_url(self.page.final_url, real))
        return None

    def _lookup_relative(self, raw: str) -> Optional[str]:
        return self.lookup(raw) if is_relative_reference(html_lib.unescape(raw)) else None

    def rewrite_attributes(self, html: str) -> str:
        def _swap(match) -> str:
            local_path = self._lookup_relative(match.group("value"))
            if not local_path:
                return match.group(0)
            return f"{match.group('prefix')}{match.group('q')}{local_path}{match.group('q')}"

        return ATTR_PATTERN.sub(_swap, html)

    def rewrite_css_references(self, html: str) -> str:
        def _swap(match) -> str:
            local_path = self._lookup_relative(match.group(2))
            if not local_path:
                return match.group(0)
            start = match.start(2) - match.start(0)
            end = match.end(2) - match.start(0)
            whole = match.group(0)
            return whole[:start] + local_path + whole[end:]

        return HTML_CSS_URL_PATTERN.sub(_swap, html)

    def _is_proxy_candidate(self, raw: str) -> bool:
        absolute = resolve_url(self.page.final_url, html_lib.unescape(raw))
        return (
            self.catalog.real_url_for(absolute) is not None
            or extract_proxy_image_url(absolute) is not None
        )

    def rewrite_srcset_value(self, value: str) -> str:
        """Rewrite one srcset list.

        Lists built from proxy URLs collapse to the single downloaded image;
        others are rewritten entry by entry, keeping descriptors and commas.
        """
        parts = value.split(",")
        entries = [SRCSET_ENTRY_PATTERN.match(part) for part in parts]

        for entry in entries:
            if entry and self._is_proxy_candidate(entry.group(2)):
                local_path = self.lookup(entry.group(2))
                if local_path:
                    return local_path

        rebuilt: List[str] = []
        for part, entry in zip(parts, entries):
            local_path = self.lookup(entry.group(2)) if entry else None
            if local_path:
                part = entry.group(1) + local_path + entry.group(3)
            rebuilt.append(part)
        return ",".join(rebuilt)

    def rewrite_srcsets(self, html: str) -> str:
        def _swap(match) -> str:
            value = match.group("value")
            updated = self.rewrite_srcset_value(value)
            if updated == value:
                return match.group(0)
            return f"{match.group('prefix')}{match.group('q')}{updated}{match.group('q')}"

        return SRCSET_PATTERN.sub(_swap, html)

    def rewrite(self) -> str:
        html = apply_variants(self.page.html, self.index)
        html = self.rewrite_attributes(html)
        html = self.rewrite_css_references(html)
        html = self.rewrite_srcsets(html)
        logger.info(
            "Rewrote references for %d assets (%d URL variants)",
            len(self.catalog.downloaded()),
            len(self.index),
        )
        return html


def rewrite_html(page: CapturedPage, catalog: AssetCatalog) -> str:
    """Return the page HTML with downloaded asset references made local."""
    return ReferenceRewriter(page, catalog).rewrite()
