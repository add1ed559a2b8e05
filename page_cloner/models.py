"""Data models used throughout the cloning pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional

# Syntactic contexts an asset reference can be discovered in.
CONTEXT_SRC = "src"
CONTEXT_SRCSET = "srcset"
CONTEXT_HREF = "href"
CONTEXT_STYLE = "style"
CONTEXT_CSS = "css"
CONTEXT_PROXY = "proxy"


@dataclass(frozen=True)
class CapturedPage:
    """Snapshot of the rendered page taken once the browser settled."""

    html: str
    final_url: str
    content_types: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AssetReference:
    """Raw reference text discovered in the page, with where it was found."""

    raw: str
    url: str
    context: str


@dataclass(frozen=True)
class ProxyMapping:
    """An image-optimization URL and the real source URL it wraps."""

    proxy_url: str
    real_url: str


@dataclass
class AssetRecord:
    """One distinct resource URL, and its local copy once downloaded."""

    source_url: str
    local_path: Optional[str] = None
    content_type: str = ""
    bucket: str = "other"
    byte_size: int = 0
    references: List[AssetReference] = field(default_factory=list)

    @property
    def downloaded(self) -> bool:
        return self.local_path is not None

    @property
    def is_stylesheet(self) -> bool:
        return self.bucket == "css" or "css" in self.content_type.lower()


class AssetCatalog:
    """Every asset URL of one clone run, plus the proxy mappings found.

    Built by the extractor, populated by the fetcher (and the stylesheet
    processor for URLs found inside CSS), then read by the rewriter.
    """

    def __init__(self) -> None:
        self._records: Dict[str, AssetRecord] = {}
        self._proxies: Dict[str, str] = {}

    def __contains__(self, url: object) -> bool:
        return url in self._records

    def __iter__(self) -> Iterator[AssetRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def add(self, url: str, reference: Optional[AssetReference] = None) -> AssetRecord:
        record = self._records.get(url)
        if record is None:
            record = AssetRecord(source_url=url)
            self._records[url] = record
        if reference is not None and reference not in record.references:
            record.references.append(reference)
        return record

    def get(self, url: str) -> Optional[AssetRecord]:
        return self._records.get(url)

    def add_proxy(self, proxy_url: str, real_url: str) -> None:
        self._proxies[proxy_url] = real_url

    @property
    def proxies(self) -> List[ProxyMapping]:
        return [ProxyMapping(proxy, real) for proxy, real in self._proxies.items()]

    def real_url_for(self, proxy_url: str) -> Optional[str]:
        return self._proxies.get(proxy_url)

    def local_path_for(self, url: str) -> Optional[str]:
        """Local path for ``url`` directly, or through a proxy mapping."""
        record = self._records.get(url)
        if record is None and url in self._proxies:
            record = self._records.get(self._proxies[url])
        return record.local_path if record else None

    def downloaded(self) -> List[AssetRecord]:
        return [record for record in self._records.values() if record.downloaded]

    def failed(self) -> List[AssetRecord]:
        return [record for record in self._records.values() if not record.downloaded]


@dataclass
class CloneResult:
    """Summary handed back to callers once the bundle is on disk."""

    success: bool
    folder_name: str
    output_path: str
    assets_downloaded: int
    assets_failed: int
    html_path: str = "index.html"
    static_html_path: str = "index-static.html"

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)
