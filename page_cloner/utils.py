"""Utility helpers for URL normalization, resolution and path handling."""

from __future__ import annotations

import hashlib
import posixpath
import re
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from .errors import InvalidUrl

HOSTNAME_PATTERN = re.compile(r"[^a-zA-Z0-9.-]")
SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
ANY_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
CSS_URL_PATTERN = re.compile(r"""url\(\s*(['"]?)([^'")\s]+)\1\s*\)""", re.IGNORECASE)

MIME_EXTENSIONS = {
    "text/css": ".css",
    "text/javascript": ".js",
    "application/javascript": ".js",
    "application/x-javascript": ".js",
    "text/html": ".html",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "font/woff": ".woff",
    "font/woff2": ".woff2",
    "font/ttf": ".ttf",
    "font/otf": ".otf",
    "application/font-woff": ".woff",
    "application/font-woff2": ".woff2",
    "application/x-font-ttf": ".ttf",
    "application/x-font-woff": ".woff",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "application/json": ".json",
}

# Checked in order; ".ogg" lands in video like the content-type fallback would.
EXTENSION_BUCKETS = (
    ("css", {".css"}),
    ("js", {".js", ".mjs"}),
    ("images", {".png", ".jpg", ".jpeg", ".gif", ".webp", ".avif", ".svg", ".ico", ".bmp"}),
    ("fonts", {".woff", ".woff2", ".ttf", ".otf", ".eot"}),
    ("video", {".mp4", ".webm", ".ogg", ".avi"}),
    ("audio", {".mp3", ".wav", ".ogg", ".m4a"}),
)
CONTENT_TYPE_BUCKETS = (
    ("css", "css"),
    ("javascript", "js"),
    ("image", "images"),
    ("font", "fonts"),
    ("video", "video"),
    ("audio", "audio"),
)


def normalize_url(raw: str) -> str:
    """Validate user input and return an absolute http(s) URL.

    Whitespace is trimmed and ``https://`` is assumed when no scheme is given.
    Raises :class:`InvalidUrl` for anything that does not parse into an
    http/https URL with a host.
    """
    value = (raw or "").strip()
    if not value:
        raise InvalidUrl(f"Invalid URL: {raw!r}")
    if not SCHEME_PATTERN.match(value):
        if ANY_SCHEME_PATTERN.match(value):
            raise InvalidUrl(f"Unsupported URL scheme: {raw!r}")
        value = "https://" + value

    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as exc:
        raise InvalidUrl(f"Invalid URL: {raw!r}") from exc

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.hostname:
        raise InvalidUrl(f"Invalid URL: {raw!r}")
    if any(ch.isspace() for ch in parts.netloc):
        raise InvalidUrl(f"Invalid URL: {raw!r}")

    netloc = parts.hostname.lower()
    if port is not None:
        netloc = f"{netloc}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def hash_url(url: str) -> str:
    """Short deterministic digest of a URL, used as an asset filename stem."""
    return hashlib.md5(url.encode("utf-8")).hexdigest()[:12]


def safe_folder_name(url: str, timestamp_ms: Optional[int] = None) -> str:
    """Folder name built from the hostname and a millisecond timestamp."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    try:
        hostname = urlsplit(url).hostname or ""
    except ValueError:
        hostname = ""
    if not hostname:
        return f"unknown_{timestamp_ms}"
    return f"{HOSTNAME_PATTERN.sub('_', hostname)}_{timestamp_ms}"


def create_output_dir(root: Path, url: str) -> Path:
    """Create a fresh, uniquely named clone directory under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    base = safe_folder_name(url)
    candidate = root / base
    suffix = 1
    while True:
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            suffix += 1
            candidate = root / f"{base}-{suffix}"


def is_data_url(url: Optional[str]) -> bool:
    return isinstance(url, str) and url.strip().lower().startswith("data:")


def resolve_url(base: str, relative: str) -> str:
    """Resolve ``relative`` against ``base``; data URLs and blanks pass through."""
    if not relative or is_data_url(relative):
        return relative
    try:
        return urljoin(base, relative.strip())
    except ValueError:
        return relative


def parse_srcset(srcset: Optional[str]) -> List[str]:
    """Return the URL token of every ``srcset`` candidate, descriptors dropped."""
    if not srcset:
        return []
    urls: List[str] = []
    for part in srcset.split(","):
        tokens = part.strip().split()
        if tokens and not is_data_url(tokens[0]):
            urls.append(tokens[0])
    return urls


def extract_css_urls(css: str) -> List[str]:
    """Every ``url(...)`` target in a CSS text, quoted or not, minus data URLs."""
    return [
        match.group(2)
        for match in CSS_URL_PATTERN.finditer(css or "")
        if not is_data_url(match.group(2))
    ]


def get_extension(url: str, content_type: str = "") -> str:
    """File extension from the URL path, falling back to the content type."""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = ""
    ext = posixpath.splitext(path)[1].lower()
    if 1 < len(ext) < 10:
        return ext
    base_mime = (content_type or "").split(";")[0].strip().lower()
    return MIME_EXTENSIONS.get(base_mime, "")


def classify_asset(extension: str, content_type: str = "") -> str:
    """Pick the ``assets/<bucket>`` folder: extension first, content type second."""
    ext = (extension or "").lower()
    for bucket, extensions in EXTENSION_BUCKETS:
        if ext in extensions:
            return bucket
    lowered = (content_type or "").lower()
    for needle, bucket in CONTENT_TYPE_BUCKETS:
        if needle in lowered:
            return bucket
    return "other"


def truncate(value: str, limit: int = 80) -> str:
    return value if len(value) <= limit else value[:limit] + "..."
