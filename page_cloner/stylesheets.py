"""Follow ``url()`` references inside downloaded stylesheets."""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Set, Tuple

from .errors import CssProcessingFailure
from .fetch import AssetFetcher
from .models import CONTEXT_CSS, AssetCatalog, AssetRecord, AssetReference
from .utils import CSS_URL_PATTERN, extract_css_urls, is_data_url, resolve_url

logger = logging.getLogger("page_cloner")


def _read_css(path: Path, url: str) -> Tuple[str, str]:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise CssProcessingFailure(url, f"read failed: {exc}") from exc
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        # latin-1 maps every byte, so untouched text round-trips exactly.
        return data.decode("latin-1"), "latin-1"


def rewrite_css_urls(css: str, replacements: Dict[str, str]) -> str:
    """Swap the target of every ``url()`` whose token has a replacement."""
    if not replacements:
        return css

    def _swap(match) -> str:
        token = match.group(2)
        new = replacements.get(token)
        if new is None:
            return match.group(0)
        start = match.start(2) - match.start(0)
        end = match.end(2) - match.start(0)
        whole = match.group(0)
        return whole[:start] + new + whole[end:]

    return CSS_URL_PATTERN.sub(_swap, css)


async def process_stylesheet(
    record: AssetRecord,
    catalog: AssetCatalog,
    fetcher: AssetFetcher,
    output_dir: Path,
) -> List[AssetRecord]:
    """Download what one stylesheet references and point it at the local copies.

    URLs are resolved against the stylesheet's own URL. References that could
    not be downloaded are made absolute so they keep loading from the origin.
    Returns newly downloaded stylesheets, which need the same treatment.
    """
    if not record.local_path:
        return []
    path = output_dir / record.local_path
    css, encoding = _read_css(path, record.source_url)

    targets: Dict[str, str] = {}
    for token in extract_css_urls(css):
        if token in targets or is_data_url(token):
            continue
        absolute = resolve_url(record.source_url, token)
        if absolute.lower().startswith(("http://", "https://")):
            targets[token] = absolute

    new_records: List[AssetRecord] = []
    for token, absolute in targets.items():
        if absolute not in catalog:
            new_records.append(
                catalog.add(absolute, AssetReference(raw=token, url=absolute, context=CONTEXT_CSS))
            )
    if new_records:
        downloaded, failed = await fetcher.fetch_records(new_records)
        logger.debug(
            "Stylesheet %s: %d nested assets downloaded, %d failed",
            record.source_url,
            downloaded,
            failed,
        )

    css_dir = posixpath.dirname(record.local_path)
    replacements: Dict[str, str] = {}
    for token, absolute in targets.items():
        local_path = catalog.local_path_for(absolute)
        if local_path:
            replacements[token] = posixpath.relpath(local_path, css_dir)
        elif token != absolute:
            replacements[token] = absolute

    updated = rewrite_css_urls(css, replacements)
    if updated != css:
        try:
            path.write_bytes(updated.encode(encoding))
        except (OSError, UnicodeEncodeError) as exc:
            raise CssProcessingFailure(record.source_url, f"write failed: {exc}") from exc

    return [r for r in new_records if r.downloaded and r.is_stylesheet]


async def process_stylesheets(
    catalog: AssetCatalog,
    fetcher: AssetFetcher,
    output_dir: Path,
) -> int:
    """Post-process every downloaded stylesheet, including ones found inside CSS.

    Returns the number of stylesheets processed successfully. A failure only
    affects its own file, which is left as downloaded.
    """
    queue: Deque[AssetRecord] = deque(r for r in catalog.downloaded() if r.is_stylesheet)
    seen: Set[str] = set()
    processed = 0
    while queue:
        record = queue.popleft()
        if record.source_url in seen:
            continue
        seen.add(record.source_url)
        try:
            queue.extend(await process_stylesheet(record, catalog, fetcher, output_dir))
        except CssProcessingFailure as exc:
            logger.warning("Error processing CSS %s: %s", exc.url, exc.reason)
            continue
        processed += 1
    return processed
