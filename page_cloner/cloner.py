"""High-level orchestration: render, collect assets, rewrite, save."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

from .config import CloneConfig
from .errors import CloneTimeout
from .events import EventSink
from .extract import extract_assets
from .fetch import AssetFetcher
from .models import CloneResult
from .render import capture_page
from .rewrite import rewrite_html
from .static import build_static_html
from .stylesheets import process_stylesheets
from .utils import create_output_dir, normalize_url

logger = logging.getLogger("page_cloner")

INDEX_FILENAME = "index.html"
STATIC_FILENAME = "index-static.html"


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` next to ``path`` first, then move it into place."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_static_variant(output_dir: Path) -> Path:
    """(Re)build ``index-static.html`` from a clone's ``index.html``."""
    html = (output_dir / INDEX_FILENAME).read_text(encoding="utf-8")
    destination = output_dir / STATIC_FILENAME
    write_text_atomic(destination, build_static_html(html))
    return destination


async def _run_pipeline(
    url: str,
    config: CloneConfig,
    sink: EventSink,
    output_dir: Path,
) -> CloneResult:
    captured = await capture_page(url, config, sink)

    sink.step("download")
    sink.pipeline("Parsing HTML and collecting asset URLs...")
    catalog = await asyncio.to_thread(extract_assets, captured)
    sink.pipeline(f"Found {len(catalog)} assets to download")

    fetcher = AssetFetcher(output_dir, config)
    try:
        downloaded, failed = await fetcher.fetch_catalog(catalog, captured.content_types)
        sink.pipeline(f"Downloaded {downloaded} assets, {failed} failed")

        sink.pipeline("Processing CSS files for additional assets...")
        processed = await process_stylesheets(catalog, fetcher, output_dir)
        sink.pipeline(f"Processed {processed} stylesheets")
    finally:
        fetcher.close()

    sink.step("rewrite")
    sink.pipeline("Rewriting asset references in HTML...")
    html = await asyncio.to_thread(rewrite_html, captured, catalog)

    sink.step("save")
    sink.pipeline("Saving cloned page...")
    write_text_atomic(output_dir / INDEX_FILENAME, html)
    write_text_atomic(output_dir / STATIC_FILENAME, build_static_html(html))
    sink.pipeline(f"Clone saved to: {output_dir}")

    return CloneResult(
        success=True,
        folder_name=output_dir.name,
        output_path=str(output_dir),
        assets_downloaded=len(catalog.downloaded()),
        assets_failed=len(catalog.failed()),
        html_path=INDEX_FILENAME,
        static_html_path=STATIC_FILENAME,
    )


async def clone_page(
    url: str,
    config: Optional[CloneConfig] = None,
    sink: Optional[EventSink] = None,
) -> CloneResult:
    """Clone one page into a new folder under ``config.output_root``.

    Any failure (or cancellation) emits the terminal ``error`` event, removes
    the partially written folder and re-raises.
    """
    config = config or CloneConfig()
    sink = sink or EventSink()
    output_dir: Optional[Path] = None
    start = time.perf_counter()

    try:
        sink.pipeline("Validating URL...")
        normalized = normalize_url(url)
        sink.pipeline(f"Normalized URL: {normalized}")

        output_dir = create_output_dir(Path(config.output_root), normalized)
        sink.pipeline(f"Output folder: {output_dir.name}")

        pipeline = _run_pipeline(normalized, config, sink, output_dir)
        if config.pipeline_timeout:
            try:
                result = await asyncio.wait_for(pipeline, timeout=config.pipeline_timeout)
            except asyncio.TimeoutError as exc:
                raise CloneTimeout(
                    f"Clone did not finish within {config.pipeline_timeout} seconds"
                ) from exc
        else:
            result = await pipeline
    except asyncio.CancelledError:
        sink.fail("cancelled")
        _discard(output_dir)
        raise
    except Exception as exc:
        sink.pipeline(f"Error: {exc}")
        sink.fail(str(exc) or exc.__class__.__name__)
        _discard(output_dir)
        raise

    sink.step("done")
    logger.info(
        "Cloned %s in %.2fs (%d assets, %d failed)",
        normalized,
        time.perf_counter() - start,
        result.assets_downloaded,
        result.assets_failed,
    )
    return result


def _discard(output_dir: Optional[Path]) -> None:
    if output_dir is not None and output_dir.exists():
        shutil.rmtree(output_dir, ignore_errors=True)
        logger.debug("Removed incomplete clone folder %s", output_dir)
