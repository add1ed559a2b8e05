"""Render a page in headless Chromium and snapshot the hydrated DOM."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from playwright.async_api import (
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import CloneConfig
from .errors import NavigationFailure
from .events import EventSink
from .models import CapturedPage
from .utils import truncate

logger = logging.getLogger("page_cloner")

SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
SCROLL_STEP_JS = "() => window.scrollBy(0, window.innerHeight)"
SCROLL_TOP_JS = "() => window.scrollTo(0, 0)"


async def auto_scroll(page: Page, config: CloneConfig, sink: EventSink) -> int:
    """Scroll one viewport at a time until the page height stops growing.

    Returns the number of scroll steps taken, never more than
    ``config.max_scroll_iterations``. Pages whose height oscillates can stop
    early; the iteration cap is what bounds infinite feeds.
    """
    previous_height: Optional[int] = None
    current_height = await page.evaluate(SCROLL_HEIGHT_JS)
    iterations = 0
    delay_ms = int(config.scroll_step_delay * 1000)

    while previous_height != current_height and iterations < config.max_scroll_iterations:
        previous_height = current_height
        await page.evaluate(SCROLL_STEP_JS)
        await page.wait_for_timeout(delay_ms)
        current_height = await page.evaluate(SCROLL_HEIGHT_JS)
        iterations += 1
        if iterations % 5 == 0:
            sink.pipeline(f"Scrolling... (iteration {iterations}, height: {current_height}px)")

    await page.evaluate(SCROLL_TOP_JS)
    sink.pipeline(
        f"Scroll complete after {iterations} iterations (final height: {current_height}px)"
    )
    return iterations


def _attach_listeners(page: Page, sink: EventSink, content_types: Dict[str, str]) -> None:
    page.on("console", lambda msg: sink.console(f"[{msg.type}] {msg.text}"))
    page.on("pageerror", lambda err: sink.console(f"[error] {err}"))
    page.on(
        "request",
        lambda request: sink.network(
            f"[REQ] {request.resource_type}: {truncate(request.url, 100)}"
        ),
    )

    def on_response(response) -> None:
        content_type = response.headers.get("content-type", "")
        if content_type:
            content_types[response.url] = content_type
        sink.network(
            f"[RES] {response.status} {response.request.resource_type}: "
            f"{truncate(response.url, 80)}"
        )

    page.on("response", on_response)


async def render_page(
    playwright: Playwright,
    url: str,
    config: CloneConfig,
    sink: EventSink,
) -> CapturedPage:
    """Navigate to a URL, trigger lazy content and return the rendered HTML.

    The browser is closed before returning, whatever the outcome.
    """
    sink.step("launch")
    sink.pipeline("Launching Chromium browser...")
    launch_options = {"headless": config.headless, "args": list(config.browser_args)}
    executable = config.browser_executable()
    if executable:
        sink.pipeline(f"Found browser at: {executable}")
        launch_options["executable_path"] = str(executable)

    browser = await playwright.chromium.launch(**launch_options)
    try:
        context = await browser.new_context(
            viewport=dict(config.viewport),
            user_agent=config.user_agent,
        )
        page = await context.new_page()
        content_types: Dict[str, str] = {}
        _attach_listeners(page, sink, content_types)

        sink.step("navigate")
        sink.pipeline(f"Navigating to {url}...")
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=config.navigation_timeout * 1000,
            )
        except PlaywrightError as exc:
            raise NavigationFailure(f"Failed to load {url}: {exc}") from exc

        sink.pipeline("Waiting for initial hydration...")
        await page.wait_for_timeout(int(config.settle_delay * 1000))

        sink.step("scroll")
        sink.pipeline("Auto-scrolling to load lazy content...")
        await auto_scroll(page, config, sink)

        sink.pipeline("Waiting for network idle...")
        try:
            await page.wait_for_load_state(
                "networkidle", timeout=config.network_idle_timeout * 1000
            )
        except PlaywrightTimeoutError:
            logger.debug("Network idle wait expired for %s", url)
            sink.pipeline("Network idle timeout - proceeding anyway")
        await page.wait_for_timeout(int(config.trailing_delay * 1000))

        sink.step("snapshot")
        sink.pipeline("Capturing rendered HTML...")
        html = await page.content()
        final_url = page.url
    finally:
        await browser.close()
        sink.pipeline("Browser closed")

    if final_url != url:
        logger.info("Redirected %s -> %s", url, final_url)
    return CapturedPage(html=html, final_url=final_url, content_types=dict(content_types))


async def capture_page(url: str, config: CloneConfig, sink: EventSink) -> CapturedPage:
    """Start Playwright, render ``url`` and shut Playwright down again."""
    async with async_playwright() as playwright:
        return await render_page(playwright, url, config, sink)
