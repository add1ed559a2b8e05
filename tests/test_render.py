from __future__ import annotations

import itertools

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from page_cloner.errors import NavigationFailure
from page_cloner.events import EventSink
from page_cloner.render import SCROLL_HEIGHT_JS, SCROLL_STEP_JS, SCROLL_TOP_JS, auto_scroll, render_page


class FakeRequest:
    def __init__(self, url: str, resource_type: str) -> None:
        self.url = url
        self.resource_type = resource_type


class FakeResponse:
    def __init__(self, url: str, content_type: str) -> None:
        self.url = url
        self.status = 200
        self.headers = {"content-type": content_type}
        self.request = FakeRequest(url, "stylesheet")


class FakePage:
    """Answers the handful of calls the render driver makes."""

    def __init__(self, heights, goto_error=None, idle_error=None, final_url="https://shop.test/") -> None:
        self._heights = iter(heights)
        self._height = 0
        self.goto_error = goto_error
        self.idle_error = idle_error
        self.url = final_url
        self.handlers = {}
        self.scroll_steps = 0
        self.scrolled_to_top = False
        self.waits = []

    def on(self, event, handler) -> None:
        self.handlers[event] = handler

    async def evaluate(self, script):
        if script == SCROLL_HEIGHT_JS:
            self._height = next(self._heights, self._height)
            return self._height
        if script == SCROLL_STEP_JS:
            self.scroll_steps += 1
        elif script == SCROLL_TOP_JS:
            self.scrolled_to_top = True
        return None

    async def wait_for_timeout(self, ms) -> None:
        self.waits.append(ms)

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_args = (url, wait_until, timeout)
        if self.goto_error:
            raise self.goto_error
        self.handlers["response"](FakeResponse("https://shop.test/site.css", "text/css"))

    async def wait_for_load_state(self, state, timeout=None) -> None:
        if self.idle_error:
            raise self.idle_error

    async def content(self) -> str:
        return "<html><body>rendered</body></html>"


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page

    async def new_page(self) -> FakePage:
        return self.page


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False
        self.context_options = None

    async def new_context(self, **options) -> FakeContext:
        self.context_options = options
        return FakeContext(self.page)

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self, page: FakePage) -> None:
        self.browser = FakeBrowser(page)
        self.launch_options = None
        self.chromium = self

    async def launch(self, **options) -> FakeBrowser:
        self.launch_options = options
        return self.browser


def _steps(sink: EventSink) -> list[str]:
    return [event.message for event in sink.events if event.kind == "step"]


@pytest.mark.asyncio()
async def test_scroll_stops_once_height_stabilizes(clone_config):
    page = FakePage([1000, 2000, 3000, 3000])
    iterations = await auto_scroll(page, clone_config, EventSink())

    assert iterations == 3
    assert page.scroll_steps == 3
    assert page.scrolled_to_top


@pytest.mark.asyncio()
async def test_scroll_of_static_page_takes_one_step(clone_config):
    page = FakePage([800])
    assert await auto_scroll(page, clone_config, EventSink()) == 1


@pytest.mark.asyncio()
async def test_infinite_feed_hits_iteration_cap(clone_config):
    page = FakePage(itertools.count(1000, 500))
    sink = EventSink()

    iterations = await auto_scroll(page, clone_config, sink)

    assert iterations == clone_config.max_scroll_iterations == 30
    assert page.scrolled_to_top
    progress = [e.message for e in sink.events if e.message.startswith("Scrolling...")]
    assert len(progress) == 6


@pytest.mark.asyncio()
async def test_render_page_captures_final_url_and_content_types(clone_config):
    page = FakePage(
        [1000, 1000],
        idle_error=PlaywrightTimeoutError("Timeout 100ms exceeded"),
        final_url="https://www.shop.test/home",
    )
    playwright = FakePlaywright(page)
    sink = EventSink()

    captured = await render_page(playwright, "https://shop.test/", clone_config, sink)

    assert captured.final_url == "https://www.shop.test/home"
    assert captured.html == "<html><body>rendered</body></html>"
    assert captured.content_types == {"https://shop.test/site.css": "text/css"}
    assert _steps(sink) == ["launch", "navigate", "scroll", "snapshot"]
    assert "Network idle timeout - proceeding anyway" in [e.message for e in sink.events]
    assert playwright.browser.closed
    assert playwright.launch_options["headless"] is True
    assert playwright.browser.context_options["user_agent"] == clone_config.user_agent
    assert page.goto_args == ("https://shop.test/", "domcontentloaded", clone_config.navigation_timeout * 1000)


@pytest.mark.asyncio()
async def test_navigation_failure_still_closes_browser(clone_config):
    page = FakePage([1000], goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    playwright = FakePlaywright(page)
    sink = EventSink()

    with pytest.raises(NavigationFailure) as excinfo:
        await render_page(playwright, "https://nope.invalid/", clone_config, sink)

    assert "ERR_NAME_NOT_RESOLVED" in str(excinfo.value)
    assert playwright.browser.closed
    assert _steps(sink) == ["launch", "navigate"]
    assert page.scroll_steps == 0


@pytest.mark.asyncio()
async def test_unexpected_error_still_closes_browser(clone_config):
    class ExplodingPage(FakePage):
        async def content(self) -> str:
            raise RuntimeError("renderer crashed")

    page = ExplodingPage([1000])
    playwright = FakePlaywright(page)

    with pytest.raises(RuntimeError):
        await render_page(playwright, "https://shop.test/", clone_config, EventSink())

    assert playwright.browser.closed
