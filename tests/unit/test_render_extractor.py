"""Unit tests for the render extractor, using a small in-memory Playwright fake."""

from __future__ import annotations

import asyncio
import random

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from imgharvest.browser.identity import IdentityProvider
from imgharvest.browser.interaction import InteractionSimulator
from imgharvest.browser.session import BROWSER_START_FAILED, CHROMIUM_ARGS
from imgharvest.extractors.page_scripts import (
    EXTRACT_IMAGES_JS,
    SCROLL_HEIGHT_JS,
    SCROLL_TO_BOTTOM_JS,
    SCROLL_TO_TOP_JS,
)
from imgharvest.extractors.render import (
    BROWSER_CRASHED,
    MAX_SCROLL_ITERATIONS,
    PAGE_LOAD_TIMEOUT,
    RenderExtractor,
    classify_render_failure,
)
from imgharvest.middleware.error_handler import RenderLifecycleError
from imgharvest.models.schemas import ImageSource
from imgharvest.proxy.manager import ProxyManager


# ---------------------------------------------------------------------------
# Playwright fake
# ---------------------------------------------------------------------------


class FakeLocator:
    def __init__(self, visible: bool) -> None:
        self.visible = visible
        self.clicked = False

    @property
    def first(self) -> "FakeLocator":
        return self

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        if not self.visible:
            raise PlaywrightTimeoutError(f"Locator.wait_for: Timeout {timeout}ms exceeded.")

    async def click(self, timeout: float | None = None) -> None:
        self.clicked = True


class FakeFrame:
    def __init__(self, has_consent_button: bool = False) -> None:
        self.locator = FakeLocator(has_consent_button)
        self.role_queries: list[tuple[str, object]] = []

    def get_by_role(self, role: str, name: object = None) -> FakeLocator:
        self.role_queries.append((role, name))
        return self.locator


class FakeMouse:
    async def wheel(self, dx: int, dy: int) -> None:
        pass

    async def move(self, x: int, y: int, steps: int | None = None) -> None:
        pass


class FakePage:
    def __init__(self, payload: dict, *, final_url: str, heights: list[int] | None = None) -> None:
        self.payload = payload
        self.url = "about:blank"
        self._final_url = final_url
        self._heights = list(heights or [1000])
        self.mouse = FakeMouse()
        self.frames = [FakeFrame()]
        self.listeners: dict[str, list] = {}
        self.init_scripts: list[str] = []
        self.routes: list[str] = []
        self.goto_calls: list[tuple[str, dict]] = []
        self.evaluated: list[str] = []
        self.extract_args: dict | None = None
        self.goto_error: BaseException | None = None
        self.goto_blocker: asyncio.Event | None = None
        self.evaluate_error: BaseException | None = None

    def on(self, event: str, callback) -> None:
        self.listeners.setdefault(event, []).append(callback)

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def route(self, pattern: str, handler) -> None:
        self.routes.append(pattern)

    async def goto(self, url: str, **kwargs) -> None:
        self.goto_calls.append((url, kwargs))
        if self.goto_blocker is not None:
            await self.goto_blocker.wait()
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self._final_url

    async def wait_for_selector(self, selector: str, **kwargs) -> None:
        pass

    async def evaluate(self, script: str, arg=None):
        self.evaluated.append(script)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        if script == SCROLL_HEIGHT_JS:
            return self._heights.pop(0) if len(self._heights) > 1 else self._heights[0]
        if script in (SCROLL_TO_BOTTOM_JS, SCROLL_TO_TOP_JS):
            return None
        if script == EXTRACT_IMAGES_JS:
            self.extract_args = arg
            return self.payload
        raise AssertionError(f"unexpected script: {script[:40]}")


class FakeContext:
    def __init__(self, page: FakePage, close_error: BaseException | None = None) -> None:
        self.page = page
        self.closed = False
        self.close_error = close_error

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeBrowser:
    def __init__(self, context: FakeContext) -> None:
        self.context = context
        self.context_kwargs: dict | None = None
        self.closed = False

    async def new_context(self, **kwargs) -> FakeContext:
        self.context_kwargs = kwargs
        return self.context

    async def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, browser: FakeBrowser, launch_error: BaseException | None = None) -> None:
        self.browser = browser
        self.launch_error = launch_error
        self.launch_kwargs: dict | None = None

    async def launch(self, **kwargs) -> FakeBrowser:
        self.launch_kwargs = kwargs
        if self.launch_error is not None:
            raise self.launch_error
        return self.browser


class FakePlaywright:
    def __init__(self, chromium: FakeChromium) -> None:
        self.chromium = chromium
        self.stopped = False

    async def __aenter__(self) -> "FakePlaywright":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stopped = True


class Harness:
    """Wires one fake page into a RenderExtractor."""

    def __init__(
        self,
        payload: dict | None = None,
        *,
        final_url: str = "https://example.com/gallery/",
        proxy_pool: str = "",
        launch_error: BaseException | None = None,
        context_close_error: BaseException | None = None,
        human_interaction: bool = False,
        rotate_on_error: bool = True,
        enricher=None,
    ) -> None:
        self.page = FakePage(payload or {"images": [], "svgs": [], "head": "<head></head>"}, final_url=final_url)
        self.context = FakeContext(self.page, context_close_error)
        self.browser = FakeBrowser(self.context)
        self.chromium = FakeChromium(self.browser, launch_error)
        self.playwright = FakePlaywright(self.chromium)
        self.sleeps: list[float] = []
        self.proxies = ProxyManager.from_pool_string(proxy_pool)
        self.extractor = RenderExtractor(
            IdentityProvider(),
            self.proxies,
            InteractionSimulator(rng=random.Random(1), sleep=self._sleep),
            enricher,
            human_interaction=human_interaction,
            rotate_on_error=rotate_on_error,
            playwright_factory=lambda: self.playwright,
            sleep=self._sleep,
        )

    async def _sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


SAMPLE_PAYLOAD = {
    "images": [
        {"url": "https://example.com/gallery/a.png", "source": "img", "alt": "A"},
        {"url": "https://example.com/gallery/a.png", "source": "background"},
        {"url": "/bg.jpg", "source": "background"},
        {"url": "https://example.com/favicon.ico", "source": "favicon", "alt": "Favicon", "width": 32, "height": 32},
        {"url": "data:image/png;base64,AAAA", "source": "img"},
    ],
    "svgs": [{"content": "<svg width=\"10\" height=\"12\"></svg>", "width": "10", "height": "12"}],
    "head": "<head><title>Gallery</title></head>",
}


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRenderExtractorSuccess:
    """Test RenderExtractor.extract() on successful renders."""

    @pytest.mark.asyncio
    async def test_collects_resolves_and_dedupes(self, offline_enricher):
        h = Harness(SAMPLE_PAYLOAD, enricher=offline_enricher)
        result = await h.extractor.extract("https://example.com/gallery/")

        urls = [r.url for r in result.images if not r.inline]
        assert urls == [
            "https://example.com/gallery/a.png",
            "https://example.com/bg.jpg",
            "https://example.com/favicon.ico",
        ]
        first = result.images[0]
        assert first.source == ImageSource.IMG
        assert first.alt == "A"
        favicon = result.images[2]
        assert (favicon.width, favicon.height) == (32, 32)
        inline = result.images[-1]
        assert inline.inline and (inline.width, inline.height) == (10, 12)
        assert result.head_content == "<head><title>Gallery</title></head>"

    @pytest.mark.asyncio
    async def test_browser_configured_from_identity(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        await h.extractor.extract("https://example.com/")

        assert h.chromium.launch_kwargs == {"headless": True, "args": CHROMIUM_ARGS}
        kwargs = h.browser.context_kwargs
        assert kwargs["user_agent"].startswith("Mozilla/5.0 (Windows NT 10.0")
        assert kwargs["viewport"] == {"width": 1366, "height": 768}
        assert kwargs["extra_http_headers"]["Upgrade-Insecure-Requests"] == "1"
        assert kwargs["extra_http_headers"]["Accept-Language"].startswith("en-US")
        assert len(h.page.init_scripts) == 1
        assert h.page.routes == ["**/*"]
        assert set(h.page.listeners) == {"console", "pageerror", "requestfailed", "response"}

    @pytest.mark.asyncio
    async def test_navigation_waits_for_network_idle(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        await h.extractor.extract("https://example.com/")
        url, kwargs = h.page.goto_calls[0]
        assert url == "https://example.com/"
        assert kwargs == {"wait_until": "networkidle", "timeout": 30000}

    @pytest.mark.asyncio
    async def test_lazy_flag_controls_attribute_list(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        await h.extractor.extract("https://example.com/", lazy=False)
        assert h.page.extract_args["lazyAttributes"] == []
        assert h.page.extract_args["iconRules"][-1]["alt"] == "Favicon"

    @pytest.mark.asyncio
    async def test_teardown_on_success(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        await h.extractor.extract("https://example.com/")
        assert h.context.closed
        assert h.browser.closed
        assert h.playwright.stopped

    @pytest.mark.asyncio
    async def test_proxy_attached_and_success_reported(self, offline_enricher):
        h = Harness(proxy_pool="http://user:pw@proxy1:8080", enricher=offline_enricher)
        await h.extractor.extract("https://example.com/")
        assert h.chromium.launch_kwargs["proxy"] == {
            "server": "http://proxy1:8080",
            "username": "user",
            "password": "pw",
        }
        assert h.proxies.get_stats()["proxies"][0]["success_count"] == 1

    @pytest.mark.asyncio
    async def test_human_mode_runs_jitters(self, offline_enricher):
        h = Harness(enricher=offline_enricher, human_interaction=True)
        await h.extractor.extract("https://example.com/")
        # pre-navigation think time comes first
        assert 0.2 <= h.sleeps[0] <= 0.6
        assert 0.6 <= h.sleeps[1] <= 1.5


class TestRenderExtractorFailures:
    """Test RenderExtractor.extract() failure handling."""

    @pytest.mark.asyncio
    async def test_navigation_timeout_classified(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        h.page.goto_error = PlaywrightTimeoutError("page.goto: Timeout 30000ms exceeded.")
        with pytest.raises(RenderLifecycleError) as exc_info:
            await h.extractor.extract("https://example.com/")
        assert exc_info.value.message == PAGE_LOAD_TIMEOUT
        assert h.context.closed and h.browser.closed

    @pytest.mark.asyncio
    async def test_launch_failure_classified(self, offline_enricher):
        h = Harness(
            enricher=offline_enricher,
            launch_error=Exception("browserType.launch: Executable doesn't exist at /ms-playwright/chromium"),
        )
        with pytest.raises(RenderLifecycleError) as exc_info:
            await h.extractor.extract("https://example.com/")
        assert exc_info.value.message == BROWSER_START_FAILED
        assert not h.browser.closed
        assert h.playwright.stopped

    @pytest.mark.asyncio
    async def test_crash_classified(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        h.page.evaluate_error = Exception("Target page, context or browser has been closed")
        with pytest.raises(RenderLifecycleError) as exc_info:
            await h.extractor.extract("https://example.com/")
        assert exc_info.value.message == BROWSER_CRASHED
        assert h.browser.closed

    @pytest.mark.asyncio
    async def test_unclassified_error_propagates_unchanged(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        boom = ValueError("unexpected payload")
        h.page.goto_error = boom
        with pytest.raises(ValueError) as exc_info:
            await h.extractor.extract("https://example.com/")
        assert exc_info.value is boom
        assert h.browser.closed

    @pytest.mark.asyncio
    async def test_close_error_does_not_mask_original(self, offline_enricher):
        h = Harness(enricher=offline_enricher, context_close_error=RuntimeError("already gone"))
        h.page.goto_error = PlaywrightTimeoutError("page.goto: Timeout 30000ms exceeded.")
        with pytest.raises(RenderLifecycleError):
            await h.extractor.extract("https://example.com/")
        assert h.browser.closed

    @pytest.mark.asyncio
    async def test_failure_reports_and_rotates_proxy(self, offline_enricher):
        h = Harness(proxy_pool="http://p1:1,http://p2:2", enricher=offline_enricher)
        h.page.goto_error = PlaywrightTimeoutError("page.goto: Timeout 30000ms exceeded.")
        with pytest.raises(RenderLifecycleError):
            await h.extractor.extract("https://example.com/")

        stats = h.proxies.get_stats()
        assert stats["proxies"][0]["healthy"] is False
        assert stats["proxies"][0]["cooldown_seconds"] == 120
        assert h.proxies.for_domain("example.com").id == "p2"

    @pytest.mark.asyncio
    async def test_failure_without_rotation_keeps_sticky_proxy(self, offline_enricher):
        h = Harness(proxy_pool="http://p1:1,http://p2:2", enricher=offline_enricher, rotate_on_error=False)
        h.page.goto_error = PlaywrightTimeoutError("page.goto: Timeout 30000ms exceeded.")
        with pytest.raises(RenderLifecycleError):
            await h.extractor.extract("https://example.com/")
        assert h.proxies.for_domain("example.com").id == "p1"

    @pytest.mark.asyncio
    async def test_cancellation_closes_browser(self, offline_enricher):
        h = Harness(enricher=offline_enricher)
        h.page.goto_blocker = asyncio.Event()
        task = asyncio.create_task(h.extractor.extract("https://example.com/"))
        while not h.page.goto_calls:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert h.context.closed
        assert h.browser.closed


class TestPageSteps:
    """Test the individual RenderExtractor page steps."""

    @pytest.mark.asyncio
    async def test_scroll_stops_when_height_stops_growing(self):
        h = Harness()
        h.page._heights = [1000, 2000, 3000, 3000]
        iterations = await h.extractor.load_lazy_content(h.page)
        assert iterations == 3
        assert h.page.evaluated[-1] == SCROLL_TO_TOP_JS
        assert h.sleeps[-1] == 2.0

    @pytest.mark.asyncio
    async def test_scroll_is_bounded(self):
        h = Harness()
        h.page._heights = list(range(1000, 100000, 1000))
        iterations = await h.extractor.load_lazy_content(h.page)
        assert iterations == MAX_SCROLL_ITERATIONS

    @pytest.mark.asyncio
    async def test_consent_clicked_in_child_frame(self):
        h = Harness()
        h.page.frames = [FakeFrame(), FakeFrame(has_consent_button=True)]
        assert await h.extractor.dismiss_consent(h.page) is True
        assert h.page.frames[1].locator.clicked
        assert h.page.frames[0].role_queries[0][0] == "button"
        assert h.sleeps == [0.6]

    @pytest.mark.asyncio
    async def test_no_consent_button_is_not_an_error(self):
        h = Harness()
        assert await h.extractor.dismiss_consent(h.page) is False


class TestClassifyRenderFailure:
    """Test classify_render_failure()."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Target crashed", BROWSER_CRASHED),
            ("Protocol error (Page.navigate): Target closed.", BROWSER_CRASHED),
            ("Browser has been closed", BROWSER_CRASHED),
            ("page.goto: Timeout 30000ms exceeded.", PAGE_LOAD_TIMEOUT),
            ("Navigation timeout of 30000 ms exceeded", PAGE_LOAD_TIMEOUT),
            ("browserType.launch: Executable doesn't exist", BROWSER_START_FAILED),
            ("error while loading shared libraries: libnss3.so", BROWSER_START_FAILED),
        ],
    )
    def test_categories(self, message, expected):
        classified = classify_render_failure(Exception(message))
        assert isinstance(classified, RenderLifecycleError)
        assert classified.message == expected
        assert classified.details["reason"] == message

    def test_playwright_timeout_type(self):
        classified = classify_render_failure(PlaywrightTimeoutError("waiting failed"))
        assert classified.message == PAGE_LOAD_TIMEOUT

    def test_unknown_error_unchanged(self):
        exc = KeyError("images")
        assert classify_render_failure(exc) is exc

    def test_already_classified_unchanged(self):
        exc = RenderLifecycleError(BROWSER_CRASHED)
        assert classify_render_failure(exc) is exc
