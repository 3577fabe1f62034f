"""Per-attempt Playwright browser sessions.

Every render attempt launches its own headless Chromium, opens one context
shaped by an :class:`Identity`, and closes both on the way out, whatever the
exit path (success, error, or task cancellation). Nothing is pooled between
attempts, so a crashed or poisoned browser can never leak into the next
request.

Page events (console output, failed requests, error responses) are buffered
in a bounded :class:`PageEventLog` and drained once at teardown.
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from imgharvest.browser.identity import Identity
from imgharvest.browser.stealth import build_stealth_script
from imgharvest.logging_config import log_browser_console, log_network_failure
from imgharvest.middleware.error_handler import RenderLifecycleError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

logger = logging.getLogger(__name__)

# Chromium flags for containerized / memory-constrained headless operation
CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--no-first-run",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-blink-features=AutomationControlled",
    "--js-flags=--max-old-space-size=512",
]

# Entries kept per event kind; older entries are dropped first
EVENT_LOG_LIMIT = 200

# Resource types aborted before they reach the network
BLOCKED_RESOURCE_TYPES = frozenset({"font"})

BROWSER_START_FAILED = "Browser failed to start - missing dependencies"


def _default_playwright_factory() -> Any:
    from playwright.async_api import async_playwright

    return async_playwright()


# ---------------------------------------------------------------------------
# PageEventLog
# ---------------------------------------------------------------------------


class PageEventLog:
    """Bounded buffers of console messages and network failures for one page."""

    def __init__(self, limit: int = EVENT_LOG_LIMIT) -> None:
        self.console: deque[dict] = deque(maxlen=limit)
        self.failed_requests: deque[dict] = deque(maxlen=limit)

    def attach(self, page: "Page") -> None:
        """Register event callbacks on *page*."""
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)
        page.on("requestfailed", self._on_request_failed)
        page.on("response", self._on_response)

    def _on_console(self, message: Any) -> None:
        self.console.append({"type": message.type, "text": message.text})

    def _on_page_error(self, error: Any) -> None:
        self.console.append({"type": "pageerror", "text": str(error)})

    def _on_request_failed(self, request: Any) -> None:
        self.failed_requests.append({
            "url": request.url,
            "resource_type": request.resource_type,
            "failure": request.failure,
        })

    def _on_response(self, response: Any) -> None:
        if response.status >= 400:
            self.failed_requests.append({
                "url": response.url,
                "status": response.status,
                "status_text": response.status_text,
            })

    def flush(self, url: str) -> None:
        """Write buffered events to the log and clear the buffers."""
        log_browser_console(logger, url, list(self.console))
        log_network_failure(logger, url, list(self.failed_requests))
        self.console.clear()
        self.failed_requests.clear()


# ---------------------------------------------------------------------------
# RenderSession
# ---------------------------------------------------------------------------


@dataclass
class RenderSession:
    """Browser, context, and page of one render attempt."""

    browser: "Browser"
    context: "BrowserContext"
    page: "Page"
    identity: Identity
    events: PageEventLog = field(default_factory=PageEventLog)


async def _block_resources(route: Any) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


@asynccontextmanager
async def open_render_session(
    identity: Identity,
    proxy_settings: dict | None = None,
    *,
    target_url: str = "",
    playwright_factory: Callable[[], Any] | None = None,
) -> AsyncIterator[RenderSession]:
    """Launch Chromium and yield a prepared :class:`RenderSession`.

    The context is created from *identity* with matching language headers,
    the stealth init script is installed, and font requests are aborted.
    On exit the buffered page events are logged and the context and browser
    are closed; close errors are logged and never mask the original error.
    """
    factory = playwright_factory or _default_playwright_factory
    browser = None
    context = None
    events = PageEventLog()

    async with factory() as playwright:
        try:
            launch_kwargs: dict = {"headless": True, "args": CHROMIUM_ARGS}
            if proxy_settings:
                launch_kwargs["proxy"] = proxy_settings
            try:
                browser = await playwright.chromium.launch(**launch_kwargs)
            except Exception as exc:
                raise RenderLifecycleError(BROWSER_START_FAILED, reason=str(exc)) from exc

            context = await browser.new_context(
                **identity.context_options(),
                extra_http_headers={
                    "Accept-Language": f"{identity.locale},{identity.locale.split('-', 1)[0]};q=0.9",
                    "Upgrade-Insecure-Requests": "1",
                },
            )
            page = await context.new_page()
            events.attach(page)
            await page.add_init_script(build_stealth_script(identity))
            await page.route("**/*", _block_resources)

            logger.debug(
                "Render session opened",
                extra={"target_url": target_url, "identity_id": identity.id},
            )
            yield RenderSession(
                browser=browser,
                context=context,
                page=page,
                identity=identity,
                events=events,
            )
        finally:
            events.flush(target_url)
            if context is not None:
                try:
                    await context.close()
                except Exception:
                    logger.debug("Error closing browser context (may already be closed)", exc_info=True)
            if browser is not None:
                try:
                    await browser.close()
                except Exception:
                    logger.debug("Error closing browser (may already be closed)", exc_info=True)
