"""Render extraction: load the page in headless Chromium and read the live DOM.

Each attempt takes the next identity, the target domain's sticky proxy, and
a fresh browser session. After navigation the page is nudged into loading
deferred content (consent banners dismissed, readiness wait, scrolling to
the bottom until the document stops growing) and a single in-page script
collects every image reference. Raw URLs are then resolved against the final
page URL, deduplicated, and probed for metadata exactly like the static
path.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from urllib.parse import urlparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from imgharvest.browser.identity import IdentityProvider
from imgharvest.browser.interaction import InteractionSimulator
from imgharvest.browser.session import BROWSER_START_FAILED, open_render_session
from imgharvest.extractors.common import (
    LAZY_ATTRIBUTES,
    ImageCollector,
    icon_rules_payload,
    parse_dimension,
)
from imgharvest.extractors.metadata import MetadataEnricher
from imgharvest.extractors.page_scripts import (
    EXTRACT_IMAGES_JS,
    IMAGE_READY_SELECTOR,
    SCROLL_HEIGHT_JS,
    SCROLL_TO_BOTTOM_JS,
    SCROLL_TO_TOP_JS,
)
from imgharvest.middleware.error_handler import RenderLifecycleError
from imgharvest.models.schemas import ExtractionResult, ImageRecord, ImageSource
from imgharvest.proxy.manager import ProxyManager

if TYPE_CHECKING:
    from playwright.async_api import Page

    from imgharvest.proxy.types import ProxyEndpoint

logger = logging.getLogger(__name__)

BROWSER_CRASHED = "Browser crashed - likely out of memory"
PAGE_LOAD_TIMEOUT = "Page load timeout - site may be slow or blocking automation"

# Affirmative consent-button labels, matched case-insensitively against the whole label
CONSENT_PHRASES: tuple[str, ...] = (
    "accept all",
    "accept all cookies",
    "accept cookies",
    "accept",
    "allow all",
    "i agree",
    "agree",
    "got it",
    "ok",
)
_CONSENT_PATTERN = re.compile(
    r"^\s*(?:" + "|".join(re.escape(p) for p in CONSENT_PHRASES) + r")\s*$",
    re.IGNORECASE,
)

CONSENT_VISIBLE_TIMEOUT_MS = 300
CONSENT_CLICK_TIMEOUT_MS = 1000
CONSENT_SETTLE_SECONDS = 0.6
READINESS_TIMEOUT_MS = 5000
MAX_SCROLL_ITERATIONS = 12
SCROLL_SETTLE_SECONDS = 1.2
FINAL_SETTLE_SECONDS = 2.0

_CRASH_SIGNALS = re.compile(
    r"crash|target (?:page, context or browser has been )?closed|browser has been closed"
    r"|disconnected|connection closed|protocol error",
    re.IGNORECASE,
)
_LAUNCH_SIGNALS = re.compile(
    r"executable doesn't exist|browsertype\.launch|failed to launch"
    r"|error while loading shared libraries|missing dependencies",
    re.IGNORECASE,
)
_TIMEOUT_SIGNALS = re.compile(r"timeout \d+ms exceeded|navigation timeout", re.IGNORECASE)


def classify_render_failure(exc: BaseException) -> BaseException:
    """Map a browser failure onto a :class:`RenderLifecycleError` category.

    Errors that match no category come back unchanged.
    """
    if isinstance(exc, RenderLifecycleError):
        return exc

    text = str(exc)
    if _CRASH_SIGNALS.search(text):
        return RenderLifecycleError(BROWSER_CRASHED, reason=text)
    if _LAUNCH_SIGNALS.search(text):
        return RenderLifecycleError(BROWSER_START_FAILED, reason=text)
    if isinstance(exc, PlaywrightTimeoutError) or _TIMEOUT_SIGNALS.search(text):
        return RenderLifecycleError(PAGE_LOAD_TIMEOUT, reason=text)
    return exc


async def best_effort(step: Awaitable[Any], label: str) -> bool:
    """Await *step*; return ``False`` instead of raising if it fails."""
    try:
        await step
    except Exception as exc:
        logger.debug("Skipped %s: %s", label, exc)
        return False
    return True


class RenderExtractor:
    """Extracts images from a page rendered in headless Chromium."""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        proxy_manager: ProxyManager,
        simulator: InteractionSimulator,
        enricher: MetadataEnricher,
        *,
        human_interaction: bool = True,
        navigation_timeout_ms: int = 30000,
        rotate_on_error: bool = True,
        playwright_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._identities = identity_provider
        self._proxies = proxy_manager
        self._simulator = simulator
        self._enricher = enricher
        self._human_interaction = human_interaction
        self._navigation_timeout_ms = navigation_timeout_ms
        self._rotate_on_error = rotate_on_error
        self._playwright_factory = playwright_factory
        self._sleep = sleep

    async def extract(self, url: str, lazy: bool = True) -> ExtractionResult:
        """Render *url* and return its images and ``<head>`` markup.

        Raises :class:`RenderLifecycleError` for classified browser failures;
        anything unclassified propagates unchanged.
        """
        identity = self._identities.next()
        domain = urlparse(url).hostname or ""
        proxy = self._proxies.for_domain(domain)
        started = time.monotonic()

        logger.info(
            "Render extraction starting for %s",
            url,
            extra={
                "target_url": url,
                "method": "dynamic",
                "identity_id": identity.id,
                "proxy_id": proxy.id if proxy else None,
            },
        )

        try:
            async with open_render_session(
                identity,
                ProxyManager.playwright_proxy(proxy),
                target_url=url,
                playwright_factory=self._playwright_factory,
            ) as session:
                payload, page_url = await self._render(session.page, url, lazy)
        except Exception as exc:
            self._report_failure(proxy, domain, exc)
            classified = classify_render_failure(exc)
            if classified is exc:
                raise
            raise classified from exc

        if proxy is not None:
            self._proxies.report_success(proxy.id)

        collector = ImageCollector(page_url or url)
        for item in payload.get("images") or []:
            width, height = item.get("width"), item.get("height")
            size = (width, height) if isinstance(width, int) and isinstance(height, int) else None
            collector.add(
                item.get("url"),
                ImageSource(item.get("source") or ImageSource.IMG.value),
                alt=item.get("alt"),
                size=size,
            )
        for svg in payload.get("svgs") or []:
            collector.add_inline(
                ImageRecord.inline_svg(
                    svg.get("content") or "",
                    parse_dimension(svg.get("width")),
                    parse_dimension(svg.get("height")),
                )
            )

        images = await self._enricher.enrich(collector.images)
        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Render extraction found %d images on %s",
            len(images),
            url,
            extra={
                "target_url": url,
                "method": "dynamic",
                "identity_id": identity.id,
                "proxy_id": proxy.id if proxy else None,
                "image_count": len(images),
                "duration_ms": round(duration_ms),
            },
        )
        return ExtractionResult(images=images, head_content=payload.get("head") or "")

    # ------------------------------------------------------------------
    # Page steps
    # ------------------------------------------------------------------

    async def _render(self, page: "Page", url: str, lazy: bool) -> tuple[dict, str]:
        if self._human_interaction:
            await self._simulator.jitter_delay(200, 600)

        await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)

        if self._human_interaction:
            await self._simulator.jitter_delay(600, 1500)
            await self._simulator.mouse_wiggle(page, 800)

        await self.dismiss_consent(page)
        await best_effort(
            page.wait_for_selector(IMAGE_READY_SELECTOR, state="attached", timeout=READINESS_TIMEOUT_MS),
            "content readiness wait",
        )

        if self._human_interaction:
            await self._simulator.scroll(page)
        await self.load_lazy_content(page)

        payload = await page.evaluate(
            EXTRACT_IMAGES_JS,
            {
                "lazyAttributes": list(LAZY_ATTRIBUTES) if lazy else [],
                "iconRules": icon_rules_payload(),
            },
        )
        return payload or {}, page.url

    async def dismiss_consent(self, page: "Page") -> bool:
        """Click the first affirmative consent button in each frame.

        Returns ``True`` if any click landed. Failures are ignored.
        """
        clicked = False
        for frame in page.frames:
            button = frame.get_by_role("button", name=_CONSENT_PATTERN).first
            visible = await best_effort(
                button.wait_for(state="visible", timeout=CONSENT_VISIBLE_TIMEOUT_MS),
                "consent button lookup",
            )
            if visible and await best_effort(
                button.click(timeout=CONSENT_CLICK_TIMEOUT_MS), "consent click"
            ):
                clicked = True

        await self._sleep(CONSENT_SETTLE_SECONDS)
        return clicked

    async def load_lazy_content(self, page: "Page") -> int:
        """Scroll to the bottom until the document stops growing.

        Returns the number of scroll iterations performed.
        """
        previous = await page.evaluate(SCROLL_HEIGHT_JS)
        iterations = 0
        while iterations < MAX_SCROLL_ITERATIONS:
            await page.evaluate(SCROLL_TO_BOTTOM_JS)
            iterations += 1
            await self._sleep(SCROLL_SETTLE_SECONDS)
            height = await page.evaluate(SCROLL_HEIGHT_JS)
            if height <= previous:
                break
            previous = height

        await page.evaluate(SCROLL_TO_TOP_JS)
        await self._sleep(FINAL_SETTLE_SECONDS)
        return iterations

    # ------------------------------------------------------------------
    # Proxy outcome
    # ------------------------------------------------------------------

    def _report_failure(self, proxy: "ProxyEndpoint | None", domain: str, exc: BaseException) -> None:
        if proxy is None:
            return
        self._proxies.report_failure(proxy.id, str(exc))
        if self._rotate_on_error:
            self._proxies.rotate_for_domain(domain)
