"""Extraction orchestrator: sequences the static and render phases per mode.

- ``static``: static phase only.
- ``dynamic``: render phase only; a render failure falls back to one static
  attempt, flagged with a warning.
- ``auto``: static phase, then render phase. The rendered result wins only
  with strictly more images, or when the static phase failed.

Phases always run sequentially. Phase errors in ``static`` / ``auto`` modes
are recorded in the diagnostics rather than aborting the flow; the request
fails only when no phase produced a result.
"""

from __future__ import annotations

import logging
import time

from imgharvest.extractors.render import RenderExtractor
from imgharvest.extractors.static import StaticExtractor
from imgharvest.logging_config import log_scraping_error
from imgharvest.middleware.error_handler import ScrapeFailedError
from imgharvest.models.requests import ExtractionMode
from imgharvest.models.schemas import (
    ExtractionMethod,
    ExtractionResult,
    PhaseDiagnostics,
    ScrapeOutcome,
)

logger = logging.getLogger(__name__)

FALLBACK_WARNING = (
    "Dynamic rendering failed ({reason}); results come from static extraction "
    "and may be missing script-rendered images."
)


class _PhaseFailed(Exception):
    """A phase failed with nothing to fall back on inside the mode's own flow."""

    def __init__(self, method: ExtractionMethod, error: BaseException) -> None:
        self.method = method
        self.error = error
        super().__init__(str(error))


class ExtractionOrchestrator:
    """Runs one extraction request through the static and render extractors."""

    def __init__(self, static_extractor: StaticExtractor, render_extractor: RenderExtractor) -> None:
        self._static = static_extractor
        self._render = render_extractor

    async def scrape(
        self,
        url: str,
        *,
        lazy: bool = True,
        mode: ExtractionMode = ExtractionMode.AUTO,
    ) -> ScrapeOutcome:
        """Extract images from *url* using *mode*.

        Raises :class:`ScrapeFailedError` when every permitted phase failed.
        """
        started = time.monotonic()
        diagnostics = PhaseDiagnostics()

        if mode == ExtractionMode.DYNAMIC:
            try:
                outcome = await self._dynamic_only(url, lazy, diagnostics)
            except _PhaseFailed as failure:
                outcome = await self._fall_back_to_static(url, lazy, diagnostics, failure)
        else:
            outcome = await self._static_first(url, lazy, mode, diagnostics)

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Extraction resolved for %s via %s",
            url,
            outcome.method.value,
            extra={
                "target_url": url,
                "method": outcome.method.value,
                "fallback_used": outcome.fallback_used,
                "image_count": outcome.result.image_count,
                "duration_ms": round(duration_ms),
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Mode flows
    # ------------------------------------------------------------------

    async def _dynamic_only(
        self, url: str, lazy: bool, diagnostics: PhaseDiagnostics
    ) -> ScrapeOutcome:
        diagnostics.dynamic_attempted = True
        try:
            result = await self._render.extract(url, lazy)
        except Exception as exc:
            diagnostics.dynamic_error = str(exc)
            log_scraping_error(logger, url, ExtractionMethod.DYNAMIC.value, exc)
            raise _PhaseFailed(ExtractionMethod.DYNAMIC, exc) from exc

        diagnostics.dynamic_success = True
        return ScrapeOutcome(
            method=ExtractionMethod.DYNAMIC,
            fallback_used=False,
            result=result,
            diagnostics=diagnostics,
        )

    async def _static_first(
        self,
        url: str,
        lazy: bool,
        mode: ExtractionMode,
        diagnostics: PhaseDiagnostics,
    ) -> ScrapeOutcome:
        static_result, last_error = await self._attempt_static(url, lazy, diagnostics)

        if mode != ExtractionMode.AUTO:
            if static_result is None:
                raise self._failure(ExtractionMethod.STATIC, False, last_error, diagnostics)
            return ScrapeOutcome(
                method=ExtractionMethod.STATIC,
                fallback_used=False,
                result=static_result,
                diagnostics=diagnostics,
            )

        diagnostics.dynamic_attempted = True
        dynamic_result: ExtractionResult | None = None
        try:
            dynamic_result = await self._render.extract(url, lazy)
            diagnostics.dynamic_success = True
        except Exception as exc:
            diagnostics.dynamic_error = str(exc)
            last_error = exc
            log_scraping_error(logger, url, ExtractionMethod.DYNAMIC.value, exc)

        if dynamic_result is not None and (
            static_result is None or dynamic_result.image_count > static_result.image_count
        ):
            return ScrapeOutcome(
                method=ExtractionMethod.DYNAMIC,
                fallback_used=True,
                result=dynamic_result,
                diagnostics=diagnostics,
            )
        if static_result is not None:
            return ScrapeOutcome(
                method=ExtractionMethod.STATIC,
                fallback_used=True,
                result=static_result,
                diagnostics=diagnostics,
            )

        raise self._failure(ExtractionMethod.DYNAMIC, True, last_error, diagnostics)

    async def _fall_back_to_static(
        self,
        url: str,
        lazy: bool,
        diagnostics: PhaseDiagnostics,
        failure: _PhaseFailed,
    ) -> ScrapeOutcome:
        logger.warning(
            "Dynamic extraction failed for %s, falling back to static",
            url,
            extra={"target_url": url, "method": "static", "error_reason": str(failure.error)},
        )
        result, error = await self._attempt_static(url, lazy, diagnostics)
        if result is None:
            raise self._failure(ExtractionMethod.STATIC, True, error, diagnostics)

        return ScrapeOutcome(
            method=ExtractionMethod.STATIC,
            fallback_used=True,
            result=result,
            diagnostics=diagnostics,
            warning=FALLBACK_WARNING.format(reason=failure.error),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _attempt_static(
        self, url: str, lazy: bool, diagnostics: PhaseDiagnostics
    ) -> tuple[ExtractionResult | None, BaseException | None]:
        diagnostics.static_attempted = True
        try:
            result = await self._static.extract(url, lazy)
        except Exception as exc:
            diagnostics.static_error = str(exc)
            log_scraping_error(logger, url, ExtractionMethod.STATIC.value, exc)
            return None, exc

        diagnostics.static_success = True
        return result, None

    @staticmethod
    def _failure(
        method: ExtractionMethod,
        fallback_used: bool,
        error: BaseException | None,
        diagnostics: PhaseDiagnostics,
    ) -> ScrapeFailedError:
        return ScrapeFailedError(
            method=method.value,
            fallbackUsed=fallback_used,
            errorMessage=str(error) if error is not None else None,
            **diagnostics.to_dict(),
        )
