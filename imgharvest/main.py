"""FastAPI application entry point with lifespan management.

Startup: configure logging, load identities, parse the proxy pool, build the
extractors and orchestrator, mount routers.
Shutdown: nothing pooled outlives a request, so only a log line.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from imgharvest.browser.identity import IdentityProvider, load_identities
from imgharvest.browser.interaction import InteractionSimulator
from imgharvest.config.settings import ScraperSettings
from imgharvest.extractors.metadata import MetadataEnricher
from imgharvest.extractors.render import RenderExtractor
from imgharvest.extractors.static import StaticExtractor
from imgharvest.logging_config import configure_logging
from imgharvest.middleware.error_handler import register_error_handlers
from imgharvest.middleware.request_id import RequestIdMiddleware
from imgharvest.proxy.manager import ProxyManager
from imgharvest.routers.health import create_health_router
from imgharvest.routers.scrape import create_scrape_router
from imgharvest.services.downloader import ImageDownloader
from imgharvest.services.orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)


def build_services(settings: ScraperSettings) -> dict:
    """Construct the process-wide service objects from *settings*."""
    identity_provider = IdentityProvider(load_identities(settings.identities_path))
    proxy_manager = ProxyManager.from_pool_string(
        settings.proxy_pool,
        sticky_ttl_seconds=settings.proxy_sticky_ttl_seconds,
        default_cooldown_seconds=settings.proxy_default_cooldown_seconds,
        max_cooldown_seconds=settings.proxy_max_cooldown_seconds,
    )

    enricher = MetadataEnricher(
        head_timeout_seconds=settings.head_timeout_seconds,
        probe_timeout_seconds=settings.probe_timeout_seconds,
        max_bytes=settings.max_response_bytes,
        concurrency=settings.probe_concurrency,
    )
    static_extractor = StaticExtractor(
        enricher,
        timeout_seconds=settings.static_timeout_seconds,
        max_bytes=settings.max_response_bytes,
    )
    render_extractor = RenderExtractor(
        identity_provider,
        proxy_manager,
        InteractionSimulator(),
        enricher,
        human_interaction=settings.human_interaction,
        navigation_timeout_ms=settings.navigation_timeout_ms,
        rotate_on_error=settings.proxy_rotate_on == "error",
    )

    return {
        "identity_provider": identity_provider,
        "proxy_manager": proxy_manager,
        "orchestrator": ExtractionOrchestrator(static_extractor, render_extractor),
        "downloader": ImageDownloader(
            timeout_seconds=settings.static_timeout_seconds,
            max_bytes=settings.max_response_bytes,
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings: ScraperSettings = app.state.settings

    configure_logging(
        settings.log_level,
        log_dir=settings.log_dir,
        environment=settings.environment,
    )
    logger.info("Starting image harvester on port %d", settings.port)

    services = build_services(settings)

    app.include_router(
        create_health_router(
            proxy_manager=services["proxy_manager"],
            identity_provider=services["identity_provider"],
        )
    )
    app.include_router(
        create_scrape_router(
            orchestrator=services["orchestrator"],
            downloader=services["downloader"],
            settings=settings,
        )
    )
    app.state.services = services

    logger.info("Image harvester started successfully")

    yield

    logger.info("Image harvester shut down")


def create_app(settings: ScraperSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or ScraperSettings()

    app = FastAPI(
        title="imgharvest",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_error_handlers(app, expose_diagnostics=not settings.is_production)
    app.add_middleware(RequestIdMiddleware)

    return app


app = create_app()
