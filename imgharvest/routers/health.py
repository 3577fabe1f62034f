"""Health endpoint.

- GET /health: service status, proxy pool stats, identity pool size
"""

from __future__ import annotations

from fastapi import APIRouter

from imgharvest.browser.identity import IdentityProvider
from imgharvest.proxy.manager import ProxyManager


def create_health_router(
    *,
    proxy_manager: ProxyManager | None = None,
    identity_provider: IdentityProvider | None = None,
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with pool statistics."""
        proxy_stats = proxy_manager.get_stats() if proxy_manager else {}
        identity_count = identity_provider.size if identity_provider else 0

        return {
            "status": "healthy",
            "proxy_pool": proxy_stats,
            "identity_pool": {"size": identity_count},
        }

    return health_router
