"""Proxy management package: round-robin assignment, sticky domains, and cooldowns."""

from imgharvest.proxy.manager import ProxyManager, parse_proxy_pool
from imgharvest.proxy.types import ProxyEndpoint, StickyAssignment

__all__ = ["ProxyEndpoint", "ProxyManager", "StickyAssignment", "parse_proxy_pool"]
