"""Proxy data models for the proxy manager."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ProxyEndpoint:
    """A single egress proxy with health and cooldown tracking."""

    id: str  # p1, p2, … by position in the pool string
    raw: str
    server: str  # scheme://host:port, credentials stripped
    username: str | None = None
    password: str | None = None
    healthy: bool = True
    last_failure_at: float = 0.0  # time.monotonic() of the last reported failure
    cooldown_seconds: float = 60.0
    success_count: int = 0
    failure_count: int = 0


@dataclass
class StickyAssignment:
    """A domain's current proxy and the monotonic time it expires."""

    proxy: ProxyEndpoint
    expires_at: float
