"""Fingerprint identities for the render path.

A fixed pool of realistic desktop Chrome identities (user agent, viewport,
locale, timezone, color scheme, device scale factor, mobile/touch flags) is
cycled round-robin.

The built-in pool can be replaced at startup from a YAML file; the pool is
read-only afterwards.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """One consistent browser fingerprint tuple."""

    id: str
    user_agent: str
    viewport_width: int
    viewport_height: int
    locale: str
    timezone_id: str
    color_scheme: str = "light"
    device_scale_factor: float = 1
    is_mobile: bool = False
    has_touch: bool = False

    def context_options(self) -> dict:
        """Keyword arguments for ``Browser.new_context``."""
        return {
            "user_agent": self.user_agent,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "color_scheme": self.color_scheme,
            "device_scale_factor": self.device_scale_factor,
            "is_mobile": self.is_mobile,
            "has_touch": self.has_touch,
        }


DEFAULT_IDENTITIES: tuple[Identity, ...] = (
    Identity(
        id="id1",
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        viewport_width=1366,
        viewport_height=768,
        locale="en-US",
        timezone_id="America/New_York",
    ),
    Identity(
        id="id2",
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 13_4) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36",
        viewport_width=1440,
        viewport_height=900,
        locale="en-US",
        timezone_id="America/Los_Angeles",
        device_scale_factor=2,
    ),
    Identity(
        id="id3",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        viewport_width=1280,
        viewport_height=800,
        locale="en-GB",
        timezone_id="Europe/London",
    ),
)


def platform_for(user_agent: str) -> str:
    """Return the ``navigator.platform`` value consistent with *user_agent*."""
    if "Windows" in user_agent:
        return "Win32"
    if "Macintosh" in user_agent or "Mac OS X" in user_agent:
        return "MacIntel"
    return "Linux x86_64"


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------


class _IdentityEntry(BaseModel):
    id: str = Field(min_length=1)
    user_agent: str = Field(min_length=1)
    viewport_width: int = Field(ge=320, le=7680)
    viewport_height: int = Field(ge=320, le=4320)
    locale: str = "en-US"
    timezone_id: str = "America/New_York"
    color_scheme: str = "light"
    device_scale_factor: float = Field(default=1, gt=0)
    is_mobile: bool = False
    has_touch: bool = False


def load_identities(yaml_path: str | None) -> list[Identity]:
    """Load the identity pool from *yaml_path*.

    The file holds an ``identities`` list of mappings with the
    :class:`Identity` field names. A missing path, an unreadable file, or an
    invalid entry falls back to :data:`DEFAULT_IDENTITIES`.
    """
    if not yaml_path:
        return list(DEFAULT_IDENTITIES)

    path = Path(yaml_path)
    if not path.exists():
        logger.warning("Identities file not found at %s; using built-in pool", yaml_path)
        return list(DEFAULT_IDENTITIES)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse identities YAML at %s: %s", yaml_path, exc)
        return list(DEFAULT_IDENTITIES)

    entries = (raw or {}).get("identities") if isinstance(raw, dict) else None
    if not entries:
        logger.warning("Identities file %s has no entries; using built-in pool", yaml_path)
        return list(DEFAULT_IDENTITIES)

    try:
        parsed = [_IdentityEntry.model_validate(item) for item in entries]
    except ValidationError as exc:
        logger.error("Invalid identity entry in %s: %s", yaml_path, exc)
        return list(DEFAULT_IDENTITIES)

    logger.info("Loaded %d identities from %s", len(parsed), yaml_path)
    return [Identity(**entry.model_dump()) for entry in parsed]


# ---------------------------------------------------------------------------
# IdentityProvider
# ---------------------------------------------------------------------------


class IdentityProvider:
    """Cycles round-robin through a fixed identity pool.

    ``next()`` reads and advances the shared counter under a lock, so it is
    safe to call from several threads. Concurrent callers may receive the
    same identity.
    """

    def __init__(self, identities: list[Identity] | tuple[Identity, ...] | None = None) -> None:
        pool = tuple(identities) if identities else DEFAULT_IDENTITIES
        self._pool: tuple[Identity, ...] = pool
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self._pool)

    def next(self) -> Identity:
        """Return the identity at ``counter mod pool_size`` and advance."""
        with self._lock:
            identity = self._pool[self._counter % len(self._pool)]
            self._counter += 1
        return identity
