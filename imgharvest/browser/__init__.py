"""Browser sessions, fingerprint identities, and human-like interaction."""

from imgharvest.browser.identity import DEFAULT_IDENTITIES, Identity, IdentityProvider, load_identities
from imgharvest.browser.interaction import InteractionSimulator
from imgharvest.browser.session import CHROMIUM_ARGS, PageEventLog, RenderSession, open_render_session
from imgharvest.browser.stealth import build_stealth_script

__all__ = [
    "CHROMIUM_ARGS",
    "DEFAULT_IDENTITIES",
    "Identity",
    "IdentityProvider",
    "InteractionSimulator",
    "PageEventLog",
    "RenderSession",
    "build_stealth_script",
    "load_identities",
    "open_render_session",
]
