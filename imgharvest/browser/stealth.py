"""Anti-automation init script for rendered pages.

The script runs before any page script and makes the automated browser look
like the identity it presents: no ``navigator.webdriver``, populated plugin
and language lists, a platform matching the user agent, a fixed WebGL
vendor/renderer pair, and a plain-data ``navigator.userAgentData``.
"""

from __future__ import annotations

import json

from imgharvest.browser.identity import Identity, platform_for

WEBGL_VENDOR = "Intel Inc."
WEBGL_RENDERER = "Intel Iris OpenGL Engine"

_STEALTH_TEMPLATE = """
(() => {
    const config = __CONFIG__;

    // Mask navigator.webdriver
    Object.defineProperty(Navigator.prototype, 'webdriver', {
        get: () => undefined,
        configurable: true,
    });

    // Non-empty plugin and language lists
    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5],
        configurable: true,
    });
    Object.defineProperty(navigator, 'languages', {
        get: () => config.languages,
        configurable: true,
    });

    // Fixed platform matching the user agent
    Object.defineProperty(navigator, 'platform', {
        get: () => config.platform,
        configurable: true,
    });

    // WebGL vendor / renderer (UNMASKED_VENDOR_WEBGL / UNMASKED_RENDERER_WEBGL)
    const patchWebGL = (proto) => {
        if (!proto) return;
        const getParameter = proto.getParameter;
        proto.getParameter = function (parameter) {
            if (parameter === 37445) return config.webglVendor;
            if (parameter === 37446) return config.webglRenderer;
            return getParameter.call(this, parameter);
        };
    };
    patchWebGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
    patchWebGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);

    // Plain-data userAgentData so structured cloning never throws
    const brands = config.brands.map((b) => ({ brand: b.brand, version: b.version }));
    const uaData = {
        brands: brands,
        mobile: config.mobile,
        platform: config.uaDataPlatform,
        getHighEntropyValues: (hints) => Promise.resolve({
            brands: brands,
            mobile: config.mobile,
            platform: config.uaDataPlatform,
            platformVersion: '',
            architecture: 'x86',
            model: '',
            uaFullVersion: config.chromeVersion,
        }),
        toJSON: () => ({ brands: brands, mobile: config.mobile, platform: config.uaDataPlatform }),
    };
    Object.defineProperty(navigator, 'userAgentData', {
        get: () => uaData,
        configurable: true,
    });

    if (!window.chrome) {
        window.chrome = { runtime: {} };
    }
})();
"""

_UA_DATA_PLATFORMS = {"Win32": "Windows", "MacIntel": "macOS", "Linux x86_64": "Linux"}


def _chrome_version(user_agent: str) -> str:
    marker = "Chrome/"
    if marker not in user_agent:
        return "120.0.0.0"
    return user_agent.split(marker, 1)[1].split(" ", 1)[0]


def build_stealth_script(identity: Identity) -> str:
    """Return the anti-automation init script for *identity*."""
    platform = platform_for(identity.user_agent)
    version = _chrome_version(identity.user_agent)
    major = version.split(".", 1)[0]
    language = identity.locale.split("-", 1)[0]
    config = {
        "languages": [identity.locale, language] if language != identity.locale else [identity.locale],
        "platform": platform,
        "uaDataPlatform": _UA_DATA_PLATFORMS.get(platform, "Linux"),
        "mobile": identity.is_mobile,
        "webglVendor": WEBGL_VENDOR,
        "webglRenderer": WEBGL_RENDERER,
        "chromeVersion": version,
        "brands": [
            {"brand": "Not_A Brand", "version": "8"},
            {"brand": "Chromium", "version": major},
            {"brand": "Google Chrome", "version": major},
        ],
    }
    return _STEALTH_TEMPLATE.replace("__CONFIG__", json.dumps(config))
