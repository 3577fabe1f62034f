"""Headless Chromium diagnostics.

Reports where Playwright looks for browsers, which Chromium builds are
installed there, and whether a headless launch and close succeed with the
same flags the render path uses. Exits non-zero when the launch fails.

Usage::

    imgharvest-diagnose [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import platform
import sys
from pathlib import Path
from typing import Any, Callable

from imgharvest.browser.session import CHROMIUM_ARGS, _default_playwright_factory

INSTALL_HINT = "python -m playwright install --with-deps chromium"


def browsers_path() -> Path:
    """Return the directory Playwright installs browsers into."""
    override = os.environ.get("PLAYWRIGHT_BROWSERS_PATH")
    if override and override != "0":
        return Path(override)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "ms-playwright"
    if sys.platform.startswith("win"):
        return Path(os.environ.get("LOCALAPPDATA", Path.home())) / "ms-playwright"
    return Path.home() / ".cache" / "ms-playwright"


def find_chromium_installs(root: Path) -> list[str]:
    """Names of Chromium build directories under *root*."""
    if not root.is_dir():
        return []
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir() and "chromium" in entry.name)


async def check_launch(playwright_factory: Callable[[], Any] | None = None) -> str | None:
    """Launch and close headless Chromium; return the error text or ``None``."""
    factory = playwright_factory or _default_playwright_factory
    try:
        async with factory() as playwright:
            browser = await playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)
            await browser.close()
    except Exception as exc:
        return str(exc)
    return None


def collect_report(playwright_factory: Callable[[], Any] | None = None) -> dict:
    root = browsers_path()
    launch_error = asyncio.run(check_launch(playwright_factory))
    return {
        "environment": os.environ.get("IMGHARVEST_ENVIRONMENT", "development"),
        "platform": sys.platform,
        "python": platform.python_version(),
        "browsers_path": str(root),
        "browsers_path_exists": root.is_dir(),
        "chromium_installs": find_chromium_installs(root),
        "launch_ok": launch_error is None,
        "launch_error": launch_error,
    }


def _print_report(report: dict) -> None:
    print("=== Playwright diagnostics ===")
    print(f"Environment:      {report['environment']}")
    print(f"Platform:         {report['platform']}")
    print(f"Python:           {report['python']}")
    print(f"Browsers path:    {report['browsers_path']} (exists: {report['browsers_path_exists']})")
    installs = report["chromium_installs"]
    print(f"Chromium builds:  {', '.join(installs) if installs else 'none found'}")
    if report["launch_ok"]:
        print("Launch:           OK (launched and closed headless Chromium)")
    else:
        print(f"Launch:           FAILED - {report['launch_error']}")
        print(f"\nInstall the browser with:\n  {INSTALL_HINT}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="imgharvest-diagnose",
        description="Check that headless Chromium can start on this machine.",
    )
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    args = parser.parse_args(argv)

    report = collect_report()
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        _print_report(report)
    return 0 if report["launch_ok"] else 1


if __name__ == "__main__":
    sys.exit(main())
