# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session for rank checks.

Runs Chromium on a persistent, visible profile so a human can clear a
CAPTCHA in the same window the checker is driving.  ``PlaywrightSurface``
adapts one tab to the ``PageSurface`` protocol.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from . import Anchor, BoundingBox, PageSnapshot
from .errors import BrowserError
from .serp_markers import DEFAULT_MARKERS, SNAPSHOT_JS, SerpMarkers

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
DEFAULT_PROFILE_DIR = Path.home() / ".seo-checker-profile"

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
)

VIEWPORTS: tuple[tuple[int, int], ...] = (
    (1920, 1080),
    (1536, 864),
    (1366, 768),
    (1440, 900),
    (1680, 1050),
)


@dataclass(frozen=True)
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = False  # visible by default: CAPTCHAs are solved by hand
    user_data_dir: Path = DEFAULT_PROFILE_DIR
    executable_path: str | None = None
    locale: str = DEFAULT_LOCALE
    navigation_timeout_ms: int = 30000
    ready_timeout_ms: int = 10000  # wait for results or a challenge after load
    consent_timeout_ms: int = 3000
    user_agents: tuple[str, ...] = USER_AGENTS
    viewports: tuple[tuple[int, int], ...] = VIEWPORTS
    extra_args: tuple[str, ...] = field(default_factory=tuple)


_BROWSER_DEAD_PATTERNS = (
    "target closed",
    "target page",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
)


def _is_browser_dead_error(exc: Exception) -> bool:
    """Detect browser crash/disconnect errors."""
    msg = str(exc).lower()
    return any(p in msg for p in _BROWSER_DEAD_PATTERNS)


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds, Chromium is a ~140MB download


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    Output is captured so it does not pollute the progress stream on stdout.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found — running 'playwright install chromium' …")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    """Return Chromium launch arguments that hide automation flags."""
    width, height = config.viewports[0]
    return [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-blink-features=AutomationControlled",
        "--disable-infobars",
        f"--window-size={width},{height}",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--disable-gpu",
        f"--lang={config.locale},{config.locale.split('-')[0]}",
        *config.extra_args,
    ]


def snapshot_from_payload(raw: dict) -> PageSnapshot:
    """Convert the ``SNAPSHOT_JS`` result into a ``PageSnapshot``."""
    anchors = []
    for a in raw.get("anchors") or []:
        width = a.get("width")
        height = a.get("height")
        box = None
        if width is not None and height is not None:
            box = BoundingBox(
                x=float(a.get("x") or 0.0),
                y=float(a.get("y") or 0.0),
                width=float(width),
                height=float(height),
            )
        anchors.append(Anchor(href=a.get("href") or "", text=a.get("text") or "", box=box))

    return PageSnapshot(
        url=raw.get("url") or "",
        title=raw.get("title") or "",
        body_text=raw.get("bodyText") or "",
        markers=frozenset(raw.get("markers") or ()),
        anchors=tuple(anchors),
        all_links=tuple(raw.get("allLinks") or ()),
        ad_texts=tuple(raw.get("adTexts") or ()),
        place_headings=tuple(raw.get("placeHeadings") or ()),
    )


class PlaywrightSurface:
    """``PageSurface`` over a single Playwright page."""

    def __init__(self, page: Page, config: BrowserConfig, markers: SerpMarkers = DEFAULT_MARKERS) -> None:
        self._page = page
        self._config = config
        self._markers = markers

    @property
    def page(self) -> Page:
        return self._page

    @property
    def viewport(self) -> tuple[int, int]:
        size = self._page.viewport_size
        if not size:
            return self._config.viewports[0]
        return size["width"], size["height"]

    async def goto(self, url: str) -> bool:
        try:
            await self._page.goto(url, wait_until="networkidle", timeout=self._config.navigation_timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.info("Navigation did not settle within %dms: %s", self._config.navigation_timeout_ms, url)
            return False
        except PlaywrightError as exc:
            if _is_browser_dead_error(exc):
                raise BrowserError(f"Browser closed during navigation: {exc}") from exc
            logger.warning("Navigation error, evaluating current DOM: %s", exc)
            return False

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.debug("Selector %r not found within %dms", selector, timeout_ms)
            return False

    async def snapshot(self) -> PageSnapshot:
        try:
            raw = await self._page.evaluate(SNAPSHOT_JS, self._markers.snapshot_args())
        except PlaywrightError as exc:
            if _is_browser_dead_error(exc):
                raise BrowserError(f"Browser closed during evaluation: {exc}") from exc
            raise
        return snapshot_from_payload(raw)

    async def move_pointer(self, x: float, y: float, steps: int) -> None:
        await self._page.mouse.move(x, y, steps=steps)

    async def scroll(self, delta_y: int) -> None:
        await self._page.evaluate("(dy) => window.scrollBy({top: dy, behavior: 'smooth'})", delta_y)

    async def click_first(self, selectors: tuple[str, ...], timeout_ms: int) -> bool:
        locator = self._page.locator(", ".join(selectors)).first
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
            await locator.click()
            return True
        except PlaywrightError:
            return False

    async def close(self) -> None:
        with suppress(Exception):
            await self._page.close()


class BrowserSession:
    """Owns the Playwright process and the persistent browser profile."""

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        markers: SerpMarkers = DEFAULT_MARKERS,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self._markers = markers
        self._rng = rng or random.Random()
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self.user_agent = self._rng.choice(self.config.user_agents)

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._context

    async def _launch_context(self) -> BrowserContext:
        width, height = self.config.viewports[0]
        return await self._playwright.chromium.launch_persistent_context(
            str(self.config.user_data_dir),
            headless=self.config.headless,
            executable_path=self.config.executable_path,
            args=chromium_launch_args(self.config),
            ignore_default_args=["--enable-automation"],
            locale=self.config.locale,
            user_agent=self.user_agent,
            viewport={"width": width, "height": height},
            extra_http_headers={"Accept-Language": f"{self.config.locale},en;q=0.9"},
        )

    async def start(self) -> None:
        """Launch Chromium on the persistent profile."""
        self.config.user_data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        try:
            self._context = await self._launch_context()
        except Exception as exc:
            if "executable doesn't exist" in str(exc).lower() and await _auto_install_chromium():
                self._context = await self._launch_context()
            else:
                with suppress(Exception):
                    await self._playwright.stop()
                self._playwright = None
                raise BrowserError(f"Could not launch Chromium: {exc}") from exc
        logger.info(
            "Browser session started (headless=%s, profile=%s)",
            self.config.headless,
            self.config.user_data_dir,
        )

    async def open_surface(self) -> PlaywrightSurface:
        """Open a fresh tab with a randomized viewport."""
        try:
            page = await self.context.new_page()
            width, height = self._rng.choice(self.config.viewports)
            await page.set_viewport_size({"width": width, "height": height})
        except PlaywrightError as exc:
            raise BrowserError(f"Could not open a new tab: {exc}") from exc
        return PlaywrightSurface(page, self.config, self._markers)

    async def stop(self) -> None:
        """Close the profile and Playwright. Safe to call on a crashed browser."""
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()
