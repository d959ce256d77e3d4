# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for browser session configuration and the Playwright surface adapter.

Does not require a running browser: pages are mocked.
"""

from __future__ import annotations

import random
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from serprank import BoundingBox
from serprank.browser_session import (
    USER_AGENTS,
    BrowserConfig,
    BrowserSession,
    PlaywrightSurface,
    _is_browser_dead_error,
    chromium_launch_args,
    snapshot_from_payload,
)
from serprank.errors import BrowserError
from serprank.serp_markers import SNAPSHOT_JS, Marker
from serprank.surface import PageSurface


def _page() -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock()
    page.close = AsyncMock()
    page.mouse.move = AsyncMock()
    page.viewport_size = {"width": 1440, "height": 900}
    return page


# ── BrowserConfig ──────────────────────────────────────────────────


class TestBrowserConfig:
    def test_defaults(self):
        cfg = BrowserConfig()
        assert cfg.headless is False
        assert cfg.locale == "en-US"
        assert cfg.navigation_timeout_ms == 30000
        assert cfg.ready_timeout_ms == 10000
        assert cfg.consent_timeout_ms == 3000

    def test_launch_args_hide_automation(self):
        args = chromium_launch_args(BrowserConfig())
        assert "--disable-blink-features=AutomationControlled" in args
        assert "--window-size=1920,1080" in args
        assert "--lang=en-US,en" in args

    def test_extra_args_appended(self):
        args = chromium_launch_args(BrowserConfig(extra_args=("--mute-audio",)))
        assert args[-1] == "--mute-audio"


class TestSessionIdentity:
    def test_user_agent_fixed_per_session(self):
        session = BrowserSession(rng=random.Random(1))
        assert session.user_agent in USER_AGENTS

    def test_context_before_start(self):
        with pytest.raises(RuntimeError, match="not started"):
            _ = BrowserSession().context

    async def test_start_blocked_in_tests(self):
        with pytest.raises(RuntimeError, match="real browser"):
            await BrowserSession().start()


# ── Dead-browser detection ─────────────────────────────────────────


class TestDeadBrowserDetection:
    @pytest.mark.parametrize(
        "msg",
        [
            "Target closed",
            "Target page, context or browser has been closed",
            "Browser has been closed",
            "Connection closed while reading from the driver",
        ],
    )
    def test_dead(self, msg):
        assert _is_browser_dead_error(Exception(msg)) is True

    def test_alive(self):
        assert _is_browser_dead_error(Exception("net::ERR_NAME_NOT_RESOLVED")) is False


# ── Snapshot payload ───────────────────────────────────────────────


class TestSnapshotFromPayload:
    def test_full_payload(self):
        snap = snapshot_from_payload(
            {
                "url": "https://www.google.com/search?q=x",
                "title": "x - Google Search",
                "bodyText": "AI Overview",
                "markers": ["results_container", "ai_summary"],
                "anchors": [{"href": "https://a.com/", "text": "A", "x": 1, "y": 2, "width": 300, "height": 20}],
                "allLinks": ["https://a.com/"],
                "adTexts": ["Sponsored"],
                "placeHeadings": ["Raindrop Janitorial"],
            }
        )
        assert snap.has(Marker.AI_SUMMARY)
        assert snap.anchors[0].box == BoundingBox(1.0, 2.0, 300.0, 20.0)
        assert snap.all_links == ("https://a.com/",)
        assert snap.place_headings == ("Raindrop Janitorial",)

    def test_missing_fields(self):
        snap = snapshot_from_payload({"anchors": [{"href": None, "text": None}]})
        assert snap.url == ""
        assert snap.markers == frozenset()
        assert snap.anchors[0].href == ""
        assert snap.anchors[0].box is None


# ── PlaywrightSurface ──────────────────────────────────────────────


class TestPlaywrightSurface:
    def test_satisfies_protocol(self):
        assert isinstance(PlaywrightSurface(_page(), BrowserConfig()), PageSurface)

    def test_viewport(self):
        page = _page()
        assert PlaywrightSurface(page, BrowserConfig()).viewport == (1440, 900)
        page.viewport_size = None
        assert PlaywrightSurface(page, BrowserConfig()).viewport == (1920, 1080)

    async def test_goto_ok(self):
        page = _page()
        assert await PlaywrightSurface(page, BrowserConfig()).goto("https://www.google.com") is True
        page.goto.assert_awaited_once_with("https://www.google.com", wait_until="networkidle", timeout=30000)

    async def test_goto_timeout_is_not_fatal(self):
        page = _page()
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded")
        assert await PlaywrightSurface(page, BrowserConfig()).goto("https://www.google.com") is False

    async def test_goto_dead_browser(self):
        page = _page()
        page.goto.side_effect = PlaywrightError("Target page, context or browser has been closed")
        with pytest.raises(BrowserError):
            await PlaywrightSurface(page, BrowserConfig()).goto("https://www.google.com")

    async def test_wait_for_timeout(self):
        page = _page()
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout")
        assert await PlaywrightSurface(page, BrowserConfig()).wait_for("#search", 100) is False

    async def test_snapshot(self):
        page = _page()
        page.evaluate.return_value = {"url": "https://x", "title": "t", "bodyText": "", "markers": ["captcha_form"]}
        snap = await PlaywrightSurface(page, BrowserConfig()).snapshot()
        assert snap.has(Marker.CAPTCHA_FORM)
        assert page.evaluate.await_args.args[0] == SNAPSHOT_JS

    async def test_snapshot_dead_browser(self):
        page = _page()
        page.evaluate.side_effect = PlaywrightError("Target closed")
        with pytest.raises(BrowserError):
            await PlaywrightSurface(page, BrowserConfig()).snapshot()

    async def test_click_first_none_visible(self):
        page = _page()
        locator = MagicMock()
        locator.wait_for = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))
        page.locator.return_value.first = locator
        surface = PlaywrightSurface(page, BrowserConfig())
        assert await surface.click_first(("button#L2AGLb",), 100) is False

    async def test_click_first_clicks(self):
        page = _page()
        locator = MagicMock()
        locator.wait_for = AsyncMock()
        locator.click = AsyncMock()
        page.locator.return_value.first = locator
        surface = PlaywrightSurface(page, BrowserConfig())
        assert await surface.click_first(("button#L2AGLb", "button.other"), 100) is True
        page.locator.assert_called_once_with("button#L2AGLb, button.other")
        locator.click.assert_awaited_once()

    async def test_close_swallows_errors(self):
        page = _page()
        page.close.side_effect = PlaywrightError("Target closed")
        await PlaywrightSurface(page, BrowserConfig()).close()
