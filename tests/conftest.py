# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import serprank  # noqa: F401
except ImportError:
    raise ImportError("serprank is not installed. Run: pip install -e '.[dev]'") from None

import os

import pytest

_ENV_PREFIXES = ("SERPRANK_", "CHROME_BIN")


@pytest.fixture(autouse=True)
def _block_real_browser(monkeypatch):
    """Safety net: prevent real browser launches in unit tests.

    Tests drive the core through ``tests._fakes.FakeSurface``.  Anything
    that reaches ``BrowserSession.start`` gets a clear error instead of
    silently trying to launch Chromium.
    """

    async def _no_real_browser(self):
        raise RuntimeError("Test tried to launch a real browser. Use tests._fakes.FakeSurface.")

    monkeypatch.setattr("serprank.browser_session.BrowserSession.start", _no_real_browser)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Strip SERPRANK_* overrides from the developer's shell."""
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
