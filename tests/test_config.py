# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for tracker configuration and env-var overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from serprank.config import (
    DEFAULT_DB_PATH,
    DEFAULT_DOMAIN,
    DelayRange,
    PacingConfig,
    RecoveryConfig,
    TrackerConfig,
    business_name_for,
)


class TestValidation:
    def test_delay_range_order(self):
        with pytest.raises(ValueError, match="must be <= high"):
            DelayRange(5.0, 1.0)

    def test_delay_range_negative(self):
        with pytest.raises(ValueError, match=">= 0"):
            DelayRange(-1.0, 1.0)

    def test_term_delay_not_shorter_than_page_delay(self):
        with pytest.raises(ValueError, match="term_delay"):
            PacingConfig(page_delay=DelayRange(5.0, 6.0), term_delay=DelayRange(1.0, 2.0))

    def test_bad_scroll_bounds(self):
        with pytest.raises(ValueError, match="scroll_px"):
            PacingConfig(scroll_px=(400, 100))

    def test_recovery_interval_above_max(self):
        with pytest.raises(ValueError, match="poll_interval"):
            RecoveryConfig(poll_interval=10.0, max_wait=5.0)

    def test_recovery_non_positive(self):
        with pytest.raises(ValueError):
            RecoveryConfig(poll_interval=0)

    def test_empty_domain(self):
        with pytest.raises(ValueError, match="domain"):
            TrackerConfig(domain="  ")

    def test_max_pages_positive(self):
        with pytest.raises(ValueError, match="max_pages"):
            TrackerConfig(max_pages=0)


class TestDefaults:
    def test_defaults(self):
        config = TrackerConfig()
        assert config.domain == DEFAULT_DOMAIN
        assert config.max_pages == 3
        assert config.page_size == 10
        assert config.recovery.max_wait == 120.0
        assert config.pacing.page_delay == DelayRange(3.0, 7.0)
        assert config.pacing.term_delay == DelayRange(8.0, 15.0)

    @pytest.mark.parametrize(
        ("domain", "name"),
        [
            ("raindropjanitorial.com", "raindropjanitorial"),
            ("www.Example.co.uk", "example"),
            ("localhost", "localhost"),
        ],
    )
    def test_business_name_for(self, domain, name):
        assert business_name_for(domain) == name

    def test_business_name_derived(self):
        assert TrackerConfig(domain="acme.com").business_name == "acme"

    def test_business_name_explicit(self):
        assert TrackerConfig(domain="acme.com", business_name="raindrop").business_name == "raindrop"


class TestFromEnv:
    def test_no_env(self):
        config = TrackerConfig.from_env()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.browser.headless is False

    def test_env_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SERPRANK_DOMAIN", "example.org")
        monkeypatch.setenv("SERPRANK_MAX_PAGES", "5")
        monkeypatch.setenv("SERPRANK_DB_PATH", str(tmp_path / "r.db"))
        monkeypatch.setenv("SERPRANK_SEED", "42")
        monkeypatch.setenv("SERPRANK_HEADLESS", "true")
        monkeypatch.setenv("SERPRANK_BUSINESS_NAME", "Raindrop")
        config = TrackerConfig.from_env()
        assert config.domain == "example.org"
        assert config.max_pages == 5
        assert config.db_path == tmp_path / "r.db"
        assert config.seed == 42
        assert config.browser.headless is True
        assert config.business_name == "raindrop"

    def test_invalid_number_ignored(self, monkeypatch):
        monkeypatch.setenv("SERPRANK_MAX_PAGES", "lots")
        assert TrackerConfig.from_env().max_pages == 3

    def test_chrome_bin(self, monkeypatch):
        monkeypatch.setenv("CHROME_BIN", "/opt/chrome/chrome")
        assert TrackerConfig.from_env().browser.executable_path == "/opt/chrome/chrome"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("SERPRANK_DOMAIN", "example.org")
        config = TrackerConfig.from_env(domain="override.com", terms_file=Path("t.json"))
        assert config.domain == "override.com"
        assert config.terms_file == Path("t.json")

    def test_none_overrides_ignored(self, monkeypatch):
        monkeypatch.setenv("SERPRANK_MAX_PAGES", "4")
        config = TrackerConfig.from_env(max_pages=None, domain=None, headless=None)
        assert config.max_pages == 4
        assert config.domain == DEFAULT_DOMAIN

    def test_headless_flag(self):
        assert TrackerConfig.from_env(headless=True).browser.headless is True
