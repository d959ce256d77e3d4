# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tracker configuration: immutable dataclasses with env-var overrides.

All delay bounds are seconds.  ``TrackerConfig.from_env()`` is the only
place environment variables are read for a rank check.
"""

from __future__ import annotations

import os
from contextlib import suppress
from dataclasses import dataclass, field, replace
from pathlib import Path

from .browser_session import BrowserConfig

DEFAULT_DOMAIN = "raindropjanitorial.com"
DEFAULT_TERMS_FILE = Path("search-terms.json")
DEFAULT_KEYWORDS_FILE = Path("keywords-config.json")
DEFAULT_DB_PATH = Path("seo-results.db")
MAX_PAGES = 3
PAGE_SIZE = 10

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class DelayRange:
    """Closed interval [low, high] a randomized delay is drawn from."""

    low: float
    high: float

    def __post_init__(self) -> None:
        if self.low < 0:
            raise ValueError(f"delay low must be >= 0, got {self.low}")
        if self.low > self.high:
            raise ValueError(f"delay low ({self.low}) must be <= high ({self.high})")


@dataclass(frozen=True, slots=True)
class PacingConfig:
    """Timing envelope of the human-mimicking pacing."""

    page_delay: DelayRange = DelayRange(3.0, 7.0)
    term_delay: DelayRange = DelayRange(8.0, 15.0)
    settle_delay: DelayRange = DelayRange(1.0, 2.0)
    warmup_delay: DelayRange = DelayRange(2.0, 4.0)
    consent_delay: DelayRange = DelayRange(0.5, 1.5)
    scroll_px: tuple[int, int] = (100, 400)
    pointer_steps: tuple[int, int] = (10, 20)

    def __post_init__(self) -> None:
        if self.term_delay.low < self.page_delay.low:
            raise ValueError(
                f"term_delay ({self.term_delay.low}s) must not be shorter than page_delay ({self.page_delay.low}s)"
            )
        for name in ("scroll_px", "pointer_steps"):
            lo, hi = getattr(self, name)
            if lo < 0 or lo > hi:
                raise ValueError(f"{name} must satisfy 0 <= low <= high, got {(lo, hi)}")


@dataclass(frozen=True, slots=True)
class RecoveryConfig:
    """Block-recovery polling bounds."""

    poll_interval: float = 3.0
    max_wait: float = 120.0

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.max_wait <= 0:
            raise ValueError(f"max_wait must be > 0, got {self.max_wait}")
        if self.poll_interval > self.max_wait:
            raise ValueError(f"poll_interval ({self.poll_interval}) must be <= max_wait ({self.max_wait})")


def business_name_for(domain: str) -> str:
    """Default business name: first label of the domain (``www.`` stripped)."""
    host = domain.lower().strip()
    host = host.removeprefix("www.")
    return host.split(".", 1)[0]


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Everything one rank-check run needs."""

    domain: str = DEFAULT_DOMAIN
    business_name: str = ""  # empty → derived from domain
    max_pages: int = MAX_PAGES
    page_size: int = PAGE_SIZE
    terms_file: Path = DEFAULT_TERMS_FILE
    db_path: Path = DEFAULT_DB_PATH
    seed: int | None = None
    pacing: PacingConfig = field(default_factory=PacingConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)

    def __post_init__(self) -> None:
        if not self.domain.strip():
            raise ValueError("domain must not be empty")
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        if not self.business_name:
            # frozen: bypass __setattr__ for the derived default
            object.__setattr__(self, "business_name", business_name_for(self.domain))

    @classmethod
    def from_env(cls, **overrides) -> TrackerConfig:
        """Build a config from ``SERPRANK_*`` env vars, then apply *overrides*.

        Overrides whose value is None are ignored so argparse defaults can be
        passed straight through.
        """
        kwargs: dict = {}
        browser = BrowserConfig()

        env_domain = os.environ.get("SERPRANK_DOMAIN", "").strip()
        if env_domain:
            kwargs["domain"] = env_domain

        env_name = os.environ.get("SERPRANK_BUSINESS_NAME", "").strip()
        if env_name:
            kwargs["business_name"] = env_name.lower()

        env_pages = os.environ.get("SERPRANK_MAX_PAGES", "").strip()
        if env_pages:
            with suppress(ValueError):
                kwargs["max_pages"] = int(env_pages)

        env_terms = os.environ.get("SERPRANK_TERMS_FILE", "").strip()
        if env_terms:
            kwargs["terms_file"] = Path(env_terms)

        env_db = os.environ.get("SERPRANK_DB_PATH", "").strip()
        if env_db:
            kwargs["db_path"] = Path(env_db)

        env_seed = os.environ.get("SERPRANK_SEED", "").strip()
        if env_seed:
            with suppress(ValueError):
                kwargs["seed"] = int(env_seed)

        env_headless = os.environ.get("SERPRANK_HEADLESS", "").strip().lower()
        if env_headless:
            browser = replace(browser, headless=env_headless in _TRUTHY)

        env_profile = os.environ.get("SERPRANK_PROFILE_DIR", "").strip()
        if env_profile:
            browser = replace(browser, user_data_dir=Path(env_profile))

        env_chrome = os.environ.get("CHROME_BIN", "").strip()
        if env_chrome:
            browser = replace(browser, executable_path=env_chrome)

        headless = overrides.pop("headless", None)
        if headless:
            browser = replace(browser, headless=True)
        kwargs["browser"] = browser

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)
