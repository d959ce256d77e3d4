# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""serprank exception hierarchy.

All serprank-specific errors inherit from SerpRankError, allowing callers
to catch the base class for any failure or specific subclasses for
targeted handling. Blocking by the search engine is not an error: it is
handled by the recovery protocol and never raised.
"""

from __future__ import annotations


class SerpRankError(Exception):
    """Base exception for all serprank errors."""


class BrowserError(SerpRankError):
    """Browser session launch or page creation failure."""


class TermSourceError(SerpRankError):
    """Term list is missing or malformed. Fatal before any browser starts."""

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class KeywordError(SerpRankError):
    """Keyword-config validation failure (empty, duplicate, bad index, bad action)."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found


class CheckAlreadyRunningError(SerpRankError):
    """A rank check is already active; only one may own the browser profile."""


class RunCancelledError(SerpRankError):
    """The stop signal was observed between page visits."""
