# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page classifier: is this page a search-engine block/interstitial?

Union of independent signals; any one firing marks the page blocked.
Pure function of the snapshot, used identically on first load and while
polling during block recovery.
"""

from __future__ import annotations

from . import ClassificationResult, PageSnapshot
from .serp_markers import Marker

# Title phrases of consent/challenge interstitials.
INTERSTITIAL_TITLES: tuple[str, ...] = ("Before you continue",)

# Body phrases of the engine's bot-detection page.
BOT_DETECTION_PHRASES: tuple[str, ...] = (
    "unusual traffic",
    "automated queries",
)


def classify(snapshot: PageSnapshot, *, require_results: bool = False) -> ClassificationResult:
    """Classify *snapshot* as blocked or normal.

    Args:
        require_results: Also treat a page without a results container as
            blocked.  Used while polling for a human to clear a challenge,
            where a blank or half-loaded page must not count as resolved.
    """
    signals: list[str] = []

    if any(phrase in snapshot.title for phrase in INTERSTITIAL_TITLES):
        signals.append("interstitial_title")
    if snapshot.has(Marker.CAPTCHA_FORM):
        signals.append("captcha_form")
    if any(phrase in snapshot.body_text for phrase in BOT_DETECTION_PHRASES):
        signals.append("bot_detection_text")
    if snapshot.has(Marker.CAPTCHA_IFRAME):
        signals.append("captcha_iframe")
    if require_results and not snapshot.has(Marker.RESULTS_CONTAINER):
        signals.append("no_results_container")

    return ClassificationResult(is_blocked=bool(signals), signals=tuple(signals))
