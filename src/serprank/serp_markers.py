# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Search-engine markup adapter: every CSS selector and class name lives here.

The classifier and extractor only see marker *names* (``Marker``) and the
plain data in ``PageSnapshot``.  When the engine reshuffles its markup,
this module is the only one that should need to change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import urlencode


class Marker(StrEnum):
    """Presence markers reported in ``PageSnapshot.markers``."""

    RESULTS_CONTAINER = "results_container"
    CAPTCHA_FORM = "captcha_form"
    CAPTCHA_IFRAME = "captcha_iframe"
    AI_SUMMARY = "ai_summary"
    PLACES_BLOCK = "places_block"


@dataclass(frozen=True, slots=True)
class SearchEngine:
    """URLs of the search engine being tracked."""

    home_url: str = "https://www.google.com"
    search_url: str = "https://www.google.com/search"
    own_host: str = "google.com"  # result links on this host are never organic results

    def results_url(self, term: str, page_num: int, page_size: int = 10) -> str:
        """Build the URL of result page *page_num* (1-based) for *term*."""
        if page_num < 1:
            raise ValueError(f"page_num must be >= 1, got {page_num}")
        start = (page_num - 1) * page_size
        return f"{self.search_url}?{urlencode({'q': term, 'start': start})}"


GOOGLE = SearchEngine()


@dataclass(frozen=True, slots=True)
class SerpMarkers:
    """CSS selectors for one engine's result-page layout."""

    # Primary results container; first match in document order wins, body is the fallback.
    results_container: str = "#search, #rso"
    # Something worth evaluating has rendered: results or a challenge.
    ready: str = "#search, #main, div.g, #captcha-form"
    # Recovery polling treats a page without these as still blocked.
    results_present: str = "#search, div.g"
    marker_selectors: dict[str, str] = field(
        default_factory=lambda: {
            Marker.CAPTCHA_FORM: "#captcha-form",
            Marker.CAPTCHA_IFRAME: 'iframe[src*="recaptcha"]',
            Marker.AI_SUMMARY: ".M8OgIe, .ab-gp",
            Marker.PLACES_BLOCK: '.G0G57e, div[data-attrid="Url"]',
        }
    )
    ad_containers: str = '.uEierd, [data-text-ad], div[aria-label="Ads"]'
    place_headings: str = 'div[role="heading"], .rllt__details'
    consent_buttons: tuple[str, ...] = (
        "button#L2AGLb",
        'button:has-text("Accept all")',
        'button[aria-label="Accept all"]',
        'form[action*="consent"] button[type="submit"]',
    )

    def snapshot_args(self) -> dict:
        """Argument object passed to ``SNAPSHOT_JS``."""
        markers = dict(self.marker_selectors)
        markers[Marker.RESULTS_CONTAINER] = self.results_present
        return {
            "container": self.results_container,
            "markers": {str(k): v for k, v in markers.items()},
            "ads": self.ad_containers,
            "placeHeadings": self.place_headings,
        }


DEFAULT_MARKERS = SerpMarkers()


# ── Snapshot JS (static, parameterized via evaluate arg) ──────────────

SNAPSHOT_JS = """(args) => {
  const body = document.body;
  const text = (el) => (el && el.innerText) ? el.innerText : '';
  const markers = [];
  for (const [name, sel] of Object.entries(args.markers)) {
    if (document.querySelector(sel)) markers.push(name);
  }
  const area = document.querySelector(args.container) || body;
  const anchors = [];
  if (area) {
    for (const a of area.querySelectorAll('a[href]')) {
      const r = a.getBoundingClientRect();
      anchors.push({
        href: a.href || '',
        text: text(a),
        x: r.x, y: r.y, width: r.width, height: r.height,
      });
    }
  }
  const allLinks = Array.from(document.querySelectorAll('a'))
    .map(a => a.href)
    .filter(h => h && !h.startsWith('javascript:'));
  return {
    url: location.href,
    title: document.title || '',
    bodyText: text(body),
    markers: markers,
    anchors: anchors,
    allLinks: allLinks,
    adTexts: Array.from(document.querySelectorAll(args.ads)).map(text),
    placeHeadings: Array.from(document.querySelectorAll(args.placeHeadings)).map(text),
  };
}"""
