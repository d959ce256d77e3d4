# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Result extractor: ranking signals from one normal result page.

Organic results are identified by container + geometry rather than by the
engine's result class names, which churn constantly:

  1. anchors inside the primary results container (body fallback), in document order
  2. drop engine-internal, ``javascript:`` and same-document fragment links
  3. keep anchors with visible text and a box larger than ``MIN_WIDTH`` × ``MIN_HEIGHT``
  4. deduplicate by URL; the first qualifying occurrence keeps its slot

Rank is the 1-based slot of the first URL containing the tracked domain,
offset by ``(page_num - 1) * page_size`` so it is continuous across pages.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urldefrag, urlparse

from . import Anchor, PageSignals, PageSnapshot
from .config import business_name_for
from .serp_markers import GOOGLE, Marker, SearchEngine

MIN_WIDTH = 100
MIN_HEIGHT = 10

AI_SUMMARY_TEXT = "AI Overview"
PLACES_TEXT = "Places"


def _on_host(href: str, host: str) -> bool:
    netloc = (urlparse(href).hostname or "").lower()
    return netloc == host or netloc.endswith("." + host)


def _is_fragment(href: str, page_url: str) -> bool:
    if href.startswith("#"):
        return True
    if "#" not in href or not page_url:
        return False
    return urldefrag(href).url == urldefrag(page_url).url


def is_excluded(href: str, *, engine: SearchEngine = GOOGLE, page_url: str = "") -> bool:
    """True for links that can never be an organic result."""
    if not href:
        return True
    if href.lower().startswith("javascript:"):
        return True
    if _is_fragment(href, page_url):
        return True
    return _on_host(href, engine.own_host)


def qualifies(anchor: Anchor) -> bool:
    """Visible text and a rendered box big enough to be a result title link."""
    if not anchor.text.strip() or anchor.box is None:
        return False
    return anchor.box.width > MIN_WIDTH and anchor.box.height > MIN_HEIGHT


def ordered_result_links(
    anchors: Iterable[Anchor],
    *,
    engine: SearchEngine = GOOGLE,
    page_url: str = "",
) -> list[str]:
    """Deduplicated, document-ordered list of candidate organic result URLs."""
    seen: set[str] = set()
    ordered: list[str] = []
    for anchor in anchors:
        href = anchor.href
        if href in seen or is_excluded(href, engine=engine, page_url=page_url):
            continue
        if qualifies(anchor):
            seen.add(href)
            ordered.append(href)
    return ordered


def find_rank(links: list[str], domain: str, page_num: int, page_size: int = 10) -> int | None:
    """Continuous rank of the first link containing *domain*, or None."""
    needle = domain.lower()
    for position, href in enumerate(links, start=1):
        if needle in href.lower():
            return position + (page_num - 1) * page_size
    return None


def detect_ai_summary(snapshot: PageSnapshot) -> bool:
    return snapshot.has(Marker.AI_SUMMARY) or AI_SUMMARY_TEXT in snapshot.body_text


def detect_places(snapshot: PageSnapshot, business_name: str) -> bool:
    """Places block present and one of its headings names the business."""
    if not business_name:
        return False
    if not (snapshot.has(Marker.PLACES_BLOCK) or PLACES_TEXT in snapshot.body_text):
        return False
    needle = business_name.lower()
    return any(needle in heading.lower() for heading in snapshot.place_headings)


def detect_sponsored(snapshot: PageSnapshot, domain: str) -> bool:
    needle = domain.lower()
    return any(needle in text.lower() for text in snapshot.ad_texts)


def extract_signals(
    snapshot: PageSnapshot,
    domain: str,
    page_num: int,
    *,
    business_name: str | None = None,
    engine: SearchEngine = GOOGLE,
    page_size: int = 10,
) -> PageSignals:
    """Compute ``PageSignals`` for a page already classified as normal."""
    if page_num < 1:
        raise ValueError(f"page_num must be >= 1, got {page_num}")

    # AI summary and places modules only render on the first page.
    first_page = page_num == 1
    name = business_name if business_name is not None else business_name_for(domain)

    links = ordered_result_links(snapshot.anchors, engine=engine, page_url=snapshot.url)
    return PageSignals(
        ai_summary=first_page and detect_ai_summary(snapshot),
        sponsored=detect_sponsored(snapshot, domain),
        places=first_page and detect_places(snapshot, name),
        organic_rank=find_rank(links, domain, page_num, page_size),
        total_results_on_page=len(links),
        ordered_result_links=tuple(links),
    )
