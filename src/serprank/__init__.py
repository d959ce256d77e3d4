# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""serprank: search-engine rank tracking for a single domain.

Drives a real browser through paginated search results for each tracked
term and records, per term:
- organic rank of the tracked domain (continuous across pages)
- presence of an AI summary, a places/map block, and a sponsored ad
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Rendered geometry of an element, in CSS pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class Anchor:
    """A link element inside the result area, in document order."""

    href: str
    text: str  # visible (innerText) text, may be empty
    box: BoundingBox | None = None  # None when the element is not rendered


@dataclass(frozen=True, slots=True)
class PageSnapshot:
    """Everything the classifier and extractor need from one loaded page.

    Ephemeral: built once per page evaluation, never persisted.
    """

    url: str
    title: str
    body_text: str
    markers: frozenset[str] = frozenset()  # names of marker elements present (see serp_markers.Marker)
    anchors: tuple[Anchor, ...] = ()  # anchors of the primary results container (or body fallback)
    all_links: tuple[str, ...] = ()  # every non-javascript href on the page (diagnostics only)
    ad_texts: tuple[str, ...] = ()  # visible text of each ad container
    place_headings: tuple[str, ...] = ()  # visible text of map/places headings

    def has(self, marker: str) -> bool:
        return marker in self.markers


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Result of page classification."""

    is_blocked: bool
    signals: tuple[str, ...] = ()  # names of fired block signals


@dataclass(frozen=True, slots=True)
class PageSignals:
    """Ranking signals extracted from one result page."""

    ai_summary: bool = False
    sponsored: bool = False
    places: bool = False
    organic_rank: int | None = None
    total_results_on_page: int = 0
    ordered_result_links: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TermReport:
    """Finalized ranking report for one term."""

    term: str
    ai_summary: bool = False
    sponsored: bool = False
    places: bool = False
    organic_rank: int | None = None
    found_on_page: int | None = None

    def __post_init__(self) -> None:
        if (self.organic_rank is None) != (self.found_on_page is None):
            raise ValueError("organic_rank and found_on_page must both be set or both be None")
        if self.organic_rank is not None and self.organic_rank < 1:
            raise ValueError(f"organic_rank must be positive, got {self.organic_rank}")

    def to_dict(self) -> dict:
        return {
            "term": self.term,
            "aiSummary": self.ai_summary,
            "sponsored": self.sponsored,
            "places": self.places,
            "organicRank": self.organic_rank,
            "foundOnPage": self.found_on_page,
        }


@dataclass(frozen=True, slots=True)
class RunRecord:
    """One invocation of the run orchestrator."""

    id: int
    timestamp: str  # ISO 8601, UTC
    domain: str


@dataclass(slots=True)
class RunSummary:
    """Outcome of a completed (or stopped) run."""

    run: RunRecord
    reports: list[TermReport] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ranked(self) -> int:
        return sum(1 for r in self.reports if r.organic_rank is not None)
