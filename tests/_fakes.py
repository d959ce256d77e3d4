# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scripted stand-ins for the browser, shared by driver/recovery/orchestrator tests."""

from __future__ import annotations

import random
from collections.abc import Iterable

from serprank import Anchor, BoundingBox, PageSnapshot
from serprank.config import PacingConfig, RecoveryConfig, TrackerConfig
from serprank.pacing import Pacer
from serprank.serp_markers import GOOGLE, Marker

DOMAIN = "raindropjanitorial.com"


def anchor(href: str, text: str = "Result title", width: float = 600, height: float = 24) -> Anchor:
    return Anchor(href=href, text=text, box=BoundingBox(x=10, y=100, width=width, height=height))


def other_results(n: int, prefix: str = "competitor") -> list[Anchor]:
    return [anchor(f"https://{prefix}{i}.example.com/page") for i in range(n)]


def results_page(
    anchors: Iterable[Anchor] = (),
    *,
    url: str = "https://www.google.com/search?q=x",
    title: str = "x - Google Search",
    body_text: str = "",
    markers: Iterable[str] = (),
    ad_texts: Iterable[str] = (),
    place_headings: Iterable[str] = (),
) -> PageSnapshot:
    anchors = tuple(anchors)
    return PageSnapshot(
        url=url,
        title=title,
        body_text=body_text,
        markers=frozenset({Marker.RESULTS_CONTAINER, *markers}),
        anchors=anchors,
        all_links=tuple(a.href for a in anchors),
        ad_texts=tuple(ad_texts),
        place_headings=tuple(place_headings),
    )


def blocked_page(url: str = "https://www.google.com/sorry/index") -> PageSnapshot:
    return PageSnapshot(
        url=url,
        title="https://www.google.com/search",
        body_text="Our systems have detected unusual traffic from your computer network.",
        markers=frozenset({Marker.CAPTCHA_FORM}),
    )


def page_url(term: str, page_num: int) -> str:
    return GOOGLE.results_url(term, page_num)


class RecordingSleep:
    """Async sleep replacement that records durations and returns immediately."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeSurface:
    """``PageSurface`` driven by a per-URL script of snapshots.

    Each ``snapshot()`` call pops the next item scripted for the current
    URL; the last item repeats.  An ``Exception`` item is raised instead.
    """

    def __init__(self, script: dict[str, list] | None = None, *, consent: bool = False) -> None:
        self.script: dict[str, list] = {url: list(items) for url, items in (script or {}).items()}
        self.consent = consent
        self.current = ""
        self.visits: list[str] = []
        self.waits: list[str] = []
        self.clicks: list[tuple[str, ...]] = []
        self.pointer_moves: list[tuple[float, float, int]] = []
        self.scrolls: list[int] = []
        self.snapshots_taken = 0
        self.closed = False

    @property
    def viewport(self) -> tuple[int, int]:
        return (1366, 768)

    async def goto(self, url: str) -> bool:
        self.current = url
        self.visits.append(url)
        return True

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        self.waits.append(selector)
        if "L2AGLb" in selector:
            return self.consent
        return True

    async def snapshot(self) -> PageSnapshot:
        self.snapshots_taken += 1
        items = self.script.get(self.current)
        if not items:
            return results_page(url=self.current)
        item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def move_pointer(self, x: float, y: float, steps: int) -> None:
        self.pointer_moves.append((x, y, steps))

    async def scroll(self, delta_y: int) -> None:
        self.scrolls.append(delta_y)

    async def click_first(self, selectors: tuple[str, ...], timeout_ms: int) -> bool:
        self.clicks.append(selectors)
        return self.consent

    async def close(self) -> None:
        self.closed = True


def make_pacer(seed: int = 7, sleep: RecordingSleep | None = None) -> Pacer:
    return Pacer(PacingConfig(), rng=random.Random(seed), sleep=sleep or RecordingSleep())


def make_config(**overrides) -> TrackerConfig:
    overrides.setdefault("domain", DOMAIN)
    overrides.setdefault("recovery", RecoveryConfig(poll_interval=3.0, max_wait=12.0))
    return TrackerConfig(**overrides)
