# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pagination driver: checks one term across up to ``max_pages`` result pages.

Per page: navigate → humanize → wait for results or a challenge →
snapshot → classify → (recover) → extract → merge.  The page loop stops
on the first organic hit, on an aborted recovery, or when pages run out.

Failures are contained at the term boundary: any exception other than a
stop request is logged and the term reports what it accumulated so far.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

from . import PageSignals, PageSnapshot, TermReport
from .classifier import classify
from .config import TrackerConfig
from .errors import BrowserError, RunCancelledError
from .extractor import extract_signals
from .pacing import Pacer
from .progress import ProgressStream
from .recovery import BlockRecovery
from .serp_markers import DEFAULT_MARKERS, GOOGLE, SearchEngine, SerpMarkers
from .surface import PageSurface

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[], Awaitable[PageSurface]]


class TermAccumulator:
    """Mutable report for a term while its pages are being visited."""

    def __init__(self, term: str) -> None:
        self.term = term
        self.ai_summary = False
        self.sponsored = False
        self.places = False
        self.organic_rank: int | None = None
        self.found_on_page: int | None = None
        self.debug_links: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.organic_rank is not None

    def merge(self, signals: PageSignals, page_num: int) -> bool:
        """OR the boolean signals in; first rank wins. Returns True once ranked."""
        self.ai_summary = self.ai_summary or signals.ai_summary
        self.sponsored = self.sponsored or signals.sponsored
        self.places = self.places or signals.places
        if self.organic_rank is None and signals.organic_rank is not None:
            self.organic_rank = signals.organic_rank
            self.found_on_page = page_num
        return self.found

    def finalize(self) -> TermReport:
        return TermReport(
            term=self.term,
            ai_summary=self.ai_summary,
            sponsored=self.sponsored,
            places=self.places,
            organic_rank=self.organic_rank,
            found_on_page=self.found_on_page,
        )


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


class PaginationDriver:
    """Runs the page loop for one term at a time on a fresh tab."""

    def __init__(
        self,
        config: TrackerConfig,
        open_surface: SurfaceFactory,
        *,
        pacer: Pacer,
        progress: ProgressStream,
        engine: SearchEngine = GOOGLE,
        markers: SerpMarkers = DEFAULT_MARKERS,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.config = config
        self._open_surface = open_surface
        self._pacer = pacer
        self._progress = progress
        self._engine = engine
        self._markers = markers
        self._stop_event = stop_event
        self._recovery = BlockRecovery(config.recovery, pacer=pacer, progress=progress, stop_event=stop_event)

    def _check_stop(self) -> None:
        if self._stop_event is not None and self._stop_event.is_set():
            raise RunCancelledError("Stop requested")

    async def check_term(self, term: str, *, warm_up: bool = False) -> TermReport:
        """Check *term* and return its finalized report. Never raises except on stop."""
        acc = TermAccumulator(term)
        self._progress.search(term)
        surface: PageSurface | None = None
        try:
            surface = await self._open_surface()
            if warm_up:
                await self._warm_up(surface)
            await self._page_loop(surface, acc)
        except RunCancelledError:
            raise
        except Exception as exc:
            logger.exception("Term check failed: %s", term)
            self._progress.error(f'Error while checking "{term}": {exc}')
        finally:
            if surface is not None:
                with suppress(Exception):
                    await surface.close()

        report = acc.finalize()
        self._print_report(report, acc.debug_links)
        return report

    async def _page_loop(self, surface: PageSurface, acc: TermAccumulator) -> None:
        max_pages = self.config.max_pages
        for page_num in range(1, max_pages + 1):
            self._check_stop()
            url = self._engine.results_url(acc.term, page_num, self.config.page_size)
            visited = await self._visit(surface, url, page_num)
            if visited is None:
                return
            signals, snapshot = visited
            if page_num == 1:
                acc.debug_links = snapshot.all_links
            logger.debug(
                "Page %d of %r: %d result links, rank=%s",
                page_num,
                acc.term,
                signals.total_results_on_page,
                signals.organic_rank,
            )
            if acc.merge(signals, page_num):
                return
            if page_num < max_pages:
                delay = self._pacer.draw(self._pacer.config.page_delay)
                self._progress.wait(f"Waiting {delay:.1f}s before next page...")
                await self._pacer.sleep(delay)

    async def _visit(self, surface: PageSurface, url: str, page_num: int) -> tuple[PageSignals, PageSnapshot] | None:
        """Load one result page. None when blocking could not be resolved."""
        await surface.goto(url)
        await self._pacer.humanize(surface)
        await surface.wait_for(self._markers.ready, self.config.browser.ready_timeout_ms)

        snapshot = await surface.snapshot()
        result = classify(snapshot)
        if result.is_blocked:
            logger.info("Blocked page on %s: signals=%s", url, ",".join(result.signals))
            outcome = await self._recovery.recover(surface, url)
            if not outcome.resumed:
                return None
            snapshot = outcome.snapshot

        signals = extract_signals(
            snapshot,
            self.config.domain,
            page_num,
            business_name=self.config.business_name,
            engine=self._engine,
            page_size=self.config.page_size,
        )
        return signals, snapshot

    async def _warm_up(self, surface: PageSurface) -> None:
        """Visit the engine home page and dismiss cookie consent. Best-effort."""
        self._progress.info("Warming up browser...")
        try:
            await surface.goto(self._engine.home_url)
            await self._pacer.warm_up()
            await self._pacer.move_pointer(surface)
            consent = self._markers.consent_buttons
            if await surface.wait_for(", ".join(consent), self.config.browser.consent_timeout_ms):
                await self._pacer.before_click()
                if await surface.click_first(consent, self.config.browser.consent_timeout_ms):
                    logger.info("Cookie consent dismissed")
                    await self._pacer.settle()
        except BrowserError:
            raise
        except Exception:
            logger.warning("Warm-up failed, continuing without it", exc_info=True)

    def _print_report(self, report: TermReport, debug_links: tuple[str, ...]) -> None:
        p = self._progress
        p.info(f"AI Summary:   {_yes_no(report.ai_summary)}")
        p.info(f"Map/Places:   {_yes_no(report.places)}")
        p.info(f"Sponsored:    {_yes_no(report.sponsored)}")
        if report.organic_rank is not None:
            p.ok(f"Organic:      #{report.organic_rank} (Page {report.found_on_page})")
            return
        p.info(f"Organic:      Not found in first {self.config.max_pages} pages")
        domain = self.config.domain.lower()
        raw_hit = next((link for link in debug_links if domain in link.lower()), None)
        if raw_hit:
            # Present on the page but not counted as an organic result.
            p.info(f"DEBUG: domain found in raw link list: {raw_hit}")
