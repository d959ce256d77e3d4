# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Run orchestrator: one pass over all terms, persisted as one run.

Each finalized TermReport is written as soon as its term ends, so a run
stopped midway keeps everything collected before the stop.  A stop
request observed inside a term discards that term's partial report.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from . import RunSummary
from .driver import PaginationDriver
from .errors import RunCancelledError
from .pacing import Pacer
from .progress import ProgressStream
from .repository import ResultStoreProtocol, utc_timestamp

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Iterates the term list through the pagination driver."""

    def __init__(
        self,
        driver: PaginationDriver,
        store: ResultStoreProtocol,
        *,
        pacer: Pacer,
        progress: ProgressStream,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._driver = driver
        self._store = store
        self._pacer = pacer
        self._progress = progress
        self._stop_event = stop_event

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def run(self, terms: Sequence[str]) -> RunSummary:
        domain = self._driver.config.domain
        run = await self._store.start_run(domain, utc_timestamp())
        summary = RunSummary(run=run)
        logger.info("Run %d started: domain=%s terms=%d", run.id, domain, len(terms))
        self._progress.info(f"Database run ID: {run.id}")

        for i, term in enumerate(terms):
            if self._stop_requested():
                summary.cancelled = True
                break
            try:
                report = await self._driver.check_term(term, warm_up=(i == 0))
            except RunCancelledError:
                summary.cancelled = True
                break
            await self._store.add_result(run.id, report)
            summary.reports.append(report)

            if i < len(terms) - 1:
                delay = self._pacer.draw(self._pacer.config.term_delay)
                self._progress.wait(f"Waiting {delay:.1f}s before next search term...")
                await self._pacer.sleep(delay)

        if summary.cancelled:
            self._progress.skip(f"Check stopped: {len(summary.reports)} of {len(terms)} terms saved (Run #{run.id})")
            logger.info("Run %d stopped after %d terms", run.id, len(summary.reports))
        else:
            self._progress.done(f"Rank check complete: {summary.ranked}/{len(terms)} terms ranked (Run #{run.id})")
            logger.info("Run %d complete: %d terms, %d ranked", run.id, len(summary.reports), summary.ranked)
        return summary
