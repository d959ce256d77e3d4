# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Block-recovery protocol: wait for a human to clear a challenge.

State machine::

    NORMAL ──blocked page──▶ BLOCKED ──▶ RECOVERING ──not blocked──▶ RESUMED
                                             │                          │
                                             └──max_wait reached──▶ ABORTED ◀──still blocked after reload

Polling sleeps ``poll_interval`` between checks (never busy-loops) and
gives up after ``max_wait``.  A stop request raises ``RunCancelledError``
before the next poll.  A page with no results container counts as
still blocked while polling.  After the challenge clears, the page is
re-navigated so extraction runs on a clean load; if that load is blocked
again the term is aborted.  The protocol never fabricates signals: on
ABORTED it returns no snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum

from . import PageSnapshot
from .classifier import classify
from .config import RecoveryConfig
from .errors import BrowserError, RunCancelledError
from .pacing import Pacer
from .progress import ProgressStream
from .surface import PageSurface

logger = logging.getLogger(__name__)


class RecoveryState(StrEnum):
    NORMAL = "normal"
    BLOCKED = "blocked"
    RECOVERING = "recovering"
    RESUMED = "resumed"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class RecoveryOutcome:
    """Terminal result of one recovery attempt."""

    state: RecoveryState  # RESUMED or ABORTED
    waited: float  # seconds spent polling
    snapshot: PageSnapshot | None = None  # clean reload, only when RESUMED

    @property
    def resumed(self) -> bool:
        return self.state is RecoveryState.RESUMED


class BlockRecovery:
    """Runs the recovery state machine for one blocked page at a time."""

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        *,
        pacer: Pacer,
        progress: ProgressStream,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.config = config or RecoveryConfig()
        self._pacer = pacer
        self._progress = progress
        self._stop_event = stop_event
        self.state = RecoveryState.NORMAL
        self.transitions: list[RecoveryState] = []

    def _enter(self, state: RecoveryState) -> None:
        logger.debug("Recovery state %s -> %s", self.state, state)
        self.state = state
        self.transitions.append(state)

    async def _still_blocked(self, surface: PageSurface) -> bool:
        try:
            snapshot = await surface.snapshot()
        except BrowserError:
            raise
        except Exception:
            # The page is often mid-navigation while someone solves the challenge.
            logger.debug("Snapshot failed while polling, treating as blocked", exc_info=True)
            return True
        return classify(snapshot, require_results=True).is_blocked

    async def recover(self, surface: PageSurface, url: str) -> RecoveryOutcome:
        """Wait for the challenge on *surface* to clear, then reload *url*."""
        self.state = RecoveryState.NORMAL
        self.transitions = []

        self._enter(RecoveryState.BLOCKED)
        self._progress.blocked("the search engine is showing a CAPTCHA or blocking page")
        self._progress.captcha("waiting for you to solve it in the browser window...")

        self._enter(RecoveryState.RECOVERING)
        interval = self.config.poll_interval
        waited = 0.0
        still_blocked = True
        while waited < self.config.max_wait and still_blocked:
            if self._stop_event is not None and self._stop_event.is_set():
                raise RunCancelledError("Stop requested while waiting for the challenge")
            await self._pacer.sleep(interval)
            waited += interval
            still_blocked = await self._still_blocked(surface)
            if still_blocked:
                self._progress.wait(f"Still blocked, waiting... {int(waited)}s")

        if still_blocked:
            self._enter(RecoveryState.ABORTED)
            self._progress.skip(f"Timed out after {int(waited)}s waiting for the CAPTCHA. Skipping this term.")
            return RecoveryOutcome(state=RecoveryState.ABORTED, waited=waited)

        self._enter(RecoveryState.RESUMED)
        self._progress.resumed(f"Challenge cleared after {int(waited)}s, reloading the page")
        await surface.goto(url)
        await self._pacer.settle()
        snapshot = await surface.snapshot()

        if classify(snapshot).is_blocked:
            self._enter(RecoveryState.ABORTED)
            self._progress.skip("Still BLOCKED after reload. Skipping this term.")
            return RecoveryOutcome(state=RecoveryState.ABORTED, waited=waited)

        return RecoveryOutcome(state=RecoveryState.RESUMED, waited=waited, snapshot=snapshot)
