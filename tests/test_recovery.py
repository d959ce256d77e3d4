# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the block-recovery state machine."""

from __future__ import annotations

import asyncio

import pytest

from serprank import PageSnapshot
from serprank.config import RecoveryConfig
from serprank.errors import BrowserError, RunCancelledError
from serprank.progress import ProgressStream
from serprank.recovery import BlockRecovery, RecoveryState
from tests._fakes import FakeSurface, RecordingSleep, blocked_page, make_pacer, other_results, results_page

URL = "https://www.google.com/search?q=office+cleaning&start=0"


async def _setup(script: list, *, max_wait: float = 12.0, stop_event: asyncio.Event | None = None, sleep=None):
    sleep = sleep or RecordingSleep()
    progress = ProgressStream()
    recovery = BlockRecovery(
        RecoveryConfig(poll_interval=3.0, max_wait=max_wait),
        pacer=make_pacer(sleep=sleep),
        progress=progress,
        stop_event=stop_event,
    )
    surface = FakeSurface({URL: script})
    await surface.goto(URL)
    return recovery, surface, sleep, progress


class TestResumed:
    async def test_resumes_after_challenge_cleared(self):
        clean = results_page(other_results(5), url=URL)
        recovery, surface, sleep, progress = await _setup([blocked_page(), blocked_page(), clean])

        outcome = await recovery.recover(surface, URL)

        assert outcome.resumed
        assert outcome.waited == 9.0
        assert outcome.snapshot is clean
        assert sleep.calls[:3] == [3.0, 3.0, 3.0]
        # reload after clearing
        assert surface.visits == [URL, URL]
        assert recovery.transitions == [RecoveryState.BLOCKED, RecoveryState.RECOVERING, RecoveryState.RESUMED]

    async def test_progress_lines(self):
        recovery, surface, _, progress = await _setup([blocked_page(), results_page(url=URL)])
        await recovery.recover(surface, URL)

        assert progress.lines[0].startswith("[BLOCKED] BLOCKED:")
        assert progress.lines[1].startswith("[CAPTCHA] CAPTCHA:")
        assert progress.lines[2] == "[WAIT] Still blocked, waiting... 3s"
        assert progress.lines[3] == "[RESUMED] Challenge cleared after 6s, reloading the page"

    async def test_snapshot_failure_while_polling_counts_as_blocked(self):
        recovery, surface, _, _ = await _setup([RuntimeError("Execution context was destroyed"), results_page(url=URL)])
        outcome = await recovery.recover(surface, URL)
        assert outcome.resumed
        assert outcome.waited == 6.0

    async def test_blank_page_is_not_resolution(self):
        blank = PageSnapshot(url=URL, title="", body_text="")
        recovery, surface, _, _ = await _setup([blank, results_page(url=URL)])
        outcome = await recovery.recover(surface, URL)
        assert outcome.waited == 6.0


class TestAborted:
    async def test_times_out(self):
        recovery, surface, sleep, progress = await _setup([blocked_page()])

        outcome = await recovery.recover(surface, URL)

        assert outcome.state is RecoveryState.ABORTED
        assert outcome.snapshot is None
        assert outcome.waited == 12.0
        assert sleep.calls == [3.0, 3.0, 3.0, 3.0]
        assert progress.lines[-1] == "[SKIP] Timed out after 12s waiting for the CAPTCHA. Skipping this term."
        # no reload on timeout
        assert surface.visits == [URL]

    async def test_still_blocked_after_reload(self):
        recovery, surface, _, progress = await _setup([results_page(url=URL), blocked_page()])

        outcome = await recovery.recover(surface, URL)

        assert outcome.state is RecoveryState.ABORTED
        assert outcome.snapshot is None
        assert progress.lines[-1] == "[SKIP] Still BLOCKED after reload. Skipping this term."
        assert recovery.transitions[-2:] == [RecoveryState.RESUMED, RecoveryState.ABORTED]

    async def test_browser_error_propagates(self):
        recovery, surface, _, _ = await _setup([BrowserError("Browser closed during evaluation: Target closed")])
        with pytest.raises(BrowserError):
            await recovery.recover(surface, URL)

    async def test_state_reset_between_attempts(self):
        recovery, surface, _, _ = await _setup([blocked_page()], max_wait=3.0)
        await recovery.recover(surface, URL)
        await recovery.recover(surface, URL)
        assert recovery.transitions == [RecoveryState.BLOCKED, RecoveryState.RECOVERING, RecoveryState.ABORTED]


class _StopAfterFirstSleep(RecordingSleep):
    def __init__(self, event: asyncio.Event) -> None:
        super().__init__()
        self.event = event

    async def __call__(self, seconds: float) -> None:
        await super().__call__(seconds)
        self.event.set()


class TestStopRequested:
    async def test_stop_during_polling_raises(self):
        stop = asyncio.Event()
        sleep = _StopAfterFirstSleep(stop)
        recovery, surface, _, progress = await _setup([blocked_page()], max_wait=120.0, stop_event=stop, sleep=sleep)

        with pytest.raises(RunCancelledError):
            await recovery.recover(surface, URL)

        assert sleep.calls == [3.0]
        assert not any(line.startswith("[SKIP]") for line in progress.lines)

    async def test_stop_already_set_skips_polling(self):
        stop = asyncio.Event()
        stop.set()
        recovery, surface, sleep, _ = await _setup([blocked_page()], stop_event=stop)

        with pytest.raises(RunCancelledError):
            await recovery.recover(surface, URL)

        assert sleep.calls == []
        assert surface.snapshots_taken == 0
