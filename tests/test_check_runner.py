# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the dashboard's check-process runner.

Uses short-lived ``python -c`` children instead of a real rank check.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from serprank.check_runner import CheckRunner, CheckStatus, OutputEntry, default_check_command
from serprank.errors import CheckAlreadyRunningError


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _text(runner: CheckRunner, kind: str = "stdout") -> str:
    return "".join(e.text for e in runner.output if e.type == kind)


class TestLifecycle:
    async def test_initial_status(self):
        runner = CheckRunner(_py("pass"))
        assert runner.status() == {"status": "idle", "captchaRequired": False, "outputCount": 0, "newOutput": []}
        assert runner.is_active is False

    async def test_completed(self):
        runner = CheckRunner(_py("print('[SEARCH] Searching for: \"a\"'); print('[DONE] Rank check complete')"))
        await runner.start()
        assert runner.state is CheckStatus.RUNNING
        await runner.wait()

        assert runner.state is CheckStatus.COMPLETED
        assert runner.exit_code == 0
        assert runner.is_active is False
        assert "[DONE] Rank check complete" in _text(runner)

    async def test_non_zero_exit_is_error(self):
        runner = CheckRunner(_py("import sys; sys.stderr.write('Error: Term file not found\\n'); sys.exit(1)"))
        await runner.start()
        await runner.wait()

        assert runner.state is CheckStatus.ERROR
        assert runner.exit_code == 1
        assert "Term file not found" in _text(runner, "stderr")

    async def test_child_runs_headed_with_extra_env(self):
        code = "import os; print(os.environ['SERPRANK_HEADLESS'], os.environ['SERPRANK_DB_PATH'])"
        runner = CheckRunner(_py(code), env={"SERPRANK_HEADLESS": "true", "SERPRANK_DB_PATH": "r.db"})
        await runner.start()
        await runner.wait()
        assert _text(runner).split() == ["false", "r.db"]

    async def test_restart_clears_previous_output(self):
        runner = CheckRunner(_py("print('one')"))
        await runner.start()
        await runner.wait()
        await runner.start()
        await runner.wait()
        assert len(runner.output) == 1


class TestSingleInstance:
    async def test_second_start_rejected(self):
        runner = CheckRunner(_py("import time; time.sleep(30)"), stop_grace=0.5)
        await runner.start()
        try:
            with pytest.raises(CheckAlreadyRunningError, match="already running"):
                await runner.start()
        finally:
            await runner.shutdown()

    async def test_stop(self):
        runner = CheckRunner(_py("import time; time.sleep(30)"), stop_grace=0.5)
        await runner.start()

        assert await runner.stop() is True
        await asyncio.wait_for(runner.wait(), timeout=10)

        assert runner.state is CheckStatus.STOPPED
        assert runner.is_active is False

    async def test_stop_when_idle(self):
        runner = CheckRunner(_py("pass"))
        assert await runner.stop() is False
        assert runner.state is CheckStatus.IDLE

    @pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be ignored on Windows")
    async def test_killed_after_grace(self):
        code = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        runner = CheckRunner(_py(code), stop_grace=0.2)
        await runner.start()
        # wait until the SIGTERM handler is installed
        for _ in range(100):
            if runner.output:
                break
            await asyncio.sleep(0.05)

        await runner.stop()
        await asyncio.wait_for(runner.wait(), timeout=10)
        assert runner.state is CheckStatus.STOPPED
        assert runner.exit_code != 0


class TestCaptchaTracking:
    async def _pump(self, runner: CheckRunner, lines: list[str], kind: str = "stdout") -> None:
        reader = asyncio.StreamReader()
        reader.feed_data("".join(lines).encode())
        reader.feed_eof()
        await runner._pump(reader, kind)

    async def test_block_line_sets_flag(self):
        runner = CheckRunner(_py("pass"))
        await self._pump(runner, ["[SEARCH] Searching for: \"a\"\n", "[BLOCKED] BLOCKED: challenge page\n"])
        assert runner.captcha_required is True

    async def test_resumed_clears_flag(self):
        runner = CheckRunner(_py("pass"))
        await self._pump(
            runner,
            [
                "[CAPTCHA] CAPTCHA: waiting for you to solve it\n",
                "[WAIT] Still blocked, waiting... 3s\n",
                "[RESUMED] Challenge cleared after 6s, reloading the page\n",
            ],
        )
        assert runner.captcha_required is False

    @pytest.mark.parametrize(
        "skip_line",
        [
            "[SKIP] Timed out after 120s waiting for the CAPTCHA. Skipping this term.\n",
            "[SKIP] Still BLOCKED after reload. Skipping this term.\n",
        ],
    )
    async def test_abandoned_wait_clears_flag(self, skip_line):
        runner = CheckRunner(_py("pass"))
        await self._pump(
            runner,
            [
                "[BLOCKED] BLOCKED: the search engine is showing a CAPTCHA or blocking page\n",
                "[CAPTCHA] CAPTCHA: waiting for you to solve it in the browser window...\n",
                skip_line,
                "[SEARCH] Searching for: \"carpet cleaning\"\n",
            ],
        )
        assert runner.captcha_required is False

    async def test_stderr_ignored(self):
        runner = CheckRunner(_py("pass"))
        await self._pump(runner, ["BLOCKED in a traceback\n"], kind="stderr")
        assert runner.captcha_required is False
        assert runner.output[0].type == "stderr"

    async def test_status_since(self):
        runner = CheckRunner(_py("pass"))
        await self._pump(runner, ["a\n", "b\n", "c\n"])
        status = runner.status(since=2)
        assert status["outputCount"] == 3
        assert [e["text"] for e in status["newOutput"]] == ["c\n"]
        assert runner.status(since=-5)["newOutput"][0]["text"] == "a\n"


class TestHelpers:
    def test_default_command(self):
        assert default_check_command() == [sys.executable, "-m", "serprank.cli", "check"]

    def test_output_entry_dict(self):
        entry = OutputEntry(type="stdout", text="x", timestamp="2026-01-01T00:00:00+00:00")
        assert entry.to_dict() == {"type": "stdout", "text": "x", "timestamp": "2026-01-01T00:00:00+00:00"}
