# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Check runner: owns the rank-check child process for the dashboard.

The check runs as a separate OS process (``python -m serprank.cli check``)
so the dashboard can answer status queries while the browser is busy.
Only one check may run at a time: it exclusively owns the persistent
browser profile.

State lives on the ``CheckRunner`` instance, never in module globals.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from .errors import CheckAlreadyRunningError
from .progress import RELEASE_KINDS, format_line, is_block_line

logger = logging.getLogger(__name__)

DEFAULT_STOP_GRACE = 15.0  # seconds between SIGTERM and SIGKILL

_RELEASE_MARKERS = tuple(format_line(kind, "") for kind in RELEASE_KINDS)


class CheckStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class OutputEntry:
    """One chunk of child-process output."""

    type: str  # "stdout" | "stderr"
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text, "timestamp": self.timestamp}


def default_check_command() -> list[str]:
    return [sys.executable, "-m", "serprank.cli", "check"]


class CheckRunner:
    """Starts, stops, and reports on the single rank-check process."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        stop_grace: float = DEFAULT_STOP_GRACE,
    ) -> None:
        self.command = list(command) if command else default_check_command()
        self.cwd = cwd
        self.extra_env = dict(env or {})
        self.stop_grace = stop_grace

        self.state = CheckStatus.IDLE
        self.captcha_required = False
        self.output: list[OutputEntry] = []
        self.exit_code: int | None = None

        self._proc: asyncio.subprocess.Process | None = None
        self._watcher: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        """True while a child process exists (including a stop in progress)."""
        return self._proc is not None

    async def start(self) -> None:
        """Spawn the check process.

        Raises:
            CheckAlreadyRunningError: If a check process is still alive.
        """
        async with self._lock:
            if self.is_active:
                raise CheckAlreadyRunningError("Check already running")

            self.output = []
            self.captcha_required = False
            self.exit_code = None

            # A human must be able to solve a CAPTCHA in the window.
            env = {**os.environ, **self.extra_env, "SERPRANK_HEADLESS": "false"}
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
            )
            self._proc = proc
            self.state = CheckStatus.RUNNING
            self._watcher = asyncio.create_task(self._watch(proc))
            logger.info("Check process started (pid=%s)", proc.pid)

    async def _pump(self, stream: asyncio.StreamReader | None, kind: str) -> None:
        if stream is None:
            return
        async for raw in stream:
            text = raw.decode(errors="replace")
            self.output.append(OutputEntry(type=kind, text=text))
            if kind != "stdout":
                continue
            if text.startswith(_RELEASE_MARKERS):
                self.captcha_required = False
            elif is_block_line(text):
                self.captcha_required = True

    async def _watch(self, proc: asyncio.subprocess.Process) -> None:
        await asyncio.gather(self._pump(proc.stdout, "stdout"), self._pump(proc.stderr, "stderr"))
        code = await proc.wait()
        self.exit_code = code
        if self.state is not CheckStatus.STOPPED:
            self.state = CheckStatus.COMPLETED if code == 0 else CheckStatus.ERROR
        self.captcha_required = False
        self._proc = None
        logger.info("Check process exited with code %s", code)

    async def stop(self) -> bool:
        """Ask the check to stop. Returns False when nothing is running.

        SIGTERM lets the checker finish the current page visit; it is
        killed if still alive after ``stop_grace`` seconds.
        """
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return False
        self.state = CheckStatus.STOPPED
        proc.terminate()
        asyncio.get_running_loop().call_later(self.stop_grace, self._kill_if_alive, proc)
        logger.info("Check process %s asked to stop", proc.pid)
        return True

    @staticmethod
    def _kill_if_alive(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            logger.warning("Check process %s ignored SIGTERM, killing", proc.pid)
            with suppress(ProcessLookupError):
                proc.kill()

    async def wait(self) -> None:
        """Wait for the current check process (if any) to exit."""
        if self._watcher is not None:
            await self._watcher

    async def shutdown(self) -> None:
        """Stop any running check and wait for it. Used on server exit."""
        if await self.stop():
            await self.wait()

    def status(self, since: int = 0) -> dict:
        """Status snapshot with output entries after index *since*."""
        since = max(since, 0)
        return {
            "status": self.state.value,
            "captchaRequired": self.captcha_required,
            "outputCount": len(self.output),
            "newOutput": [e.to_dict() for e in self.output[since:]],
        }
