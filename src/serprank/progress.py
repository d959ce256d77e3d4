# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Progress stream for operators and the dashboard.

One line per event on stdout, each starting with a bracketed marker.  The
dashboard's status layer detects blocking by substring, so every blocking
event carries ``BLOCKED`` or ``CAPTCHA`` in its line.  Diagnostic logging
goes through ``logging`` to stderr and never mixes with this stream.
"""

from __future__ import annotations

import sys
from enum import StrEnum

from rich.console import Console


class Kind(StrEnum):
    SEARCH = "SEARCH"
    WAIT = "WAIT"
    OK = "OK"
    INFO = "INFO"
    BLOCKED = "BLOCKED"
    CAPTCHA = "CAPTCHA"
    RESUMED = "RESUMED"
    SKIP = "SKIP"
    ERROR = "ERROR"
    DONE = "DONE"


# Kinds the status layer treats as "human intervention needed".
BLOCK_KINDS = frozenset({Kind.BLOCKED, Kind.CAPTCHA})
# Kinds that end a wait on the human: solved, or given up on.
RELEASE_KINDS = frozenset({Kind.RESUMED, Kind.SKIP})

_STYLES: dict[Kind, str] = {
    Kind.OK: "green",
    Kind.DONE: "bold green",
    Kind.RESUMED: "green",
    Kind.BLOCKED: "bold yellow",
    Kind.CAPTCHA: "bold yellow",
    Kind.SKIP: "yellow",
    Kind.ERROR: "bold red",
    Kind.WAIT: "dim",
}


def format_line(kind: Kind, message: str) -> str:
    return f"[{kind.value}] {message}"


class ProgressStream:
    """Writes progress lines and keeps them for inspection."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(file=sys.stdout, markup=False, highlight=False, soft_wrap=True)
        self.lines: list[str] = []

    def emit(self, kind: Kind, message: str) -> str:
        line = format_line(kind, message)
        self.lines.append(line)
        self._console.print(line, style=_STYLES.get(kind))
        self._console.file.flush()
        return line

    def search(self, term: str) -> None:
        self.emit(Kind.SEARCH, f'Searching for: "{term}"')

    def wait(self, message: str) -> None:
        self.emit(Kind.WAIT, message)

    def info(self, message: str) -> None:
        self.emit(Kind.INFO, message)

    def ok(self, message: str) -> None:
        self.emit(Kind.OK, message)

    def blocked(self, message: str) -> None:
        self.emit(Kind.BLOCKED, f"BLOCKED: {message}")

    def captcha(self, message: str) -> None:
        self.emit(Kind.CAPTCHA, f"CAPTCHA: {message}")

    def resumed(self, message: str) -> None:
        self.emit(Kind.RESUMED, message)

    def skip(self, message: str) -> None:
        self.emit(Kind.SKIP, message)

    def error(self, message: str) -> None:
        self.emit(Kind.ERROR, message)

    def done(self, message: str) -> None:
        self.emit(Kind.DONE, message)


def is_block_line(text: str) -> bool:
    """True when a progress line signals the engine is blocking the checker."""
    return any(kind.value in text for kind in BLOCK_KINDS) or "solve" in text
