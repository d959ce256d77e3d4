# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageSurface: the browser capabilities the rank-check core consumes.

Runtime-checkable Protocol, same pattern as ``ResultStoreProtocol``.
``browser_session.PlaywrightSurface`` is the production implementation;
tests use a scripted fake.  None of these methods may raise on a plain
timeout: navigation and waits report failure through their return value.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from . import PageSnapshot


@runtime_checkable
class PageSurface(Protocol):
    """One browser tab, driven sequentially."""

    @property
    def viewport(self) -> tuple[int, int]: ...

    async def goto(self, url: str) -> bool:
        """Navigate and wait for the network to settle. False on timeout."""
        ...

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        """Wait for *selector* to appear. False on timeout."""
        ...

    async def snapshot(self) -> PageSnapshot: ...

    async def move_pointer(self, x: float, y: float, steps: int) -> None: ...

    async def scroll(self, delta_y: int) -> None: ...

    async def click_first(self, selectors: tuple[str, ...], timeout_ms: int) -> bool:
        """Click the first element matching any selector. False when none appears."""
        ...

    async def close(self) -> None: ...
