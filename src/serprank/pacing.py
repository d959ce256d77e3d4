# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Human-mimicking pacing: randomized delays, pointer movement, scrolling.

Both the random source and the sleep coroutine are injectable so tests can
run the full driver deterministically and without real waiting.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from .config import DelayRange, PacingConfig
from .surface import PageSurface

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Pacer:
    """Draws and performs all randomized waits of a run."""

    def __init__(
        self,
        config: PacingConfig | None = None,
        *,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or PacingConfig()
        self.rng = rng or random.Random()
        self._sleep = sleep

    def draw(self, delay: DelayRange) -> float:
        """Pick a delay in seconds from *delay* without sleeping."""
        return self.rng.uniform(delay.low, delay.high)

    async def sleep(self, seconds: float) -> None:
        await self._sleep(seconds)

    async def pause(self, delay: DelayRange) -> float:
        """Sleep for a random duration within *delay*; return it."""
        seconds = self.draw(delay)
        await self._sleep(seconds)
        return seconds

    async def settle(self) -> float:
        return await self.pause(self.config.settle_delay)

    async def warm_up(self) -> float:
        return await self.pause(self.config.warmup_delay)

    async def before_click(self) -> float:
        return await self.pause(self.config.consent_delay)

    async def move_pointer(self, surface: PageSurface) -> None:
        """Move the pointer to a random point inside the central 80% of the viewport."""
        width, height = surface.viewport
        x = width * 0.1 + self.rng.random() * width * 0.8
        y = height * 0.1 + self.rng.random() * height * 0.8
        steps = self.rng.randint(*self.config.pointer_steps)
        await surface.move_pointer(x, y, steps)

    async def scroll(self, surface: PageSurface) -> None:
        await surface.scroll(self.rng.randint(*self.config.scroll_px))
        await self._sleep(0.5 + self.rng.random() * 0.5)

    async def humanize(self, surface: PageSurface) -> None:
        """Settle, then a pointer movement and a scroll, as a reader would."""
        await self.settle()
        await self.move_pointer(surface)
        await self.scroll(surface)
