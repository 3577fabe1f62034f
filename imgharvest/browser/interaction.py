"""Human-like interaction timing for rendered pages.

Produces randomized, time-bounded scroll and pointer-movement sequences.
``scroll`` is bounded by a fixed pass count and ``mouse_wiggle`` by wall-clock
time, so neither can run indefinitely.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from playwright.async_api import Page

# Probability of a small corrective upward scroll after each downward step
BACKTRACK_PROBABILITY = 0.18


class InteractionSimulator:
    """Randomized delays, scrolling, and mouse movement.

    ``rng``, ``sleep`` (seconds) and ``clock`` (seconds) are injectable so
    sequences can be reproduced in tests without real waiting.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock

    def _uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    async def jitter_delay(self, min_ms: float, max_ms: float) -> float:
        """Sleep for a uniformly random duration in ``[min_ms, max_ms]``.

        Returns the delay slept, in milliseconds.
        """
        delay_ms = round(self._uniform(min_ms, max_ms))
        await self._sleep(delay_ms / 1000.0)
        return delay_ms

    async def scroll(
        self,
        page: "Page",
        passes: int = 8,
        step_range: tuple[int, int] = (200, 800),
        pause_range: tuple[int, int] = (150, 700),
    ) -> None:
        """Scroll down *passes* times with random steps and pauses.

        Each pass has an 18% chance of a small upward correction of 10–30%
        of the downward step, followed by a short pause.
        """
        for _ in range(passes):
            step = round(self._uniform(*step_range))
            await page.mouse.wheel(0, step)
            await self.jitter_delay(*pause_range)

            if self._rng.random() < BACKTRACK_PROBABILITY:
                await page.mouse.wheel(0, -round(step * self._uniform(0.1, 0.3)))
                await self.jitter_delay(80, 180)

    async def mouse_wiggle(self, page: "Page", duration_ms: float = 800) -> int:
        """Move the pointer around a random origin until *duration_ms* elapses.

        Returns the number of moves made after reaching the origin.
        """
        start = self._clock()
        box_w, box_h = 300, 200
        origin_x = round(self._uniform(100, 600))
        origin_y = round(self._uniform(100, 400))
        await page.mouse.move(origin_x, origin_y)

        moves = 0
        while (self._clock() - start) * 1000 < duration_ms:
            x = origin_x + round(self._uniform(-box_w / 2, box_w / 2))
            y = origin_y + round(self._uniform(-box_h / 2, box_h / 2))
            await page.mouse.move(x, y, steps=round(self._uniform(2, 6)))
            moves += 1
            await self.jitter_delay(30, 120)

        return moves
