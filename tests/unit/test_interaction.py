"""Unit tests for the human-like interaction simulator."""

from __future__ import annotations

import random

import pytest

from imgharvest.browser.interaction import InteractionSimulator


class FakeMouse:
    def __init__(self) -> None:
        self.wheels: list[tuple[int, int]] = []
        self.moves: list[tuple[int, int, int | None]] = []

    async def wheel(self, dx: int, dy: int) -> None:
        self.wheels.append((dx, dy))

    async def move(self, x: int, y: int, steps: int | None = None) -> None:
        self.moves.append((x, y, steps))


class FakePage:
    def __init__(self) -> None:
        self.mouse = FakeMouse()


class VirtualTime:
    """Sleep that advances a virtual clock instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


def _simulator(seed: int = 7) -> tuple[InteractionSimulator, VirtualTime]:
    vt = VirtualTime()
    return InteractionSimulator(rng=random.Random(seed), sleep=vt.sleep, clock=vt.clock), vt


class TestJitterDelay:
    """Test InteractionSimulator jitter delays."""

    @pytest.mark.asyncio
    async def test_delay_within_bounds(self):
        sim, vt = _simulator()
        for _ in range(50):
            delay = await sim.jitter_delay(200, 600)
            assert 200 <= delay <= 600
        assert all(0.2 <= s <= 0.6 for s in vt.sleeps)

    @pytest.mark.asyncio
    async def test_fixed_range(self):
        sim, vt = _simulator()
        assert await sim.jitter_delay(100, 100) == 100
        assert vt.sleeps == [0.1]


class TestScroll:
    """Test InteractionSimulator scrolling."""

    @pytest.mark.asyncio
    async def test_exact_number_of_downward_passes(self):
        sim, _ = _simulator()
        page = FakePage()
        await sim.scroll(page, passes=20)
        downs = [dy for _, dy in page.mouse.wheels if dy > 0]
        assert len(downs) == 20
        assert all(200 <= dy <= 800 for dy in downs)

    @pytest.mark.asyncio
    async def test_backtracks_are_small_fractions_of_previous_step(self):
        sim, _ = _simulator(seed=3)
        page = FakePage()
        await sim.scroll(page, passes=200)
        wheels = [dy for _, dy in page.mouse.wheels]
        ups = 0
        for prev, cur in zip(wheels, wheels[1:]):
            if cur < 0:
                ups += 1
                assert prev > 0
                assert 0.1 * prev - 1 <= -cur <= 0.3 * prev + 1
        # 18% backtrack probability over 200 passes
        assert 10 < ups < 70

    @pytest.mark.asyncio
    async def test_zero_passes_does_nothing(self):
        sim, vt = _simulator()
        page = FakePage()
        await sim.scroll(page, passes=0)
        assert page.mouse.wheels == []
        assert vt.sleeps == []


class TestMouseWiggle:
    """Test InteractionSimulator mouse movement."""

    @pytest.mark.asyncio
    async def test_bounded_by_duration(self):
        sim, vt = _simulator()
        page = FakePage()
        moves = await sim.mouse_wiggle(page, duration_ms=800)
        assert moves >= 1
        assert len(page.mouse.moves) == moves + 1
        # Last pause may overshoot by at most one 120ms pause
        assert vt.now < 0.8 + 0.121

    @pytest.mark.asyncio
    async def test_moves_stay_inside_box_around_origin(self):
        sim, _ = _simulator(seed=11)
        page = FakePage()
        await sim.mouse_wiggle(page, duration_ms=2000)
        (ox, oy, _), *rest = page.mouse.moves
        assert 100 <= ox <= 600
        assert 100 <= oy <= 400
        for x, y, steps in rest:
            assert abs(x - ox) <= 150
            assert abs(y - oy) <= 100
            assert 2 <= steps <= 6

    @pytest.mark.asyncio
    async def test_zero_duration_only_moves_to_origin(self):
        sim, _ = _simulator()
        page = FakePage()
        assert await sim.mouse_wiggle(page, duration_ms=0) == 0
        assert len(page.mouse.moves) == 1
