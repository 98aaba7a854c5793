from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional


def ease_in_out(t: float) -> float:
    # Cubic ease-in-out on [0, 1].
    if t < 0.5:
        return 4 * t * t * t
    return 1 - ((-2 * t + 2) ** 3) / 2


class Tween:
    """Animates a numeric value from its current value towards a target.

    The value is read through getter and written through setter, so the
    animated attribute can live anywhere. Call step() once per frame (or await
    run()); retargeting mid-animation starts from the current value.
    """

    def __init__(
        self,
        getter: Callable[[], float],
        setter: Callable[[float], None],
        clock: Callable[[], float] = time.monotonic,
        easing: Callable[[float], float] = ease_in_out,
    ) -> None:
        self._getter = getter
        self._setter = setter
        self._clock = clock
        self._easing = easing

        self._start_value = 0.0
        self._target: Optional[float] = None
        self._started_at = 0.0
        self._duration = 0.0

    def tween_to(self, target: float, duration_ms: float) -> None:
        if duration_ms <= 0:
            self._target = None
            self._setter(target)
            return

        self._start_value = self._getter()
        self._target = target
        self._started_at = self._clock()
        self._duration = duration_ms / 1000

    def is_running(self) -> bool:
        return self._target is not None

    def step(self) -> bool:
        """Advance to the current clock time; returns True while still running."""
        if self._target is None:
            return False

        progress = min(1.0, (self._clock() - self._started_at) / self._duration)
        value = self._start_value + (self._target - self._start_value) * self._easing(progress)

        if progress >= 1.0:
            value = self._target
            self._target = None

        self._setter(value)
        return self._target is not None

    def finish(self) -> None:
        if self._target is None:
            return
        target = self._target
        self._target = None
        self._setter(target)

    async def run(self, frame_seconds: float = 1 / 60) -> None:
        while self.step():
            await asyncio.sleep(frame_seconds)
