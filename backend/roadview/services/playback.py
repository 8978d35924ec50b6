"""
Playback controller.

State machine over the timeline index: PAUSED <-> PLAYING. While playing, a
single timer advances the index once per tick period
(max(min_period, base_period / speed)). Reaching the last frame stops and
pauses. With an empty timeline the index stays at NO_FRAME and every
operation is a no-op.
"""

import asyncio
import logging
import math
from typing import Callable, Optional, Protocol

from roadview.config import PlaybackConfig
from roadview.models.session import NO_FRAME, PlaybackState


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class TickScheduler(Protocol):
    """Schedules one delayed callback and returns a cancellable handle."""

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioTickScheduler:
    """Scheduler on the asyncio event loop (loop.call_later)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)


class PlaybackController:
    """Frame index, play state and speed for one timeline."""

    def __init__(
        self,
        config: Optional[PlaybackConfig] = None,
        scheduler: Optional[TickScheduler] = None,
    ):
        self.config = config or PlaybackConfig()
        self._scheduler = scheduler
        self._handle: Optional[TimerHandle] = None

        self._length = 0
        self._index = NO_FRAME
        self._playing = False
        self._speed = 1.0

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def speed_multiplier(self) -> float:
        return self._speed

    @property
    def length(self) -> int:
        return self._length

    @property
    def tick_period_s(self) -> float:
        return max(self.config.min_period_s, self.config.base_period_s / self._speed)

    def state(self) -> PlaybackState:
        return PlaybackState(
            current_index=self._index,
            is_playing=self._playing,
            speed_multiplier=self._speed,
            length=self._length,
            tick_period_s=self.tick_period_s,
        )

    def reset(self, length: int) -> None:
        """Attach to a new timeline: paused at the first frame."""
        self._cancel_timer()
        self._length = max(length, 0)
        self._index = 0 if self._length > 0 else NO_FRAME
        self._playing = False

    def play(self) -> None:
        if self._length == 0 or self._playing:
            return
        self._playing = True
        self._restart_timer()

    def pause(self) -> None:
        self._cancel_timer()
        self._playing = False

    def toggle(self) -> None:
        if self._playing:
            self.pause()
        else:
            self.play()

    def set_index(self, index: int) -> int:
        """Jump to a frame; out-of-range indices are clamped."""
        if self._length == 0:
            return self._index
        self._index = min(max(int(index), 0), self._length - 1)
        return self._index

    def step(self, delta: int) -> int:
        if self._length == 0:
            return self._index
        return self.set_index(self._index + delta)

    def jump_to_start(self) -> int:
        return self.set_index(0)

    def jump_to_end(self) -> int:
        return self.set_index(self._length - 1)

    def tick(self) -> int:
        """Advance one frame; at the last frame stop and pause instead."""
        if self._length == 0 or not self._playing:
            return self._index
        if self._index >= self._length - 1:
            logger.debug("Reached end of timeline, pausing")
            self.pause()
            return self._index
        self._index += 1
        return self._index

    def set_speed(self, multiplier: float) -> None:
        if not isinstance(multiplier, (int, float)) or not math.isfinite(multiplier) or multiplier <= 0:
            raise ValueError(f"Speed multiplier must be a positive number, got {multiplier!r}")
        self._speed = float(multiplier)
        if self._playing:
            self._restart_timer()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        if self._scheduler is None or not self._playing:
            return
        self._handle = self._scheduler.schedule(self.tick_period_s, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_timer(self) -> None:
        self._handle = None
        self.tick()
        if self._playing:
            self._restart_timer()
