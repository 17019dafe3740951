"""Drift-correcting sixteen-step scheduler.

The scheduler does not own a timer. A host calls :meth:`StepScheduler.tick`
as often as it likes (an animation frame, an asyncio loop, a UI idle
hook); each tick compares the elapsed time since the last fired step with
the tempo-derived step length and fires at most one step. The last-fired
timestamp is reset to the tick time rather than the ideal boundary, so
host jitter is absorbed instead of accumulated into bursts of catch-up
steps. Correctness depends only on elapsed time, never on tick period.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import math
import time
from typing import Callable, List, Optional, Tuple

from domain.models import STEPS_PER_PATTERN, Pattern, Track, TrackId

logger = logging.getLogger(__name__)

STEPS_PER_BEAT = 4

StepCallback = Callable[[int, List[Track]], None]


def monotonic_ms() -> float:
    return time.monotonic() * 1_000.0


@dataclass(frozen=True)
class StepEvent:
    """A fired step boundary."""

    step: int
    track_ids: Tuple[TrackId, ...]
    fired_at_ms: float


class StepScheduler:
    """Advances a wrapping step cursor at the pattern tempo.

    States are *stopped* and *running*. Stopping keeps the cursor so a
    later :meth:`start` resumes where playback left off; only
    :meth:`reset` returns it to step 0.
    """

    def __init__(
        self,
        pattern: Pattern,
        *,
        time_source: Callable[[], float] = monotonic_ms,
        steps_per_beat: int = STEPS_PER_BEAT,
    ) -> None:
        if steps_per_beat <= 0:
            raise ValueError("steps_per_beat must be positive")
        self._pattern = pattern
        self._time_source = time_source
        self._steps_per_beat = steps_per_beat
        self._current_step = 0
        self._running = False
        self._last_step_time = 0.0
        self._callback: Optional[StepCallback] = None
        self._last_event: Optional[StepEvent] = None

    @property
    def pattern(self) -> Pattern:
        return self._pattern

    @property
    def tempo(self) -> float:
        return self._pattern.tempo

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def step_duration_ms(self) -> float:
        """Length of one sixteenth note at the current tempo."""

        return 60_000.0 / self._pattern.tempo / self._steps_per_beat

    @property
    def last_event(self) -> Optional[StepEvent]:
        """The most recently fired step, set before the step callback runs."""

        return self._last_event

    def is_running(self) -> bool:
        return self._running

    def get_current_step(self) -> int:
        return self._current_step

    def on_step(self, callback: Optional[StepCallback]) -> None:
        """Register the handler receiving ``(step_index, active_tracks)``."""

        self._callback = callback

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._last_step_time = self._time_source()
        logger.debug("Scheduler started at step %d (%.2f BPM)", self._current_step, self.tempo)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.debug("Scheduler stopped at step %d", self._current_step)

    def reset(self) -> None:
        """Return the cursor to step 0 without changing the run state."""

        self._current_step = 0

    def set_tempo(self, bpm: float) -> None:
        """Change tempo without stopping; applies from the next tick."""

        try:
            tempo = float(bpm)
        except (TypeError, ValueError):
            tempo = math.nan
        if not math.isfinite(tempo) or tempo <= 0.0:
            logger.warning("Ignoring invalid tempo %r", bpm)
            return
        self._pattern = self._pattern.model_copy(update={"tempo": tempo})

    def set_pattern(self, pattern: Pattern) -> None:
        """Swap the pattern, keeping the cursor, the run state and step timing.

        The last-fired timestamp is kept; only an explicit :meth:`start`
        restarts step timing.
        """

        was_running = self._running
        current_step = self._current_step
        last_step_time = self._last_step_time
        if was_running:
            self.stop()
        self._pattern = pattern
        self._current_step = current_step
        if was_running:
            self.start()
            self._last_step_time = last_step_time

    def active_tracks(self, step: int) -> List[Track]:
        return self._pattern.active_tracks(step)

    def tick(self, now_ms: Optional[float] = None) -> Optional[StepEvent]:
        """Fire at most one step if a full step length has elapsed."""

        if not self._running:
            return None
        now = self._time_source() if now_ms is None else now_ms
        if now - self._last_step_time < self.step_duration_ms:
            return None

        step = self._current_step
        tracks = self.active_tracks(step)
        event = StepEvent(
            step=step,
            track_ids=tuple(track.id for track in tracks),
            fired_at_ms=now,
        )
        self._last_event = event
        if self._callback is not None:
            self._callback(step, tracks)
        self._current_step = (step + 1) % STEPS_PER_PATTERN
        self._last_step_time = now
        logger.debug("Fired step %d with %d active tracks", step, len(tracks))
        return event

    async def run(self, poll_interval: float = 0.002) -> None:
        """Tick from the running event loop until the scheduler stops."""

        while self._running:
            self.tick()
            await asyncio.sleep(poll_interval)


__all__ = ["STEPS_PER_BEAT", "StepCallback", "StepEvent", "StepScheduler", "monotonic_ms"]
