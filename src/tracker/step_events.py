"""Bounded hand-off of fired steps to the presentation layer."""
from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, List

from .scheduler import StepEvent


class StepEventQueue:
    """FIFO of fired steps that drops the oldest entries when full.

    The sequencer pushes from its tick and never waits on the consumer;
    a UI thread drains whatever accumulated since its last frame.
    """

    def __init__(self, maxlen: int = 64) -> None:
        if maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._pending: Deque[StepEvent] = deque(maxlen=maxlen)
        self._dropped = 0

    @property
    def maxlen(self) -> int:
        return self._pending.maxlen or 0

    @property
    def dropped(self) -> int:
        """Number of events discarded because the consumer fell behind."""

        return self._dropped

    def push(self, event: StepEvent) -> None:
        if len(self._pending) == self._pending.maxlen:
            self._dropped += 1
        self._pending.append(event)

    def pop_next(self) -> StepEvent | None:
        if not self._pending:
            return None
        return self._pending.popleft()

    def drain(self) -> List[StepEvent]:
        """Return and clear all pending events, oldest first."""

        events: List[StepEvent] = []
        while self._pending:
            events.append(self._pending.popleft())
        return events

    def latest(self) -> StepEvent | None:
        if not self._pending:
            return None
        return self._pending[-1]

    def clear(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[StepEvent]:
        return iter(list(self._pending))


__all__ = ["StepEventQueue"]
