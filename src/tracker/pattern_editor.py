"""Copy-on-write pattern editing for the step grid and voice controls."""
from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Callable, List

from domain.models import (
    STEPS_PER_PATTERN,
    TRACK_ORDER,
    Pattern,
    Track,
    TrackId,
    create_default_pattern,
    resolve_track_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternChange:
    """Record describing one committed edit and the snapshot it produced."""

    kind: str
    revision: int
    pattern: Pattern
    track_id: TrackId | None = None
    step: int | None = None
    parameter: str | None = None


PatternListener = Callable[[PatternChange], None]


class PatternEditor:
    """Owns the authoritative pattern and replaces it wholesale on every edit.

    Each edit clones the current snapshot, changes the clone, installs it
    and notifies subscribers. Snapshots handed out earlier are never
    touched again, so a sequencer reading one mid-tick always sees a
    consistent pattern. Edits addressed to unknown tracks or out-of-range
    steps are ignored and produce no revision.
    """

    def __init__(self, pattern: Pattern | None = None) -> None:
        self._pattern = (pattern or create_default_pattern()).clone()
        self._revision = 0
        self._listeners: List[PatternListener] = []

    @property
    def pattern(self) -> Pattern:
        """Return the current snapshot; treat it as read-only."""

        return self._pattern

    @property
    def revision(self) -> int:
        return self._revision

    def subscribe(self, listener: PatternListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: PatternListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def track(self, track_id: TrackId | str) -> Track | None:
        return self._pattern.track(track_id)

    def toggle_step(self, track_id: TrackId | str, step: int) -> Pattern:
        """Flip the active flag of (*track_id*, *step*)."""

        located = self._locate(track_id, step)
        if located is None:
            return self._pattern
        resolved, index = located
        pattern = self._pattern.clone()
        cell = pattern.tracks[index].steps[step]
        cell.active = not cell.active
        return self._commit(pattern, "step", track_id=resolved, step=step)

    def toggle_accent(self, track_id: TrackId | str, step: int) -> Pattern:
        """Flip the accent flag; inactive steps are left untouched."""

        located = self._locate(track_id, step)
        if located is None:
            return self._pattern
        resolved, index = located
        if not self._pattern.tracks[index].steps[step].active:
            return self._pattern
        pattern = self._pattern.clone()
        cell = pattern.tracks[index].steps[step]
        cell.accent = not cell.accent
        return self._commit(pattern, "accent", track_id=resolved, step=step)

    def set_track_param(self, track_id: TrackId | str, name: str, value: float) -> Pattern:
        """Store *value* (clamped to [0, 1]) under *name* for the track."""

        resolved = resolve_track_id(track_id)
        if resolved is None:
            logger.debug("Ignoring parameter edit for unknown track %r", track_id)
            return self._pattern
        try:
            amount = float(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric value %r for %s.%s", value, resolved.value, name)
            return self._pattern
        if not math.isfinite(amount):
            logger.debug("Ignoring non-finite value for %s.%s", resolved.value, name)
            return self._pattern
        pattern = self._pattern.clone()
        track = pattern.tracks[TRACK_ORDER.index(resolved)]
        track.params[name] = min(max(amount, 0.0), 1.0)
        return self._commit(pattern, "param", track_id=resolved, parameter=name)

    def set_tempo(self, bpm: float) -> Pattern:
        try:
            tempo = float(bpm)
        except (TypeError, ValueError):
            tempo = math.nan
        if not math.isfinite(tempo) or tempo <= 0.0:
            logger.warning("Ignoring invalid tempo %r", bpm)
            return self._pattern
        pattern = self._pattern.clone()
        pattern.tempo = tempo
        return self._commit(pattern, "tempo")

    def replace(self, pattern: Pattern) -> Pattern:
        """Install a copy of *pattern* as the new authoritative snapshot."""

        return self._commit(pattern.clone(), "replace")

    def clear(self) -> Pattern:
        """Install the power-on default pattern."""

        return self._commit(create_default_pattern(), "clear")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _locate(self, track_id: TrackId | str, step: int) -> tuple[TrackId, int] | None:
        resolved = resolve_track_id(track_id)
        if resolved is None:
            logger.debug("Ignoring edit for unknown track %r", track_id)
            return None
        if isinstance(step, bool) or not isinstance(step, int) or not 0 <= step < STEPS_PER_PATTERN:
            logger.debug("Ignoring edit for out-of-range step %r on %s", step, resolved.value)
            return None
        return resolved, TRACK_ORDER.index(resolved)

    def _commit(
        self,
        pattern: Pattern,
        kind: str,
        *,
        track_id: TrackId | None = None,
        step: int | None = None,
        parameter: str | None = None,
    ) -> Pattern:
        self._pattern = pattern
        self._revision += 1
        change = PatternChange(
            kind=kind,
            revision=self._revision,
            pattern=pattern,
            track_id=track_id,
            step=step,
            parameter=parameter,
        )
        for listener in list(self._listeners):
            listener(change)
        return pattern


__all__ = ["PatternChange", "PatternEditor", "PatternListener"]
