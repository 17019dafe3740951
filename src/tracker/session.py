"""Owning context that wires the editor, scheduler, synth and output.

A :class:`DrumMachineSession` is built once at application start and
handed to whatever drives the interface. Grid and knob gestures call
the edit methods; each edit installs a fresh pattern snapshot that is
passed on to the scheduler. Every fired step triggers the active voices
and is reported to the presentation layer through
:attr:`DrumMachineSession.step_events` and any registered listeners.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from audio.engine import EngineConfig
from audio.output import AudioOutputGraph, OutputDevice
from audio.voices import DrumSynth
from domain.models import Pattern, Track, TrackId

from .pattern_editor import PatternChange, PatternEditor
from .scheduler import StepEvent, StepScheduler, monotonic_ms
from .step_events import StepEventQueue

logger = logging.getLogger(__name__)

StepListener = Callable[[StepEvent], None]


class DrumMachineSession:
    """Single owner of every core component for one running instrument."""

    def __init__(
        self,
        *,
        config: Optional[EngineConfig] = None,
        device: Optional[OutputDevice] = None,
        pattern: Optional[Pattern] = None,
        time_source: Optional[Callable[[], float]] = None,
        poll_interval: float = 0.002,
        step_queue_size: int = 64,
    ) -> None:
        self.output = AudioOutputGraph(config, device=device)
        self.synth = DrumSynth(self.output)
        self.editor = PatternEditor(pattern)
        self.scheduler = StepScheduler(
            self.editor.pattern, time_source=time_source or monotonic_ms
        )
        self.step_events = StepEventQueue(step_queue_size)
        self.poll_interval = poll_interval
        self._step_listeners: List[StepListener] = []
        self._drive_task: Optional[asyncio.Task[None]] = None

        self.editor.subscribe(self._on_pattern_changed)
        self.scheduler.on_step(self._on_step)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    @property
    def pattern(self) -> Pattern:
        return self.editor.pattern

    @property
    def is_playing(self) -> bool:
        return self.scheduler.is_running()

    @property
    def current_step(self) -> int:
        return self.scheduler.current_step

    async def play(self) -> None:
        """Unlock output, then start the scheduler and its drive loop.

        Raises :class:`~audio.output.OutputResumeError` if the device does
        not resume; the scheduler stays stopped in that case.
        """

        await self.output.resume()
        self.scheduler.start()
        if self._drive_task is None or self._drive_task.done():
            self._drive_task = asyncio.create_task(self.scheduler.run(self.poll_interval))
            self._drive_task.add_done_callback(self._on_drive_done)
        logger.info("Playback started at step %d", self.scheduler.current_step)

    def stop(self) -> None:
        if not self.scheduler.is_running():
            return
        self.scheduler.stop()
        logger.info("Playback stopped at step %d", self.scheduler.current_step)

    async def toggle_play(self) -> bool:
        """Start or stop playback, returning the new running state."""

        if self.is_playing:
            self.stop()
        else:
            await self.play()
        return self.is_playing

    def tick(self, now_ms: Optional[float] = None) -> Optional[StepEvent]:
        """Drive the scheduler from a host frame loop instead of :meth:`play`."""

        return self.scheduler.tick(now_ms)

    # ------------------------------------------------------------------
    # Pattern edits
    # ------------------------------------------------------------------
    def toggle_step(self, track_id: TrackId | str, step: int) -> Pattern:
        return self.editor.toggle_step(track_id, step)

    def toggle_accent(self, track_id: TrackId | str, step: int) -> Pattern:
        return self.editor.toggle_accent(track_id, step)

    def set_track_param(self, track_id: TrackId | str, name: str, value: float) -> Pattern:
        return self.editor.set_track_param(track_id, name, value)

    def set_tempo(self, bpm: float) -> Pattern:
        return self.editor.set_tempo(bpm)

    def replace_pattern(self, pattern: Pattern) -> Pattern:
        return self.editor.replace(pattern)

    def clear(self) -> Pattern:
        """Install the default pattern, stop playback and rewind to step 0."""

        self.stop()
        pattern = self.editor.clear()
        self.scheduler.reset()
        return pattern

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    @property
    def master_volume(self) -> float:
        return self.output.master_gain.value

    def set_master_volume(self, value: float) -> None:
        self.output.master_gain.value = min(max(float(value), 0.0), 1.0)

    def audition(self, track_id: TrackId | str) -> None:
        """Fire one voice immediately with its current parameters."""

        track = self.editor.track(track_id)
        if track is None:
            logger.debug("Ignoring audition for unknown track %r", track_id)
            return
        self.synth.trigger_track(track)

    def add_step_listener(self, listener: StepListener) -> None:
        self._step_listeners.append(listener)

    def remove_step_listener(self, listener: StepListener) -> None:
        if listener in self._step_listeners:
            self._step_listeners.remove(listener)

    async def close(self) -> None:
        try:
            self.stop()
            task, self._drive_task = self._drive_task, None
            if task is not None and not task.done():
                await task
        finally:
            self.output.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _on_pattern_changed(self, change: PatternChange) -> None:
        if change.kind == "tempo":
            self.scheduler.set_tempo(change.pattern.tempo)
        else:
            self.scheduler.set_pattern(change.pattern)

    def _on_step(self, step: int, tracks: List[Track]) -> None:
        for track in tracks:
            self.synth.trigger_track(track)
        event = self.scheduler.last_event
        if event is None:
            return
        self.step_events.push(event)
        for listener in list(self._step_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Step listener %r failed on step %d", listener, event.step)

    def _on_drive_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Sequencer drive loop stopped on step %d", self.scheduler.current_step, exc_info=exc)
        self.scheduler.stop()
