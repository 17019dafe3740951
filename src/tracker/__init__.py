"""Sequencer-facing utilities: pattern editing, step scheduling, sessions."""

from .pattern_editor import PatternChange, PatternEditor, PatternListener
from .scheduler import STEPS_PER_BEAT, StepCallback, StepEvent, StepScheduler, monotonic_ms
from .session import DrumMachineSession
from .step_events import StepEventQueue

__all__ = [
    "DrumMachineSession",
    "PatternChange",
    "PatternEditor",
    "PatternListener",
    "STEPS_PER_BEAT",
    "StepCallback",
    "StepEvent",
    "StepEventQueue",
    "StepScheduler",
    "monotonic_ms",
]
