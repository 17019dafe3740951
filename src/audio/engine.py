"""Core audio engine structures: configuration and timestamped parameters."""
from __future__ import annotations

import bisect
from dataclasses import dataclass
import math
from typing import List, Optional, Tuple

import numpy as np


@dataclass
class EngineConfig:
    """Global audio configuration shared across nodes and the output graph."""

    sample_rate: int = 48_000
    block_size: int = 512
    channels: int = 2
    master_gain: float = 0.7
    noise_seconds: float = 2.0
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if self.block_size <= 0:
            raise ValueError("block_size must be positive")
        if self.channels <= 0:
            raise ValueError("channels must be positive")
        if self.noise_seconds <= 0.0:
            raise ValueError("noise_seconds must be positive")

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2.0


@dataclass
class ParameterSpec:
    """Describes a parameter in musician-facing language."""

    name: str
    display_name: str
    default: float
    minimum: float
    maximum: float
    unit: str = ""
    description: str = ""

    def clamp(self, value: float) -> float:
        """Ensure *value* stays within the declared bounds."""

        if value < self.minimum:
            return self.minimum
        if value > self.maximum:
            return self.maximum
        return value


@dataclass(frozen=True)
class ParamEvent:
    """A scheduled value change; ramps end at ``time``."""

    kind: str
    time: float
    value: float


_SET = "set"
_LINEAR = "linear"
_EXPONENTIAL = "exponential"


class AudioParam:
    """Automatable parameter following Web Audio timeline semantics.

    Events are kept sorted by time. A ramp starts from the previous event
    (or the intrinsic value at time zero) and lands on its target at its
    own time; after the last event the final value is held. Exponential
    ramps cannot start from or target zero: a zero target raises and a
    zero (or sign-flipping) start holds the previous value until the ramp
    end time.
    """

    def __init__(self, spec: ParameterSpec) -> None:
        self.spec = spec
        self._value = float(spec.clamp(spec.default))
        self._events: List[ParamEvent] = []

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def value(self) -> float:
        """Intrinsic value used before the first scheduled event."""

        return self._value

    @value.setter
    def value(self, value: float) -> None:
        self._value = float(self.spec.clamp(float(value)))

    @property
    def events(self) -> Tuple[ParamEvent, ...]:
        return tuple(self._events)

    def set_value_at_time(self, value: float, time: float) -> "AudioParam":
        self._insert(ParamEvent(_SET, float(time), float(self.spec.clamp(value))))
        return self

    def linear_ramp_to_value_at_time(self, value: float, end_time: float) -> "AudioParam":
        self._insert(ParamEvent(_LINEAR, float(end_time), float(self.spec.clamp(value))))
        return self

    def exponential_ramp_to_value_at_time(self, value: float, end_time: float) -> "AudioParam":
        if value == 0.0:
            raise ValueError(f"Exponential ramp on {self.name!r} cannot target zero")
        self._insert(ParamEvent(_EXPONENTIAL, float(end_time), float(self.spec.clamp(value))))
        return self

    def cancel_scheduled_values(self, time: float) -> None:
        """Drop every event scheduled at or after *time*."""

        self._events = [event for event in self._events if event.time < time]

    def value_at(self, time: float) -> float:
        return float(self._curve(np.array([time], dtype=np.float64))[0])

    def render(self, start_time: float, frames: int, sample_rate: int) -> np.ndarray:
        """Return the per-sample curve for a block beginning at *start_time*."""

        times = start_time + np.arange(frames, dtype=np.float64) / float(sample_rate)
        return self._curve(times)

    def _insert(self, event: ParamEvent) -> None:
        if not math.isfinite(event.time) or not math.isfinite(event.value):
            raise ValueError(f"Non-finite automation for {self.name!r}: {event}")
        bisect.insort(self._events, event, key=lambda item: item.time)

    def _curve(self, times: np.ndarray) -> np.ndarray:
        output = np.full(times.shape, self._value, dtype=np.float64)
        previous_time = 0.0
        previous_value = self._value
        for event in self._events:
            if event.kind != _SET:
                span = event.time - previous_time
                segment = (times >= previous_time) & (times < event.time)
                if span > 0.0 and segment.any():
                    progress = (times[segment] - previous_time) / span
                    if event.kind == _LINEAR:
                        output[segment] = previous_value + (event.value - previous_value) * progress
                    elif previous_value == 0.0 or previous_value * event.value < 0.0:
                        output[segment] = previous_value
                    else:
                        output[segment] = previous_value * np.power(
                            event.value / previous_value, progress
                        )
            output[times >= event.time] = event.value
            previous_time = event.time
            previous_value = event.value
        return output


__all__ = [
    "AudioParam",
    "EngineConfig",
    "ParamEvent",
    "ParameterSpec",
]
