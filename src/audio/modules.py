"""Audio graph nodes used to assemble percussion voices.

Nodes process mono ``float32`` blocks addressed by absolute audio-clock
time, so every scheduled change lands on the sample it was scheduled
for regardless of how blocks are sized. A node pulls and sums all of its
inputs; each voice is a small tree of nodes feeding one output node.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .effects import FILTER_TYPES, Biquad, CompressorSettings, SoftKneeCompressor, design_biquad
from .engine import AudioParam, EngineConfig, ParameterSpec

OSCILLATOR_TYPES = ("sine", "square", "triangle", "sawtooth")

_TWO_PI = 2.0 * math.pi


class AudioNode:
    """Base node: sums its inputs and renders one block at a time."""

    def __init__(self, name: str, config: EngineConfig) -> None:
        self.name = name
        self.config = config
        self._inputs: List[AudioNode] = []
        self._cache_key: tuple[float, int] | None = None
        self._cache: np.ndarray | None = None

    @property
    def inputs(self) -> List["AudioNode"]:
        return list(self._inputs)

    def connect(self, target: "AudioNode") -> "AudioNode":
        """Route this node into *target* and return *target* for chaining."""

        if self not in target._inputs:
            target._inputs.append(self)
        return target

    def disconnect(self, target: "AudioNode") -> None:
        if self in target._inputs:
            target._inputs.remove(self)

    def parameters(self) -> List[AudioParam]:
        return []

    def describe_parameters(self) -> List[ParameterSpec]:
        return [param.spec for param in self.parameters()]

    def process(self, start_time: float, frames: int) -> np.ndarray:
        """Return the block starting at *start_time*, rendering it at most once."""

        key = (start_time, frames)
        if self._cache_key != key or self._cache is None:
            self._cache = self._render(start_time, frames)
            self._cache_key = key
        return self._cache

    def _mix_inputs(self, start_time: float, frames: int) -> np.ndarray:
        mix = np.zeros(frames, dtype=np.float32)
        for node in self._inputs:
            mix += node.process(start_time, frames)
        return mix

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        return self._mix_inputs(start_time, frames)

    def _times(self, start_time: float, frames: int) -> np.ndarray:
        return start_time + np.arange(frames, dtype=np.float64) / float(self.config.sample_rate)


class SourceNode(AudioNode):
    """Node producing sound only between its scheduled start and stop times."""

    def __init__(self, name: str, config: EngineConfig) -> None:
        super().__init__(name, config)
        self._start_time: Optional[float] = None
        self._stop_time: Optional[float] = None

    @property
    def start_time(self) -> Optional[float]:
        return self._start_time

    @property
    def stop_time(self) -> float:
        """Time after which the source is silent (``inf`` while unbounded)."""

        if self._start_time is None:
            return math.inf
        if self._stop_time is None:
            return self._natural_end()
        return min(self._stop_time, self._natural_end())

    def start(self, when: float = 0.0) -> None:
        if self._start_time is not None:
            raise ValueError(f"Source {self.name!r} has already been started")
        self._start_time = max(0.0, float(when))

    def stop(self, when: float) -> None:
        if self._start_time is None:
            raise ValueError(f"Source {self.name!r} must be started before stopping")
        self._stop_time = max(self._start_time, float(when))

    def has_ended(self, time: float) -> bool:
        return time >= self.stop_time

    def _natural_end(self) -> float:
        return math.inf

    def _active_mask(self, start_time: float, frames: int) -> np.ndarray:
        if self._start_time is None:
            return np.zeros(frames, dtype=bool)
        times = self._times(start_time, frames)
        return (times >= self._start_time) & (times < self.stop_time)


class OscillatorNode(SourceNode):
    """Periodic tone generator with an automatable frequency."""

    def __init__(
        self,
        name: str,
        config: EngineConfig,
        *,
        type: str = "sine",
        frequency: float = 440.0,
    ) -> None:
        if type not in OSCILLATOR_TYPES:
            raise ValueError(f"Unsupported oscillator type {type!r}")
        super().__init__(name, config)
        self.type = type
        self.frequency = AudioParam(
            ParameterSpec(
                name="frequency",
                display_name="Pitch",
                default=frequency,
                minimum=0.0,
                maximum=config.nyquist,
                unit="Hz",
                description="Fundamental frequency of the oscillator.",
            )
        )
        self._phase = 0.0

    def parameters(self) -> List[AudioParam]:
        return [self.frequency]

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        mask = self._active_mask(start_time, frames)
        if not mask.any():
            return np.zeros(frames, dtype=np.float32)
        frequency = self.frequency.render(start_time, frames, self.config.sample_rate)
        increments = _TWO_PI * frequency / self.config.sample_rate * mask
        phases = self._phase + np.cumsum(increments) - increments
        self._phase = float((self._phase + increments.sum()) % _TWO_PI)
        return (self._waveform(phases) * mask).astype(np.float32)

    def _waveform(self, phases: np.ndarray) -> np.ndarray:
        if self.type == "sine":
            return np.sin(phases)
        wrapped = np.mod(phases, _TWO_PI)
        if self.type == "square":
            return np.where(wrapped < math.pi, 1.0, -1.0)
        if self.type == "sawtooth":
            return wrapped / math.pi - 1.0
        return (2.0 / math.pi) * np.arcsin(np.sin(phases))


class BufferSourceNode(SourceNode):
    """Plays a mono buffer once, or loops it until stopped."""

    def __init__(
        self,
        name: str,
        config: EngineConfig,
        *,
        buffer: np.ndarray,
        loop: bool = False,
    ) -> None:
        super().__init__(name, config)
        samples = np.asarray(buffer, dtype=np.float32)
        if samples.ndim != 1 or samples.size == 0:
            raise ValueError("BufferSourceNode expects a non-empty mono buffer")
        self.buffer = samples
        self.loop = loop
        self._position = 0

    def _natural_end(self) -> float:
        if self.loop or self._start_time is None:
            return math.inf
        return self._start_time + self.buffer.size / float(self.config.sample_rate)

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        output = np.zeros(frames, dtype=np.float32)
        mask = self._active_mask(start_time, frames)
        count = int(mask.sum())
        if count == 0:
            return output
        indices = self._position + np.arange(count)
        if self.loop:
            indices %= self.buffer.size
            output[mask] = self.buffer[indices]
        else:
            valid = indices < self.buffer.size
            chunk = np.zeros(count, dtype=np.float32)
            chunk[valid] = self.buffer[indices[valid]]
            output[mask] = chunk
        self._position += count
        return output


class GainNode(AudioNode):
    """Multiplies its summed input by an automatable gain curve."""

    def __init__(self, name: str, config: EngineConfig, *, gain: float = 1.0) -> None:
        super().__init__(name, config)
        self.gain = AudioParam(
            ParameterSpec(
                name="gain",
                display_name="Level",
                default=gain,
                minimum=0.0,
                maximum=10.0,
                description="Linear amplitude multiplier.",
            )
        )

    def parameters(self) -> List[AudioParam]:
        return [self.gain]

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        mix = self._mix_inputs(start_time, frames)
        curve = self.gain.render(start_time, frames, self.config.sample_rate)
        return (mix * curve).astype(np.float32)


class BiquadFilterNode(AudioNode):
    """Resonant two-pole filter; coefficients refresh once per block."""

    def __init__(
        self,
        name: str,
        config: EngineConfig,
        *,
        type: str = "lowpass",
        frequency: float = 350.0,
        q: float = 1.0,
    ) -> None:
        if type not in FILTER_TYPES:
            raise ValueError(f"Unsupported filter type {type!r}")
        super().__init__(name, config)
        self.type = type
        self.frequency = AudioParam(
            ParameterSpec(
                name="frequency",
                display_name="Cutoff",
                default=frequency,
                minimum=10.0,
                maximum=config.nyquist,
                unit="Hz",
                description="Corner (or centre) frequency of the filter.",
            )
        )
        self.q = AudioParam(
            ParameterSpec(
                name="q",
                display_name="Resonance",
                default=q,
                minimum=1e-4,
                maximum=1_000.0,
                description="Peak emphasis around the cutoff.",
            )
        )
        self._core = Biquad()

    def parameters(self) -> List[AudioParam]:
        return [self.frequency, self.q]

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        mix = self._mix_inputs(start_time, frames)
        self._core.set_coefficients(
            design_biquad(
                self.type,
                self.config.sample_rate,
                self.frequency.value_at(start_time),
                self.q.value_at(start_time),
            )
        )
        return self._core.process(mix)


class DynamicsCompressorNode(AudioNode):
    """Soft-knee compressor with browser-style defaults."""

    def __init__(
        self,
        name: str,
        config: EngineConfig,
        *,
        threshold: float = -24.0,
        knee: float = 30.0,
        ratio: float = 12.0,
        attack: float = 0.003,
        release: float = 0.25,
    ) -> None:
        super().__init__(name, config)
        self.threshold = AudioParam(
            ParameterSpec("threshold", "Threshold", threshold, -100.0, 0.0, "dB")
        )
        self.knee = AudioParam(ParameterSpec("knee", "Knee", knee, 0.0, 40.0, "dB"))
        self.ratio = AudioParam(ParameterSpec("ratio", "Ratio", ratio, 1.0, 20.0))
        self.attack = AudioParam(ParameterSpec("attack", "Attack", attack, 0.0, 1.0, "s"))
        self.release = AudioParam(ParameterSpec("release", "Release", release, 0.0, 1.0, "s"))
        self._core = SoftKneeCompressor(config.sample_rate)

    def parameters(self) -> List[AudioParam]:
        return [self.threshold, self.knee, self.ratio, self.attack, self.release]

    @property
    def reduction(self) -> float:
        """Most recent gain reduction in decibels (<= 0)."""

        return self._core.last_reduction_db

    def _render(self, start_time: float, frames: int) -> np.ndarray:
        mix = self._mix_inputs(start_time, frames)
        settings = CompressorSettings(
            threshold_db=self.threshold.value_at(start_time),
            knee_db=self.knee.value_at(start_time),
            ratio=self.ratio.value_at(start_time),
            attack_seconds=self.attack.value_at(start_time),
            release_seconds=self.release.value_at(start_time),
        )
        return self._core.process(mix, settings)


@dataclass
class Voice:
    """One triggered hit: a transient node tree ending in ``output``."""

    name: str
    output: AudioNode
    sources: Sequence[SourceNode]
    nodes: Dict[str, AudioNode] = field(default_factory=dict)

    @property
    def start_time(self) -> float:
        starts = [source.start_time for source in self.sources if source.start_time is not None]
        return min(starts) if starts else math.inf

    @property
    def end_time(self) -> float:
        """Latest stop time across every source in the voice."""

        if not self.sources:
            return 0.0
        return max(source.stop_time for source in self.sources)

    def has_ended(self, time: float) -> bool:
        return time >= self.end_time

    def node(self, name: str) -> AudioNode:
        return self.nodes[name]

    def render(self, start_time: float, frames: int) -> np.ndarray:
        return self.output.process(start_time, frames)


def noise_buffer(config: EngineConfig, rng: np.random.Generator) -> np.ndarray:
    """Return ``noise_seconds`` of uniform white noise in [-1, 1)."""

    frames = int(round(config.sample_rate * config.noise_seconds))
    return (rng.random(frames, dtype=np.float64) * 2.0 - 1.0).astype(np.float32)


def connect_chain(nodes: Iterable[AudioNode]) -> None:
    """Connect *nodes* in series."""

    chain = list(nodes)
    for source, target in zip(chain, chain[1:]):
        source.connect(target)


__all__ = [
    "AudioNode",
    "BiquadFilterNode",
    "BufferSourceNode",
    "DynamicsCompressorNode",
    "GainNode",
    "OSCILLATOR_TYPES",
    "OscillatorNode",
    "SourceNode",
    "Voice",
    "connect_chain",
    "noise_buffer",
]
