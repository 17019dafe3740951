"""Persistent output graph: master bus, voice mixing and device lifecycle.

Every triggered voice connects into a single master gain stage owned by
:class:`AudioOutputGraph`. The graph keeps its own audio clock (seconds
of audio rendered so far); voices schedule their envelopes against that
clock and are dropped once their last source has stopped. Rendering is
pulled by an :class:`OutputDevice`, either a ``sounddevice`` stream
running on PortAudio's callback thread or the pull-driven
:class:`OfflineOutput` used for headless rendering.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, Protocol

import numpy as np

from .engine import AudioParam, EngineConfig
from .modules import BufferSourceNode, GainNode, SourceNode, Voice, noise_buffer

logger = logging.getLogger(__name__)

RenderCallback = Callable[[int], np.ndarray]

UNLOCK_BUFFER_SAMPLE_RATE = 22_050
UNLOCK_DURATION_SECONDS = 0.001


class OutputResumeError(RuntimeError):
    """Raised when the output device refuses to start or resume."""


class OutputDevice(Protocol):
    """Minimal contract for sinks that pull audio from the graph."""

    def start(self, render: RenderCallback) -> None:
        """Begin (or resume) pulling blocks through *render*."""

    def suspend(self) -> None:
        """Pause pulling without releasing the device."""

    def close(self) -> None:
        """Release the device."""


class SoundDeviceOutput:
    """PortAudio output stream driven by ``sounddevice``."""

    def __init__(
        self,
        config: EngineConfig,
        *,
        device: Optional[Any] = None,
        latency: str | float = "low",
    ) -> None:
        self.config = config
        self.device = device
        self.latency = latency
        self._stream: Any = None

    @property
    def active(self) -> bool:
        return bool(self._stream is not None and self._stream.active)

    def start(self, render: RenderCallback) -> None:  # pragma: no cover - requires audio device
        import sounddevice as sd

        if self._stream is None:

            def callback(outdata, frames, time_info, status):
                if status:
                    logger.debug("Output stream status: %s", status)
                outdata[:] = render(frames)

            self._stream = sd.OutputStream(
                samplerate=self.config.sample_rate,
                blocksize=self.config.block_size,
                channels=self.config.channels,
                dtype="float32",
                latency=self.latency,
                device=self.device,
                callback=callback,
            )
        if not self._stream.active:
            self._stream.start()

    def suspend(self) -> None:  # pragma: no cover - requires audio device
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def close(self) -> None:  # pragma: no cover - requires audio device
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class OfflineOutput:
    """Pull-driven sink: audio is rendered only when :meth:`pull` is called."""

    def __init__(self, *, block_size: int = 512) -> None:
        self.block_size = block_size
        self.start_count = 0
        self._render: Optional[RenderCallback] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, render: RenderCallback) -> None:
        self._render = render
        self._running = True
        self.start_count += 1

    def suspend(self) -> None:
        self._running = False

    def close(self) -> None:
        self._running = False
        self._render = None

    def pull(self, frames: int) -> np.ndarray:
        if not self._running or self._render is None:
            raise RuntimeError("Offline output has not been started")
        return self._render(frames)

    def render_seconds(self, seconds: float, *, sample_rate: int) -> np.ndarray:
        """Pull *seconds* of audio in ``block_size`` chunks."""

        remaining = max(0, int(round(seconds * sample_rate)))
        blocks = []
        while remaining > 0:
            frames = min(remaining, self.block_size)
            blocks.append(self.pull(frames))
            remaining -= frames
        if not blocks:
            return np.zeros((0, 1), dtype=np.float32)
        return np.vstack(blocks)


class AudioOutputGraph:
    """Master mix bus shared by every sounding voice."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        device: Optional[OutputDevice] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._device: OutputDevice = device if device is not None else SoundDeviceOutput(self.config)
        self._rng = np.random.default_rng(self.config.seed)
        self._master = GainNode("master", self.config, gain=self.config.master_gain)
        self._voices: List[Voice] = []
        self._direct_sources: List[SourceNode] = []
        self._lock = threading.RLock()
        self._frames_rendered = 0
        self._unlocked = False

    @property
    def device(self) -> OutputDevice:
        return self._device

    @property
    def master(self) -> GainNode:
        """The sink every voice output connects into."""

        return self._master

    @property
    def master_gain(self) -> AudioParam:
        """Master volume; set ``master_gain.value`` to change it."""

        return self._master.gain

    @property
    def current_time(self) -> float:
        """Seconds of audio rendered so far."""

        return self._frames_rendered / float(self.config.sample_rate)

    def is_unlocked(self) -> bool:
        return self._unlocked

    async def resume(self) -> None:
        """Start the device, unlocking output with a silent buffer the first time."""

        try:
            await asyncio.to_thread(self._device.start, self.render)
        except Exception as exc:
            logger.error("Failed to resume audio output: %s", exc)
            raise OutputResumeError("Audio output device could not be resumed") from exc

        if self._unlocked:
            return
        self._play_unlock_buffer()
        self._unlocked = True
        logger.info("Audio output unlocked")

    def suspend(self) -> None:
        self._device.suspend()

    def close(self) -> None:
        self._device.close()
        with self._lock:
            for voice in self._voices:
                voice.output.disconnect(self._master)
            self._voices.clear()
            self._direct_sources.clear()

    def create_noise_buffer(self) -> np.ndarray:
        """Return a fresh white-noise buffer for a noise-based voice."""

        with self._lock:
            return noise_buffer(self.config, self._rng)

    def add_voice(self, voice: Voice) -> None:
        """Connect *voice* into the master bus until its sources have stopped."""

        with self._lock:
            voice.output.connect(self._master)
            self._voices.append(voice)
        logger.debug("Scheduled voice %s ending at %.3fs", voice.name, voice.end_time)

    def active_voices(self) -> List[Voice]:
        with self._lock:
            return list(self._voices)

    def play_buffer(
        self,
        buffer: np.ndarray,
        *,
        when: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> BufferSourceNode:
        """Play *buffer* straight to the device, bypassing the master gain."""

        source = BufferSourceNode("direct", self.config, buffer=buffer)
        start = self.current_time if when is None else when
        source.start(start)
        if duration is not None:
            source.stop(start + duration)
        with self._lock:
            self._direct_sources.append(source)
        return source

    def render(self, frames: int) -> np.ndarray:
        """Mix the next *frames* samples and advance the audio clock."""

        with self._lock:
            start = self.current_time
            mono = np.array(self._master.process(start, frames), copy=True)
            for source in self._direct_sources:
                mono += source.process(start, frames)
            self._frames_rendered += frames
            self._reap(self.current_time)
        return np.repeat(mono[:, None], self.config.channels, axis=1).astype(np.float32)

    def _reap(self, now: float) -> None:
        finished = [voice for voice in self._voices if voice.has_ended(now)]
        for voice in finished:
            voice.output.disconnect(self._master)
            self._voices.remove(voice)
            logger.debug("Released voice %s", voice.name)
        self._direct_sources = [
            source for source in self._direct_sources if not source.has_ended(now)
        ]

    def _play_unlock_buffer(self) -> None:
        silence = np.zeros(1, dtype=np.float32)
        self.play_buffer(silence, duration=UNLOCK_DURATION_SECONDS)
        logger.debug(
            "Played %d-sample silent buffer (%d Hz source) to unlock output",
            silence.size,
            UNLOCK_BUFFER_SAMPLE_RATE,
        )


__all__ = [
    "AudioOutputGraph",
    "OfflineOutput",
    "OutputDevice",
    "OutputResumeError",
    "SoundDeviceOutput",
]
