"""Parametric percussion voices rendered through the output graph.

Each ``trigger_*`` call builds a brand-new node tree for a single hit,
schedules every envelope against the graph's audio clock, and hands the
tree to :class:`~audio.output.AudioOutputGraph`. Nothing is returned and
nothing needs releasing: the graph drops the voice once its sources
reach their scheduled stop times.

All pitches, cutoffs, envelope times and peak gains are linear functions
of normalised ``[0, 1]`` parameters. Peak gains reach their target by a
short linear attack, then decay exponentially towards ``ENVELOPE_FLOOR``.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
import logging
import math
from typing import Callable, Dict, Mapping, Sequence, Tuple, Type, TypeVar, Union

from domain.models import DEFAULT_LEVEL, DEFAULT_PARAMETER_VALUE, Track, TrackId, resolve_track_id

from .modules import (
    AudioNode,
    BiquadFilterNode,
    BufferSourceNode,
    DynamicsCompressorNode,
    GainNode,
    OscillatorNode,
    SourceNode,
    Voice,
    connect_chain,
)
from .output import AudioOutputGraph

logger = logging.getLogger(__name__)

ENVELOPE_FLOOR = 0.001
COMPRESSOR_RATIO = 12.0
COMPRESSOR_ATTACK = 0.003


@dataclass(frozen=True)
class VoiceParams:
    """Controls shared by the toms, rim shot, clap, hats and cymbals."""

    tune: float = DEFAULT_PARAMETER_VALUE
    decay: float = DEFAULT_PARAMETER_VALUE
    level: float = DEFAULT_LEVEL


@dataclass(frozen=True)
class BassDrumParams:
    tune: float = DEFAULT_PARAMETER_VALUE
    attack: float = DEFAULT_PARAMETER_VALUE
    decay: float = DEFAULT_PARAMETER_VALUE
    comp: float = DEFAULT_PARAMETER_VALUE
    level: float = DEFAULT_LEVEL


@dataclass(frozen=True)
class SnareDrumParams:
    tune: float = DEFAULT_PARAMETER_VALUE
    snappy: float = DEFAULT_PARAMETER_VALUE
    decay: float = DEFAULT_PARAMETER_VALUE
    comp: float = DEFAULT_PARAMETER_VALUE
    level: float = DEFAULT_LEVEL


AnyVoiceParams = Union[VoiceParams, BassDrumParams, SnareDrumParams]
P = TypeVar("P", VoiceParams, BassDrumParams, SnareDrumParams)

PARAMS_BY_TRACK: Dict[TrackId, Type[AnyVoiceParams]] = {
    track_id: VoiceParams for track_id in TrackId
}
PARAMS_BY_TRACK[TrackId.BASS_DRUM] = BassDrumParams
PARAMS_BY_TRACK[TrackId.SNARE_DRUM] = SnareDrumParams


def build_params(params_type: Type[P], values: Mapping[str, float]) -> P:
    """Build *params_type* from *values*, defaulting missing or non-finite keys.

    Explicit zeros are kept; only absent entries fall back to defaults.
    """

    resolved = {}
    for item in fields(params_type):
        raw = values.get(item.name)
        if raw is None:
            continue
        try:
            amount = float(raw)
        except (TypeError, ValueError):
            continue
        if math.isfinite(amount):
            resolved[item.name] = min(max(amount, 0.0), 1.0)
    return params_type(**resolved)


def params_for(track_id: TrackId | str, values: Mapping[str, float]) -> AnyVoiceParams | None:
    """Return the typed parameter record for *track_id*, or ``None`` if unknown."""

    resolved = resolve_track_id(track_id)
    if resolved is None:
        return None
    return build_params(PARAMS_BY_TRACK[resolved], values)


class DrumSynth:
    """Eleven-voice percussion synthesizer writing into an output graph."""

    def __init__(self, output: AudioOutputGraph) -> None:
        self.output = output
        self.config = output.config
        self._dispatch: Dict[TrackId, Callable[..., None]] = {
            TrackId.BASS_DRUM: self.trigger_bass_drum,
            TrackId.SNARE_DRUM: self.trigger_snare_drum,
            TrackId.LOW_TOM: self.trigger_low_tom,
            TrackId.MID_TOM: self.trigger_mid_tom,
            TrackId.HIGH_TOM: self.trigger_high_tom,
            TrackId.RIM_SHOT: self.trigger_rim_shot,
            TrackId.HAND_CLAP: self.trigger_hand_clap,
            TrackId.CLOSED_HIHAT: self.trigger_closed_hihat,
            TrackId.OPEN_HIHAT: self.trigger_open_hihat,
            TrackId.CRASH_CYMBAL: self.trigger_crash_cymbal,
            TrackId.RIDE_CYMBAL: self.trigger_ride_cymbal,
        }

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------
    def trigger(self, track_id: TrackId | str, values: Mapping[str, float] | None = None) -> None:
        """Fire the voice for *track_id*; unknown identifiers are ignored."""

        resolved = resolve_track_id(track_id)
        if resolved is None:
            logger.debug("Ignoring trigger for unknown track %r", track_id)
            return
        params = build_params(PARAMS_BY_TRACK[resolved], values or {})
        self._dispatch[resolved](params)

    def trigger_track(self, track: Track) -> None:
        self.trigger(track.id, track.params)

    # ------------------------------------------------------------------
    # Node helpers
    # ------------------------------------------------------------------
    def _oscillator(self, name: str, type: str, frequency: float) -> OscillatorNode:
        return OscillatorNode(name, self.config, type=type, frequency=frequency)

    def _noise(self, name: str = "noise") -> BufferSourceNode:
        return BufferSourceNode(
            name, self.config, buffer=self.output.create_noise_buffer(), loop=True
        )

    def _filter(self, name: str, type: str, frequency: float, q: float) -> BiquadFilterNode:
        return BiquadFilterNode(name, self.config, type=type, frequency=frequency, q=q)

    def _gain(self, name: str, gain: float = 0.0) -> GainNode:
        return GainNode(name, self.config, gain=gain)

    def _compressor(self, comp: float) -> DynamicsCompressorNode:
        return DynamicsCompressorNode(
            "compressor",
            self.config,
            threshold=-24.0 + comp * 12.0,
            ratio=COMPRESSOR_RATIO,
            attack=COMPRESSOR_ATTACK,
        )

    @staticmethod
    def _percussive_envelope(
        gain: GainNode, now: float, peak: float, attack: float, end: float
    ) -> None:
        gain.gain.set_value_at_time(0.0, now)
        gain.gain.linear_ramp_to_value_at_time(peak, now + attack)
        gain.gain.exponential_ramp_to_value_at_time(ENVELOPE_FLOOR, end)

    def _schedule(
        self,
        name: str,
        output: AudioNode,
        sources: Mapping[SourceNode, Tuple[float, float]],
        nodes: Sequence[AudioNode],
    ) -> None:
        for source, (start, stop) in sources.items():
            source.start(start)
            source.stop(stop)
        self.output.add_voice(
            Voice(
                name=name,
                output=output,
                sources=list(sources),
                nodes={node.name: node for node in nodes},
            )
        )

    # ------------------------------------------------------------------
    # Voices
    # ------------------------------------------------------------------
    def trigger_bass_drum(self, params: BassDrumParams) -> None:
        now = self.output.current_time
        end = now + 0.1 + params.decay * 0.5
        base = 55.0 + params.tune * 20.0

        osc = self._oscillator("osc", "sine", base)
        gain = self._gain("envelope")
        compressor = self._compressor(params.comp)
        connect_chain([osc, gain, compressor])

        osc.frequency.set_value_at_time(120.0 + params.tune * 40.0, now)
        osc.frequency.exponential_ramp_to_value_at_time(base, now + 0.15)
        self._percussive_envelope(gain, now, params.level, 0.005 + params.attack * 0.01, end)

        self._schedule(TrackId.BASS_DRUM.value, compressor, {osc: (now, end)}, [osc, gain, compressor])

    def trigger_snare_drum(self, params: SnareDrumParams) -> None:
        now = self.output.current_time
        noise_end = now + 0.1 + params.decay * 0.3
        tone_end = now + 0.1 + params.decay * 0.2

        noise = self._noise()
        noise_filter = self._filter("noise_filter", "highpass", 1000.0 + params.tune * 500.0, 1.0)
        noise_gain = self._gain("noise_gain")
        osc = self._oscillator("osc", "triangle", 180.0 + params.tune * 40.0)
        osc_gain = self._gain("osc_gain")
        compressor = self._compressor(params.comp)
        connect_chain([noise, noise_filter, noise_gain, compressor])
        connect_chain([osc, osc_gain, compressor])

        self._percussive_envelope(
            noise_gain, now, params.snappy * 0.7 * params.level, 0.005, noise_end
        )
        self._percussive_envelope(osc_gain, now, 0.5 * params.level, 0.005, tone_end)

        self._schedule(
            TrackId.SNARE_DRUM.value,
            compressor,
            {noise: (now, noise_end), osc: (now, tone_end)},
            [noise, noise_filter, noise_gain, osc, osc_gain, compressor],
        )

    def _tom(
        self,
        track_id: TrackId,
        params: VoiceParams,
        *,
        start_hz: float,
        start_tune_hz: float,
        base_hz: float,
        base_tune_hz: float,
    ) -> None:
        now = self.output.current_time
        end = now + 0.1 + params.decay * 0.3
        base = base_hz + params.tune * base_tune_hz

        osc = self._oscillator("osc", "sine", base)
        gain = self._gain("envelope")
        connect_chain([osc, gain])

        self._percussive_envelope(gain, now, 0.7 * params.level, 0.005, end)
        osc.frequency.set_value_at_time(start_hz + params.tune * start_tune_hz, now)
        osc.frequency.exponential_ramp_to_value_at_time(base, now + 0.1)

        self._schedule(track_id.value, gain, {osc: (now, end)}, [osc, gain])

    def trigger_low_tom(self, params: VoiceParams) -> None:
        self._tom(
            TrackId.LOW_TOM, params, start_hz=120.0, start_tune_hz=40.0, base_hz=80.0, base_tune_hz=30.0
        )

    def trigger_mid_tom(self, params: VoiceParams) -> None:
        self._tom(
            TrackId.MID_TOM, params, start_hz=160.0, start_tune_hz=50.0, base_hz=120.0, base_tune_hz=40.0
        )

    def trigger_high_tom(self, params: VoiceParams) -> None:
        self._tom(
            TrackId.HIGH_TOM, params, start_hz=220.0, start_tune_hz=70.0, base_hz=180.0, base_tune_hz=60.0
        )

    def trigger_rim_shot(self, params: VoiceParams) -> None:
        now = self.output.current_time
        end = now + 0.02 + params.decay * 0.1

        click = self._oscillator("click", "square", 330.0 + params.tune * 100.0)
        ring = self._oscillator("ring", "sine", 600.0 + params.tune * 150.0)
        gain = self._gain("envelope")
        click.connect(gain)
        ring.connect(gain)

        self._percussive_envelope(gain, now, 0.6 * params.level, 0.001, end)

        self._schedule(
            TrackId.RIM_SHOT.value, gain, {click: (now, end), ring: (now, end)}, [click, ring, gain]
        )

    def trigger_hand_clap(self, params: VoiceParams) -> None:
        now = self.output.current_time
        end = now + 0.1 + params.decay * 0.2
        loud = 0.7 * params.level
        soft = 0.3 * params.level

        noise = self._noise()
        band = self._filter("filter", "bandpass", 1200.0 + params.tune * 400.0, 2.0)
        gain = self._gain("envelope")
        connect_chain([noise, band, gain])

        # Five alternating ramps in the first 40 ms mimic several hands landing.
        gain.gain.set_value_at_time(0.0, now)
        for offset, peak in ((0.001, loud), (0.01, soft), (0.02, loud), (0.03, soft), (0.04, loud)):
            gain.gain.linear_ramp_to_value_at_time(peak, now + offset)
        gain.gain.exponential_ramp_to_value_at_time(ENVELOPE_FLOOR, end)

        self._schedule(TrackId.HAND_CLAP.value, gain, {noise: (now, end)}, [noise, band, gain])

    def _filtered_noise_hit(
        self,
        track_id: TrackId,
        *,
        cutoff: float,
        q: float,
        peak: float,
        length: float,
    ) -> None:
        now = self.output.current_time
        end = now + length

        noise = self._noise()
        highpass = self._filter("filter", "highpass", cutoff, q)
        gain = self._gain("envelope")
        connect_chain([noise, highpass, gain])

        self._percussive_envelope(gain, now, peak, 0.001, end)

        self._schedule(track_id.value, gain, {noise: (now, end)}, [noise, highpass, gain])

    def trigger_closed_hihat(self, params: VoiceParams) -> None:
        self._filtered_noise_hit(
            TrackId.CLOSED_HIHAT,
            cutoff=8000.0 + params.tune * 2000.0,
            q=3.0,
            peak=0.7 * params.level,
            length=0.05 + params.decay * 0.1,
        )

    def trigger_open_hihat(self, params: VoiceParams) -> None:
        self._filtered_noise_hit(
            TrackId.OPEN_HIHAT,
            cutoff=8000.0 + params.tune * 2000.0,
            q=3.0,
            peak=0.7 * params.level,
            length=0.3 + params.decay * 0.5,
        )

    def trigger_crash_cymbal(self, params: VoiceParams) -> None:
        self._filtered_noise_hit(
            TrackId.CRASH_CYMBAL,
            cutoff=5000.0 + params.tune * 1000.0,
            q=2.0,
            peak=0.8 * params.level,
            length=1.0 + params.decay * 1.0,
        )

    def trigger_ride_cymbal(self, params: VoiceParams) -> None:
        now = self.output.current_time
        body_end = now + 0.5 + params.decay * 0.8
        ping_end = now + 0.1 + params.decay * 0.2

        noise = self._noise()
        noise_filter = self._filter("noise_filter", "highpass", 7000.0 + params.tune * 1000.0, 2.0)
        noise_gain = self._gain("noise_gain", 0.3)
        low_ping = self._oscillator("low_ping", "square", 3000.0 + params.tune * 500.0)
        high_ping = self._oscillator("high_ping", "square", 4500.0 + params.tune * 500.0)
        osc_gain = self._gain("osc_gain")
        main = self._gain("main")
        connect_chain([noise, noise_filter, noise_gain, main])
        low_ping.connect(osc_gain)
        high_ping.connect(osc_gain)
        osc_gain.connect(main)

        self._percussive_envelope(main, now, 0.7 * params.level, 0.001, body_end)
        self._percussive_envelope(osc_gain, now, 0.3 * params.level, 0.001, ping_end)

        self._schedule(
            TrackId.RIDE_CYMBAL.value,
            main,
            {noise: (now, body_end), low_ping: (now, ping_end), high_ping: (now, ping_end)},
            [noise, noise_filter, noise_gain, low_ping, high_ping, osc_gain, main],
        )


__all__ = [
    "BassDrumParams",
    "DrumSynth",
    "ENVELOPE_FLOOR",
    "PARAMS_BY_TRACK",
    "SnareDrumParams",
    "VoiceParams",
    "build_params",
    "params_for",
]
