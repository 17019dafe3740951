"""Pydantic-powered domain models for drum machine patterns.

A :class:`Pattern` is a complete snapshot of the instrument: one
:class:`Track` per voice, sixteen :class:`Step` toggles per track, and a
handful of normalised synthesis parameters. Patterns are treated as
values; editors clone them before changing anything so the sequencer
never observes a half-applied edit.
"""
from __future__ import annotations

from enum import Enum
import math
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

STEPS_PER_PATTERN = 16
DEFAULT_TEMPO_BPM = 128.0
DEFAULT_PARAMETER_VALUE = 0.5
DEFAULT_LEVEL = 0.7


class TrackId(str, Enum):
    """The eleven fixed voices, in pattern order."""

    BASS_DRUM = "bd"
    SNARE_DRUM = "sd"
    LOW_TOM = "lt"
    MID_TOM = "mt"
    HIGH_TOM = "ht"
    RIM_SHOT = "rs"
    HAND_CLAP = "hc"
    CLOSED_HIHAT = "ch"
    OPEN_HIHAT = "oh"
    CRASH_CYMBAL = "cc"
    RIDE_CYMBAL = "rc"


TRACK_ORDER: Tuple[TrackId, ...] = tuple(TrackId)

TRACK_NAMES: Dict[TrackId, str] = {
    TrackId.BASS_DRUM: "Bass Drum",
    TrackId.SNARE_DRUM: "Snare Drum",
    TrackId.LOW_TOM: "Low Tom",
    TrackId.MID_TOM: "Mid Tom",
    TrackId.HIGH_TOM: "High Tom",
    TrackId.RIM_SHOT: "Rim Shot",
    TrackId.HAND_CLAP: "Hand Clap",
    TrackId.CLOSED_HIHAT: "Closed Hi-hat",
    TrackId.OPEN_HIHAT: "Open Hi-hat",
    TrackId.CRASH_CYMBAL: "Crash Cymbal",
    TrackId.RIDE_CYMBAL: "Ride Cymbal",
}

_SIMPLE_VOICE_PARAMETERS: Tuple[str, ...] = ("tune", "decay", "level")

VOICE_PARAMETERS: Dict[TrackId, Tuple[str, ...]] = {
    track_id: _SIMPLE_VOICE_PARAMETERS for track_id in TRACK_ORDER
}
VOICE_PARAMETERS[TrackId.BASS_DRUM] = ("tune", "attack", "decay", "comp", "level")
VOICE_PARAMETERS[TrackId.SNARE_DRUM] = ("tune", "snappy", "decay", "comp", "level")


def default_parameter_value(name: str) -> float:
    """Return the value a missing parameter resolves to."""

    return DEFAULT_LEVEL if name == "level" else DEFAULT_PARAMETER_VALUE


def resolve_track_id(value: TrackId | str) -> TrackId | None:
    """Map a raw identifier onto :class:`TrackId`, returning ``None`` if unknown."""

    if isinstance(value, TrackId):
        return value
    try:
        return TrackId(value)
    except ValueError:
        return None


class Step(BaseModel):
    """Single sequencer cell; ``accent`` only matters while ``active``."""

    active: bool = False
    accent: bool = False


class Track(BaseModel):
    """One voice lane: sixteen steps plus normalised synthesis parameters."""

    id: TrackId
    name: str
    steps: List[Step] = Field(
        default_factory=lambda: [Step() for _ in range(STEPS_PER_PATTERN)],
        min_length=STEPS_PER_PATTERN,
        max_length=STEPS_PER_PATTERN,
    )
    params: Dict[str, float] = Field(default_factory=dict)

    @field_validator("params")
    @classmethod
    def validate_params(cls, value: Dict[str, float]) -> Dict[str, float]:
        for name, amount in value.items():
            if not math.isfinite(amount) or not 0.0 <= amount <= 1.0:
                raise ValueError(f"Parameter {name!r} must lie within [0, 1]")
        return value

    def param(self, name: str) -> float:
        """Return *name* or its documented default when the key is missing."""

        if name in self.params:
            return float(self.params[name])
        return default_parameter_value(name)

    def resolved_params(self) -> Dict[str, float]:
        """Return every parameter the track's voice consumes, defaults included."""

        return {name: self.param(name) for name in VOICE_PARAMETERS[self.id]}

    def is_active(self, step: int) -> bool:
        return self.steps[step].active


class Pattern(BaseModel):
    """Eleven tracks in fixed voice order plus the pattern tempo."""

    id: str
    tempo: float = Field(DEFAULT_TEMPO_BPM, gt=0)
    tracks: List[Track]

    @model_validator(mode="after")
    def validate_track_layout(self) -> Pattern:  # type: ignore[override]
        ids = tuple(track.id for track in self.tracks)
        if ids != TRACK_ORDER:
            raise ValueError(
                "Pattern must contain exactly one track per voice in fixed order; "
                f"received {[track_id.value for track_id in ids]}"
            )
        return self

    @property
    def step_count(self) -> int:
        return STEPS_PER_PATTERN

    def track(self, track_id: TrackId | str) -> Track | None:
        """Return the track for *track_id* or ``None`` when it is unknown."""

        resolved = resolve_track_id(track_id)
        if resolved is None:
            return None
        return self.tracks[TRACK_ORDER.index(resolved)]

    def active_tracks(self, step: int) -> List[Track]:
        """Return the tracks sounding on *step*, in track order."""

        return [track for track in self.tracks if track.is_active(step)]

    def clone(self) -> Pattern:
        """Return a fully independent deep copy."""

        return self.model_copy(deep=True)


def create_default_track(track_id: TrackId) -> Track:
    """Build a silent track with every parameter at its default."""

    return Track(
        id=track_id,
        name=TRACK_NAMES[track_id],
        params={name: default_parameter_value(name) for name in VOICE_PARAMETERS[track_id]},
    )


def create_default_pattern(pattern_id: str = "default") -> Pattern:
    """Return the power-on pattern: 128 BPM, eleven silent tracks."""

    return Pattern(
        id=pattern_id,
        tempo=DEFAULT_TEMPO_BPM,
        tracks=[create_default_track(track_id) for track_id in TRACK_ORDER],
    )
