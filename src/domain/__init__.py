"""Domain package exposing drum pattern data models."""
from .models import (
    DEFAULT_LEVEL,
    DEFAULT_PARAMETER_VALUE,
    DEFAULT_TEMPO_BPM,
    STEPS_PER_PATTERN,
    TRACK_NAMES,
    TRACK_ORDER,
    VOICE_PARAMETERS,
    Pattern,
    Step,
    Track,
    TrackId,
    create_default_pattern,
    create_default_track,
    default_parameter_value,
    resolve_track_id,
)

__all__ = [
    "DEFAULT_LEVEL",
    "DEFAULT_PARAMETER_VALUE",
    "DEFAULT_TEMPO_BPM",
    "STEPS_PER_PATTERN",
    "TRACK_NAMES",
    "TRACK_ORDER",
    "VOICE_PARAMETERS",
    "Pattern",
    "Step",
    "Track",
    "TrackId",
    "create_default_pattern",
    "create_default_track",
    "default_parameter_value",
    "resolve_track_id",
]
