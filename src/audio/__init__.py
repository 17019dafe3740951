"""Percussion synthesis engine: timestamped nodes, voices and the output graph."""
from .engine import AudioParam, EngineConfig, ParamEvent, ParameterSpec
from .metrics import peak, rms_dbfs, rms_per_channel
from .modules import (
    AudioNode,
    BiquadFilterNode,
    BufferSourceNode,
    DynamicsCompressorNode,
    GainNode,
    OscillatorNode,
    SourceNode,
    Voice,
)
from .output import (
    AudioOutputGraph,
    OfflineOutput,
    OutputDevice,
    OutputResumeError,
    SoundDeviceOutput,
)
from .voices import (
    BassDrumParams,
    DrumSynth,
    ENVELOPE_FLOOR,
    SnareDrumParams,
    VoiceParams,
    build_params,
    params_for,
)

__all__ = [
    "AudioNode",
    "AudioOutputGraph",
    "AudioParam",
    "BassDrumParams",
    "BiquadFilterNode",
    "BufferSourceNode",
    "DrumSynth",
    "DynamicsCompressorNode",
    "ENVELOPE_FLOOR",
    "EngineConfig",
    "GainNode",
    "OfflineOutput",
    "OscillatorNode",
    "OutputDevice",
    "OutputResumeError",
    "ParamEvent",
    "ParameterSpec",
    "SnareDrumParams",
    "SoundDeviceOutput",
    "SourceNode",
    "Voice",
    "VoiceParams",
    "build_params",
    "params_for",
    "peak",
    "rms_dbfs",
    "rms_per_channel",
]
