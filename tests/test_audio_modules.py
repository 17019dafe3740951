import numpy as np
import pytest

from audio.effects import CompressorSettings, SoftKneeCompressor, design_biquad
from audio.engine import EngineConfig
from audio.metrics import peak, rms_dbfs, rms_per_channel
from audio.modules import (
    BiquadFilterNode,
    BufferSourceNode,
    DynamicsCompressorNode,
    GainNode,
    OscillatorNode,
    Voice,
    connect_chain,
    noise_buffer,
)


def _rms(block: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.square(block, dtype=np.float64))))


def _tone(config: EngineConfig, frequency: float, *, type: str = "sine") -> OscillatorNode:
    osc = OscillatorNode("osc", config, type=type, frequency=frequency)
    osc.start(0.0)
    return osc


def test_sine_oscillator_hits_requested_pitch(engine_config):
    osc = _tone(engine_config, 100.0)

    block = osc.process(0.0, engine_config.sample_rate)

    crossings = int(np.count_nonzero(np.diff(np.signbit(block))))
    assert crossings == pytest.approx(200, abs=2)
    assert peak(block) == pytest.approx(1.0, abs=1e-3)


def test_square_oscillator_is_silent_before_start(engine_config):
    osc = OscillatorNode("click", engine_config, type="square", frequency=330.0)
    osc.start(0.01)

    block = osc.process(0.0, 480)

    assert np.all(block[:240] == 0.0)
    assert set(np.unique(block[240:])) <= {-1.0, 1.0}


def test_oscillator_rejects_unknown_waveform(engine_config):
    with pytest.raises(ValueError):
        OscillatorNode("osc", engine_config, type="pulse")


def test_source_start_and_stop_rules(engine_config):
    osc = OscillatorNode("osc", engine_config)
    with pytest.raises(ValueError):
        osc.stop(1.0)
    osc.start(0.5)
    with pytest.raises(ValueError):
        osc.start(0.6)
    osc.stop(0.2)
    assert osc.stop_time == 0.5
    assert osc.has_ended(0.5)


def test_looping_buffer_source_wraps_until_stopped(engine_config):
    source = BufferSourceNode("noise", engine_config, buffer=np.array([1.0, 2.0, 3.0]), loop=True)
    source.start(0.0)
    source.stop(7 / engine_config.sample_rate)

    block = source.process(0.0, 10)

    assert block.tolist() == [1.0, 2.0, 3.0, 1.0, 2.0, 3.0, 1.0, 0.0, 0.0, 0.0]


def test_one_shot_buffer_source_ends_naturally(engine_config):
    source = BufferSourceNode("hit", engine_config, buffer=np.ones(4))
    source.start(0.0)

    block = source.process(0.0, 6)

    assert block.tolist() == [1.0, 1.0, 1.0, 1.0, 0.0, 0.0]
    assert source.has_ended(4 / engine_config.sample_rate)


def test_gain_node_follows_automation(engine_config):
    source = BufferSourceNode("dc", engine_config, buffer=np.ones(16), loop=True)
    source.start(0.0)
    gain = GainNode("envelope", engine_config, gain=0.0)
    source.connect(gain)
    gain.gain.set_value_at_time(0.5, 4 / engine_config.sample_rate)

    block = gain.process(0.0, 8)

    assert block[:4].tolist() == [0.0] * 4
    assert block[4:].tolist() == [0.5] * 4


def test_nodes_sum_multiple_inputs(engine_config):
    mix = GainNode("mix", engine_config)
    for value in (0.25, 0.5):
        source = BufferSourceNode("dc", engine_config, buffer=np.full(8, value), loop=True)
        source.start(0.0)
        source.connect(mix)

    assert mix.process(0.0, 8).tolist() == [0.75] * 8


def test_highpass_attenuates_low_tone(engine_config):
    osc = _tone(engine_config, 200.0)
    highpass = BiquadFilterNode("filter", engine_config, type="highpass", frequency=5_000.0, q=1.0)
    osc.connect(highpass)

    dry = osc.process(0.0, 4_800)
    wet = highpass.process(0.0, 4_800)

    assert _rms(wet[2_400:]) < 0.05 * _rms(dry[2_400:])


def test_bandpass_passes_centre_frequency(engine_config):
    osc = _tone(engine_config, 1_200.0)
    band = BiquadFilterNode("filter", engine_config, type="bandpass", frequency=1_200.0, q=2.0)
    osc.connect(band)

    dry = osc.process(0.0, 4_800)
    wet = band.process(0.0, 4_800)

    assert _rms(wet[2_400:]) > 0.8 * _rms(dry[2_400:])


def test_filter_cutoff_is_clamped_below_nyquist():
    b, a = design_biquad("lowpass", 24_000, 50_000.0, 1.0)

    assert all(np.isfinite(b)) and all(np.isfinite(a))
    with pytest.raises(ValueError):
        design_biquad("notch", 24_000, 1_000.0, 1.0)


def test_compressor_reduces_loud_signal(engine_config):
    osc = _tone(engine_config, 100.0)
    compressor = DynamicsCompressorNode("compressor", engine_config, threshold=-24.0)
    osc.connect(compressor)

    compressor.process(0.0, engine_config.sample_rate)

    assert compressor.reduction < -10.0


def test_compressor_static_curve():
    settings = CompressorSettings(threshold_db=-24.0, knee_db=30.0, ratio=12.0)

    assert SoftKneeCompressor.compute_gain_db(-60.0, settings) == 0.0
    assert SoftKneeCompressor.compute_gain_db(0.0, settings) == pytest.approx(-22.0)
    assert -22.0 < SoftKneeCompressor.compute_gain_db(-24.0, settings) < 0.0


def test_voice_reports_span_and_nodes(engine_config):
    osc = OscillatorNode("osc", engine_config)
    buffer = noise_buffer(engine_config, np.random.default_rng(0))
    noise = BufferSourceNode("noise", engine_config, buffer=buffer, loop=True)
    gain = GainNode("envelope", engine_config)
    connect_chain([osc, gain])
    noise.connect(gain)
    osc.start(0.1)
    osc.stop(0.3)
    noise.start(0.1)
    noise.stop(0.5)

    voice = Voice(name="test", output=gain, sources=[osc, noise], nodes={"osc": osc, "envelope": gain})

    assert voice.start_time == pytest.approx(0.1)
    assert voice.end_time == pytest.approx(0.5)
    assert voice.node("envelope") is gain
    assert not voice.has_ended(0.4)
    assert voice.has_ended(0.5)


def test_noise_buffer_shape_and_range(engine_config):
    buffer = noise_buffer(engine_config, np.random.default_rng(3))

    assert buffer.shape == (engine_config.sample_rate * 2,)
    assert buffer.dtype == np.float32
    assert buffer.min() >= -1.0 and buffer.max() <= 1.0


def test_metrics_report_per_channel_levels():
    stereo = np.stack([np.full(100, 0.5), np.zeros(100)], axis=1)

    assert peak(stereo) == 0.5
    assert rms_per_channel(stereo)[0] == pytest.approx(0.5)
    db = rms_dbfs(stereo)
    assert db[0] == pytest.approx(-6.0206, abs=1e-3)
    assert db[1] < -150.0
