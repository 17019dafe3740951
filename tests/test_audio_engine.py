import math

import numpy as np
import pytest

from audio.engine import AudioParam, EngineConfig, ParameterSpec


def _param(default: float = 0.0, maximum: float = 10.0) -> AudioParam:
    return AudioParam(ParameterSpec("gain", "Gain", default, 0.0, maximum))


def test_engine_config_defaults_and_validation():
    config = EngineConfig()
    assert config.sample_rate == 48_000
    assert config.master_gain == 0.7
    assert config.nyquist == 24_000.0

    with pytest.raises(ValueError):
        EngineConfig(sample_rate=0)
    with pytest.raises(ValueError):
        EngineConfig(noise_seconds=0.0)


def test_intrinsic_value_is_clamped():
    param = _param(default=0.5, maximum=1.0)
    param.value = 4.0
    assert param.value == 1.0
    assert param.value_at(12.0) == 1.0


def test_set_value_holds_until_next_event():
    param = _param()
    param.set_value_at_time(0.25, 1.0).set_value_at_time(0.75, 2.0)

    assert param.value_at(0.5) == 0.0
    assert param.value_at(1.0) == 0.25
    assert param.value_at(1.9) == 0.25
    assert param.value_at(5.0) == 0.75


def test_linear_ramp_interpolates_from_previous_event():
    param = _param()
    param.set_value_at_time(1.0, 1.0)
    param.linear_ramp_to_value_at_time(2.0, 2.0)

    assert param.value_at(1.5) == pytest.approx(1.5)
    assert param.value_at(3.0) == 2.0


def test_ramp_without_previous_event_starts_at_time_zero():
    param = _param(default=1.0)
    param.linear_ramp_to_value_at_time(3.0, 2.0)

    assert param.value_at(1.0) == pytest.approx(2.0)


def test_exponential_ramp_is_geometric():
    param = _param()
    param.set_value_at_time(1.0, 0.0)
    param.exponential_ramp_to_value_at_time(0.001, 1.0)

    assert param.value_at(0.5) == pytest.approx(math.sqrt(0.001))
    assert param.value_at(1.0) == pytest.approx(0.001)
    assert param.value_at(2.0) == pytest.approx(0.001)


def test_exponential_ramp_from_zero_holds_then_jumps():
    param = _param()
    param.set_value_at_time(0.0, 0.0)
    param.exponential_ramp_to_value_at_time(1.0, 1.0)

    assert param.value_at(0.5) == 0.0
    assert param.value_at(1.0) == 1.0


def test_exponential_ramp_rejects_zero_target():
    with pytest.raises(ValueError):
        _param().exponential_ramp_to_value_at_time(0.0, 1.0)


def test_cancel_scheduled_values_drops_later_events():
    param = _param()
    param.set_value_at_time(1.0, 0.0)
    param.linear_ramp_to_value_at_time(2.0, 1.0)
    param.set_value_at_time(5.0, 3.0)

    param.cancel_scheduled_values(1.0)

    assert len(param.events) == 1
    assert param.value_at(4.0) == 1.0


def test_render_matches_pointwise_values():
    param = _param()
    param.set_value_at_time(0.0, 0.0)
    param.linear_ramp_to_value_at_time(1.0, 0.01)
    param.exponential_ramp_to_value_at_time(0.01, 0.05)

    block = param.render(0.0, 1_200, 24_000)

    for index in (0, 120, 240, 600, 1_199):
        assert block[index] == pytest.approx(param.value_at(index / 24_000))
    assert np.all(np.diff(block[:240]) > 0.0)
    assert np.all(np.diff(block[241:]) < 0.0)
