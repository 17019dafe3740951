import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from audio.engine import EngineConfig  # noqa: E402
from audio.output import AudioOutputGraph, OfflineOutput  # noqa: E402
from domain.models import Pattern, create_default_pattern  # noqa: E402
from tracker.session import DrumMachineSession  # noqa: E402


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class FailingDevice:
    """Output device whose start is always refused."""

    def __init__(self) -> None:
        self.attempts = 0

    def start(self, render) -> None:
        self.attempts += 1
        raise OSError("output device unavailable")

    def suspend(self) -> None:
        pass

    def close(self) -> None:
        pass


@pytest.fixture()
def engine_config() -> EngineConfig:
    return EngineConfig(sample_rate=24_000, block_size=256, channels=2, seed=1234)


@pytest.fixture()
def default_pattern() -> Pattern:
    return create_default_pattern()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def offline_device() -> OfflineOutput:
    return OfflineOutput(block_size=256)


@pytest.fixture()
def output_graph(engine_config: EngineConfig, offline_device: OfflineOutput) -> AudioOutputGraph:
    return AudioOutputGraph(engine_config, device=offline_device)


@pytest.fixture()
def session(engine_config: EngineConfig, offline_device: OfflineOutput, clock: FakeClock):
    return DrumMachineSession(
        config=engine_config,
        device=offline_device,
        time_source=clock,
        poll_interval=0.001,
    )
