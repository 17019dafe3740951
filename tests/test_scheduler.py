import asyncio

import pytest

from domain.models import TrackId, create_default_pattern
from tracker.scheduler import StepEvent, StepScheduler


def _make_pattern(tempo: float = 128.0, active=()):
    pattern = create_default_pattern()
    pattern.tempo = tempo
    for track_id, step in active:
        pattern.track(track_id).steps[step].active = True
    return pattern


def _recording_scheduler(pattern, clock):
    fired: list[tuple[int, list[str]]] = []
    scheduler = StepScheduler(pattern, time_source=clock)
    scheduler.on_step(lambda step, tracks: fired.append((step, [track.id.value for track in tracks])))
    return scheduler, fired


def test_step_duration_at_default_tempo(clock):
    scheduler = StepScheduler(_make_pattern(), time_source=clock)

    assert scheduler.step_duration_ms == pytest.approx(117.1875)


@pytest.mark.parametrize("tempo", [40.0, 64.0, 128.0, 200.0, 300.0])
def test_steps_fire_once_per_step_length(tempo, clock):
    scheduler, fired = _recording_scheduler(_make_pattern(tempo), clock)
    duration = 60_000.0 / tempo / 4.0
    scheduler.start()

    for _ in range(20):
        clock.advance(duration * 0.5)
        assert scheduler.tick() is None
        clock.advance(duration * 0.5 + 0.001)
        assert scheduler.tick() is not None

    assert [step for step, _ in fired] == [index % 16 for index in range(20)]


def test_late_tick_fires_a_single_step(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()

    clock.advance(scheduler.step_duration_ms * 10)
    scheduler.tick()
    scheduler.tick()

    assert fired == [(0, [])]
    assert scheduler.current_step == 1


def test_active_tracks_reach_callback(clock):
    pattern = _make_pattern(active=[("bd", 0), ("ch", 0), ("sd", 1)])
    scheduler, fired = _recording_scheduler(pattern, clock)
    scheduler.start()

    first = scheduler.tick(117.1875)
    second = scheduler.tick(234.375)

    assert fired == [(0, ["bd", "ch"]), (1, ["sd"])]
    assert first == StepEvent(step=0, track_ids=(TrackId.BASS_DRUM, TrackId.CLOSED_HIHAT), fired_at_ms=117.1875)
    assert second.track_ids == (TrackId.SNARE_DRUM,)
    assert scheduler.last_event is second


def test_first_pattern_cycle_scenario(clock):
    pattern = _make_pattern(active=[("bd", 0)])
    scheduler, fired = _recording_scheduler(pattern, clock)

    scheduler.start()
    scheduler.tick(117.1875)
    assert fired == [(0, ["bd"])]
    assert scheduler.get_current_step() == 1

    scheduler.tick(234.375)
    assert fired[-1] == (1, [])
    assert scheduler.get_current_step() == 2


def test_cursor_wraps_after_sixteen_steps(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()

    for _ in range(17):
        clock.advance(scheduler.step_duration_ms + 0.01)
        scheduler.tick()

    assert [step for step, _ in fired][-2:] == [15, 0]
    assert scheduler.current_step == 1


def test_stop_preserves_cursor_and_silences_ticks(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()
    for _ in range(3):
        clock.advance(200.0)
        scheduler.tick()

    scheduler.stop()
    clock.advance(1_000.0)
    assert scheduler.tick() is None
    assert scheduler.current_step == 3

    scheduler.start()
    assert scheduler.tick() is None  # timing restarts from the start call
    clock.advance(200.0)
    scheduler.tick()
    assert fired[-1][0] == 3


def test_reset_returns_to_first_step(clock):
    scheduler, _ = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()
    clock.advance(200.0)
    scheduler.tick()

    scheduler.reset()

    assert scheduler.current_step == 0
    assert scheduler.is_running()


def test_set_pattern_while_running_keeps_cursor(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()
    for _ in range(5):
        clock.advance(200.0)
        scheduler.tick()

    scheduler.set_pattern(_make_pattern(active=[("rs", 5)]))
    assert scheduler.is_running()
    assert scheduler.current_step == 5

    clock.advance(200.0)
    scheduler.tick()
    assert fired[-1] == (5, ["rs"])


def test_set_pattern_while_stopped_stays_stopped(clock):
    scheduler, _ = _recording_scheduler(_make_pattern(), clock)

    scheduler.set_pattern(_make_pattern(active=[("rs", 0)]))

    assert not scheduler.is_running()
    assert scheduler.current_step == 0
    assert scheduler.pattern.track("rs").steps[0].active


def test_set_tempo_takes_effect_on_next_tick(clock):
    pattern = _make_pattern(tempo=120.0)
    scheduler, fired = _recording_scheduler(pattern, clock)
    scheduler.start()

    scheduler.set_tempo(60.0)
    assert scheduler.is_running()
    assert scheduler.step_duration_ms == pytest.approx(250.0)
    assert pattern.tempo == 120.0

    clock.advance(200.0)
    assert scheduler.tick() is None
    clock.advance(50.0)
    assert scheduler.tick() is not None


def test_set_tempo_ignores_invalid_values(clock):
    scheduler = StepScheduler(_make_pattern(), time_source=clock)

    scheduler.set_tempo(0)
    scheduler.set_tempo(float("nan"))

    assert scheduler.tempo == 128.0


def test_callback_exceptions_propagate(clock):
    scheduler = StepScheduler(_make_pattern(), time_source=clock)

    def explode(step, tracks):
        raise RuntimeError("boom")

    scheduler.on_step(explode)
    scheduler.start()
    clock.advance(200.0)

    with pytest.raises(RuntimeError):
        scheduler.tick()


@pytest.mark.asyncio
async def test_run_loop_ticks_until_stopped(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()
    task = asyncio.create_task(scheduler.run(0.001))

    clock.advance(200.0)
    for _ in range(20):
        await asyncio.sleep(0.001)
        if fired:
            break
    scheduler.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert fired == [(0, [])]


def test_pattern_swaps_faster_than_a_step_do_not_delay_firing(clock):
    scheduler, fired = _recording_scheduler(_make_pattern(), clock)
    scheduler.start()

    for index in range(40):
        clock.advance(50.0)
        scheduler.set_pattern(_make_pattern(active=[("bd", index % 16)]))
        scheduler.tick()

    # 2 s at 117.1875 ms per step, one step at most per 50 ms tick.
    assert len(fired) >= 13
    assert scheduler.is_running()


def test_pattern_length_is_fixed(clock):
    with pytest.raises(TypeError):
        StepScheduler(_make_pattern(), time_source=clock, steps=8)
