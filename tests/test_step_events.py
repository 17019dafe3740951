import pytest

from tracker.scheduler import StepEvent
from tracker.step_events import StepEventQueue


def _event(step: int) -> StepEvent:
    return StepEvent(step=step, track_ids=(), fired_at_ms=step * 100.0)


def test_queue_is_fifo():
    queue = StepEventQueue(4)
    queue.push(_event(0))
    queue.push(_event(1))

    assert queue.latest().step == 1
    assert queue.pop_next().step == 0
    assert queue.pop_next().step == 1
    assert queue.pop_next() is None


def test_queue_drops_oldest_when_full():
    queue = StepEventQueue(3)
    for step in range(5):
        queue.push(_event(step))

    assert queue.dropped == 2
    assert [event.step for event in queue.drain()] == [2, 3, 4]
    assert len(queue) == 0


def test_queue_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        StepEventQueue(0)


def test_queue_iterates_without_consuming():
    queue = StepEventQueue()
    queue.push(_event(0))
    queue.push(_event(1))

    assert [event.step for event in queue] == [0, 1]
    assert len(queue) == 2
