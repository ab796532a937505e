import asyncio
import random

import pytest

from askbot.remote.countdown import arm_countdown, checkpoints_below
from askbot.remote.pending import (
    TIMEOUT_SENTINEL,
    PendingQuestion,
    PendingRegistry,
    QuestionState,
)


def _pending(loop, pid="q1", **kwargs):
    return PendingQuestion(id=pid, future=loop.create_future(), **kwargs)


async def test_resolve_is_single_use():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    pending = registry.register(_pending(loop))
    registry.bind_delivery(pending, "111", "10")

    assert registry.resolve(pending, "yes", QuestionState.ANSWERED) is True
    assert registry.resolve(pending, TIMEOUT_SENTINEL, QuestionState.TIMED_OUT) is False

    assert await pending.future == "yes"
    assert pending.state == QuestionState.ANSWERED
    assert "q1" not in registry
    assert registry.by_delivery("111", "10") is None


async def test_timeout_answer_races_have_exactly_one_winner():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    rng = random.Random(7)
    wins: dict[str, int] = {}
    observed: dict[str, int] = {}

    def attempt(p, value, state):
        if registry.resolve(p, value, state):
            wins[p.id] = wins.get(p.id, 0) + 1

    pendings = []
    for i in range(1000):
        p = registry.register(_pending(loop, pid=f"q{i}"))
        registry.bind_delivery(p, "111", str(i))
        p.future.add_done_callback(lambda f, pid=p.id: observed.__setitem__(pid, observed.get(pid, 0) + 1))
        racers = [
            (p, TIMEOUT_SENTINEL, QuestionState.TIMED_OUT),
            (p, f"answer-{i}", QuestionState.ANSWERED),
        ]
        rng.shuffle(racers)
        for args in racers:
            loop.call_soon(attempt, *args)
        pendings.append(p)

    await asyncio.sleep(0.01)

    assert len(registry) == 0
    assert all(wins[p.id] == 1 for p in pendings)
    assert all(observed[p.id] == 1 for p in pendings)
    for p in pendings:
        result = p.future.result()
        if p.state == QuestionState.TIMED_OUT:
            assert result == TIMEOUT_SENTINEL
        else:
            assert result.startswith("answer-")


async def test_resolution_cancels_timers():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    pending = registry.register(_pending(loop))
    fired = []
    pending.handles.append(loop.call_later(0.05, fired.append, "timeout"))
    pending.handles.extend(arm_countdown(0.1, fired.append, checkpoints=[0.05]))

    registry.resolve(pending, None, QuestionState.CANCELLED)
    await asyncio.sleep(0.15)

    assert fired == []
    assert pending.handles == []


async def test_first_for_endpoint_uses_registration_order():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    first = registry.register(_pending(loop, pid="a"))
    second = registry.register(_pending(loop, pid="b"))
    registry.bind_delivery(second, "111", "2")
    registry.bind_delivery(first, "111", "1")

    assert registry.first_for_endpoint("111") is first
    assert registry.first_for_endpoint("222") is None

    registry.resolve(first, "x", QuestionState.ANSWERED)
    assert registry.first_for_endpoint("111") is second


async def test_delivery_key_maps_to_one_question():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    a = registry.register(_pending(loop, pid="a"))
    b = registry.register(_pending(loop, pid="b"))
    registry.bind_delivery(a, "111", "5")

    with pytest.raises(ValueError):
        registry.bind_delivery(b, "111", "5")


async def test_bind_after_resolution_is_ignored():
    loop = asyncio.get_running_loop()
    registry = PendingRegistry()
    pending = registry.register(_pending(loop))
    registry.resolve(pending, TIMEOUT_SENTINEL, QuestionState.TIMED_OUT)

    registry.bind_delivery(pending, "111", "9")

    assert registry.by_delivery("111", "9") is None
    assert pending.deliveries == {}


def test_checkpoints_below_timeout():
    assert checkpoints_below(60) == [30, 15, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1]
    assert checkpoints_below(12) == [10, 9, 8, 7, 6, 5, 4, 3, 2, 1]
    assert checkpoints_below(30) == [15, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1]
    assert checkpoints_below(1) == []
