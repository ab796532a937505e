import asyncio
import os
import time
from datetime import datetime, timedelta

import pytest

from askbot.errors import ProcessLaunchError
from askbot.local.mailbox import FileMailbox
from askbot.local.manager import CLOSED_SENTINEL, LocalChannelManager, decode_payload
from askbot.session.manager import LocalSession, SessionStore


async def fake_ui(mailbox: FileMailbox, answers: list[str], beat_every: float = 0.05):
    """Stand-in for the chat window: keeps the heartbeat fresh and answers questions in order."""
    answered: set[str] = set()
    pending = list(answers)
    while not mailbox.close_requested():
        try:
            mailbox.touch_heartbeat()
            question = mailbox.read_question()
            if question and question["id"] not in answered and pending:
                answered.add(question["id"])
                mailbox.respond(question["id"], pending.pop(0))
        except OSError:
            # session directory already removed
            return
        await asyncio.sleep(beat_every)


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def manager(store, local_config, launcher):
    return LocalChannelManager(store, local_config, launcher)


def _mailbox(manager, session_id):
    session = manager.store.get(session_id)
    return FileMailbox(session.work_dir, session_id)


async def test_start_session_launches_ui_with_payload(manager, launcher, tmp_path):
    session_id = await manager.start_session("Review", timeout_s=30)

    payload, work_dir = launcher.launched[0]
    assert work_dir == tmp_path / f"askbot-chat-{session_id}"
    assert work_dir.is_dir()
    assert decode_payload(payload) == {
        "sessionId": session_id,
        "title": "Review",
        "outputDir": str(work_dir),
        "timeoutSeconds": 30,
    }
    session = manager.store.get(session_id)
    assert isinstance(session, LocalSession)
    assert session.is_active


async def test_launch_failure_removes_directory(store, local_config, failing_launcher, tmp_path):
    manager = LocalChannelManager(store, local_config, failing_launcher)

    with pytest.raises(ProcessLaunchError):
        await manager.start_session("Review")

    assert list(tmp_path.iterdir()) == []
    assert len(store) == 0


async def test_ask_and_stop_round_trip(manager, tmp_path, wait_until):
    session_id = await manager.start_session("Review")
    mailbox = _mailbox(manager, session_id)
    ui = asyncio.create_task(fake_ui(mailbox, ["yes"]))

    assert await manager.ask(session_id, "Approve?") == "yes"
    assert not any(p.name.startswith("response-") for p in mailbox.root.iterdir())

    assert await manager.stop_session(session_id) is True
    assert mailbox.close_requested()
    assert await manager.stop_session(session_id) is False
    assert await manager.ask(session_id, "Again?") is None

    await ui
    await wait_until(lambda: session_id not in manager.store)
    assert not mailbox.root.exists()
    assert manager.store.was_closed(session_id)


async def test_options_are_written_with_the_question(manager):
    session_id = await manager.start_session("Review")
    mailbox = _mailbox(manager, session_id)
    mailbox.touch_heartbeat()

    task = asyncio.create_task(manager.ask(session_id, "Pick", options=["a", "b"]))
    await asyncio.sleep(0.05)
    question = mailbox.read_question()
    assert question["text"] == "Pick"
    assert question["options"] == ["a", "b"]

    mailbox.respond(question["id"], "b")
    assert await task == "b"


async def test_poll_window_elapsed_returns_closed_sentinel(manager):
    session_id = await manager.start_session("Review", timeout_s=0.2)
    mailbox = _mailbox(manager, session_id)
    ui = asyncio.create_task(fake_ui(mailbox, []))

    assert await manager.ask(session_id, "Silent?") == CLOSED_SENTINEL

    await manager.stop_session(session_id)
    await ui


async def test_stale_heartbeat_ends_the_wait(manager):
    session_id = await manager.start_session("Review")
    mailbox = _mailbox(manager, session_id)
    mailbox.touch_heartbeat()
    past = time.time() - 10
    os.utime(mailbox.heartbeat_path, (past, past))

    assert await manager.ask(session_id, "Hello?") is None
    assert manager.store.get(session_id).is_active is False


async def test_missing_heartbeat_is_live_only_during_startup_grace(manager):
    session_id = await manager.start_session("Review")
    assert manager.is_live(session_id) is True

    session = manager.store.get(session_id)
    session.created_at = datetime.now() - timedelta(seconds=5)

    assert manager.is_live(session_id) is False
    assert session.is_active is False


async def test_unbounded_grace_keeps_missing_heartbeat_live(store, local_config, launcher):
    local_config.startup_grace_s = None
    manager = LocalChannelManager(store, local_config, launcher)
    session_id = await manager.start_session("Review")
    store.get(session_id).created_at = datetime.now() - timedelta(hours=1)

    assert manager.is_live(session_id) is True


async def test_liveness_window_follows_heartbeat(manager, local_config, wait_until):
    session_id = await manager.start_session("Review")
    mailbox = _mailbox(manager, session_id)
    await manager.start()

    ui = asyncio.create_task(fake_ui(mailbox, [], beat_every=0.1))
    loop = asyncio.get_running_loop()
    end = loop.time() + 1.0
    while loop.time() < end:
        assert manager.is_live(session_id) is True
        await asyncio.sleep(0.05)

    ui.cancel()
    stopped_at = loop.time()
    await wait_until(lambda: session_id not in manager.store, timeout=2.0)
    elapsed = loop.time() - stopped_at

    assert elapsed <= local_config.heartbeat_window_s + local_config.sweep_interval_s + 0.2
    assert not mailbox.root.exists()
    await manager.shutdown()


async def test_sweep_reaps_dead_sessions_only(manager, launcher):
    alive = await manager.start_session("alive")
    dead = await manager.start_session("dead")
    _mailbox(manager, alive).touch_heartbeat()
    dead_box = _mailbox(manager, dead)
    dead_box.touch_heartbeat()
    past = time.time() - 10
    os.utime(dead_box.heartbeat_path, (past, past))

    assert await manager.sweep() == 1

    assert alive in manager.store
    assert dead not in manager.store
    assert not dead_box.root.exists()
    assert launcher.terminated == [None]


async def test_ask_once_cleans_up(manager, launcher, wait_until):
    async def answer_when_launched():
        await wait_until(lambda: launcher.launched)
        _, work_dir = launcher.launched[0]
        session_id = work_dir.name.removeprefix("askbot-chat-")
        await fake_ui(FileMailbox(work_dir, session_id), ["sure"])

    ui = asyncio.create_task(answer_when_launched())

    assert await manager.ask_once("demo", "Go?", timeout_s=2) == "sure"
    await ui
    await wait_until(lambda: len(manager.store) == 0)


async def test_shutdown_stops_everything(manager, tmp_path):
    first = await manager.start_session("one")
    second = await manager.start_session("two")

    await manager.shutdown()

    assert len(manager.store) == 0
    assert manager.store.was_closed(first)
    assert manager.store.was_closed(second)
    assert list(tmp_path.iterdir()) == []


async def test_sweep_leaves_a_stopping_session_alone(store, local_config, launcher):
    local_config.stop_grace_s = 0.3
    manager = LocalChannelManager(store, local_config, launcher)
    session_id = await manager.start_session("Review")
    mailbox = _mailbox(manager, session_id)
    mailbox.touch_heartbeat()

    stopping = asyncio.create_task(manager.stop_session(session_id))
    await asyncio.sleep(0.05)

    assert await manager.sweep() == 0
    assert mailbox.root.exists()
    assert launcher.terminated == []

    assert await stopping is True
    assert launcher.terminated == [None]
    assert mailbox.root.exists()
    await manager.shutdown()
