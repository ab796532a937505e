import asyncio

import pytest

from askbot.bus.events import InboundEvent
from askbot.exchange import AskOutcome, InteractiveExchange, StopOutcome
from askbot.local.mailbox import FileMailbox
from askbot.local.manager import LocalChannelManager
from askbot.remote.manager import RemoteChannelManager
from askbot.session.manager import SessionStore


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def transport(make_transport):
    return make_transport(["111"])


@pytest.fixture
def exchange(store, transport, local_config, launcher):
    local = LocalChannelManager(store, local_config, launcher)
    remote = RemoteChannelManager(transport, store, checkpoints=[])
    return InteractiveExchange(store, local=local, remote=remote, default_timeout_s=5, project_name="demo")


async def answer_local(mailbox: FileMailbox, text: str):
    """Minimal chat window: heartbeat plus a single answer."""
    answered = False
    while not mailbox.close_requested():
        try:
            mailbox.touch_heartbeat()
            question = mailbox.read_question()
            if question and not answered:
                mailbox.respond(question["id"], text)
                answered = True
        except OSError:
            return
        await asyncio.sleep(0.02)


async def test_unanswered_remote_ask_times_out(exchange):
    await exchange.start()
    try:
        result = await exchange.ask("Continue?", options=["yes", "no"], timeout_s=0.2)
    finally:
        await exchange.shutdown()

    assert result.outcome == AskOutcome.TIMED_OUT
    assert result.describe() == "User did not reply: Timeout occurred."


async def test_button_click_answers_remote_ask(exchange, transport, wait_until):
    await exchange.start()
    try:
        task = asyncio.create_task(exchange.ask("Pick one", options=["a", "b"]))
        await wait_until(lambda: transport.sent)
        await transport.bus.publish_inbound(InboundEvent(
            endpoint_id="111",
            kind="callback",
            payload="b",
            delivery_ref=transport.sent[0].ref,
            callback_id="cb-1",
        ))
        result = await task
    finally:
        await exchange.shutdown()

    assert result.outcome == AskOutcome.ANSWERED
    assert result.text == "b"
    assert result.describe() == "User replied: b"


async def test_local_session_lifecycle(exchange, launcher, wait_until):
    started = await exchange.start_session("Review", channel="local")
    assert started.ok
    assert started.channel == "local"
    session_id = started.session_id

    _, work_dir = launcher.launched[0]
    ui = asyncio.create_task(answer_local(FileMailbox(work_dir, session_id), "yes"))

    result = await exchange.ask("Approve?", session_id=session_id)
    assert result.outcome == AskOutcome.ANSWERED
    assert result.text == "yes"

    first = await exchange.stop_session(session_id)
    assert first.outcome == StopOutcome.STOPPED
    second = await exchange.stop_session(session_id)
    assert second.outcome == StopOutcome.ALREADY_STOPPED

    after = await exchange.ask("Still there?", session_id=session_id)
    assert after.outcome == AskOutcome.NOT_FOUND
    assert session_id in after.describe()

    await ui
    await wait_until(lambda: session_id not in exchange.store)
    assert (await exchange.stop_session(session_id)).outcome == StopOutcome.ALREADY_STOPPED


async def test_remote_session_lifecycle(exchange, transport, wait_until):
    started = await exchange.start_session("Review")
    assert started.ok
    assert started.channel == "remote"
    session_id = started.session_id

    task = asyncio.create_task(exchange.ask("Approve?", session_id=session_id))
    await wait_until(lambda: len(transport.sent) == 2)
    await exchange.remote.handle_event(InboundEvent(endpoint_id="111", kind="message", payload=""))

    result = await task
    assert result.outcome == AskOutcome.ANSWERED
    assert result.describe() == "User replied with empty input."

    assert (await exchange.stop_session(session_id)).outcome == StopOutcome.STOPPED
    assert (await exchange.stop_session(session_id)).outcome == StopOutcome.ALREADY_STOPPED
    assert (await exchange.ask("More?", session_id=session_id)).outcome == AskOutcome.NOT_FOUND


async def test_unknown_session(exchange):
    assert (await exchange.stop_session("nope")).outcome == StopOutcome.NOT_FOUND
    assert (await exchange.ask("Hi", session_id="nope")).outcome == AskOutcome.NOT_FOUND


async def test_shutdown_reports_cleanup(exchange, transport, wait_until):
    await exchange.start()
    task = asyncio.create_task(exchange.ask("Wait for me", timeout_s=5))
    await wait_until(lambda: transport.sent)

    await exchange.shutdown()

    result = await task
    assert result.outcome == AskOutcome.CLEANUP
    assert transport.stopped == 1


async def test_local_launch_failure_is_plain_text(store, local_config, failing_launcher):
    exchange = InteractiveExchange(store, local=LocalChannelManager(store, local_config, failing_launcher))

    started = await exchange.start_session("Review")
    assert started.ok is False
    assert "no terminal available" in started.message

    result = await exchange.ask("Hello?")
    assert result.outcome == AskOutcome.FAILED
    assert "no terminal available" in result.describe()


async def test_notify_goes_to_remote_when_configured(exchange, transport):
    text = await exchange.notify("Deploy done")

    assert text == "Notification sent: demo - Deploy done"
    assert transport.sent[0].text.startswith("🔔")


async def test_remote_channel_without_remote_manager(store, local_config, launcher):
    exchange = InteractiveExchange(store, local=LocalChannelManager(store, local_config, launcher))

    result = await exchange.ask("Hi", channel="remote")
    assert result.outcome == AskOutcome.FAILED
    started = await exchange.start_session("x", channel="remote")
    assert started.ok is False


async def test_shutdown_during_local_ask_reports_cleanup(store, local_config, launcher, wait_until):
    exchange = InteractiveExchange(store, local=LocalChannelManager(store, local_config, launcher))
    await exchange.start()

    task = asyncio.create_task(exchange.ask("Still there?", channel="local", timeout_s=5))
    await wait_until(lambda: launcher.launched and len(store) == 1)

    await exchange.shutdown()

    result = await task
    assert result.outcome == AskOutcome.CLEANUP
    assert len(store) == 0
