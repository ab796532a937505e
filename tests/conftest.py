import asyncio
from dataclasses import dataclass
from pathlib import Path

import pytest

from askbot.bus.queue import MessageBus
from askbot.channels.base import ChannelTransport
from askbot.config.schema import LocalConfig
from askbot.errors import DeliveryError, ProcessLaunchError


@dataclass
class Sent:
    endpoint_id: str
    ref: str
    text: str
    options: list[str] | None


@dataclass
class Edit:
    endpoint_id: str
    ref: str
    text: str
    options: list[str] | None


class FakeTransport(ChannelTransport):
    """In-memory transport: records every outbound call, refs are unique across endpoints."""

    name = "fake"

    def __init__(self, allow_from, bus=None):
        super().__init__(allow_from, bus or MessageBus())
        self.sent: list[Sent] = []
        self.edits: list[Edit] = []
        self.answers: list[tuple[str, str]] = []
        self.fail_endpoints: set[str] = set()
        self.fail_edits = False
        self.started = 0
        self.stopped = 0
        self._next_ref = 1000

    async def start(self):
        self.started += 1
        self._running = True

    async def stop(self):
        self.stopped += 1
        self._running = False

    async def send(self, endpoint_id, html_text, options=None):
        if endpoint_id in self.fail_endpoints:
            raise DeliveryError("send refused", endpoint_id)
        self._next_ref += 1
        ref = str(self._next_ref)
        self.sent.append(Sent(endpoint_id, ref, html_text, list(options) if options else None))
        return ref

    async def edit(self, endpoint_id, delivery_ref, html_text, options=None):
        if self.fail_edits:
            raise DeliveryError("edit refused", endpoint_id)
        self.edits.append(Edit(endpoint_id, delivery_ref, html_text, list(options) if options else None))

    async def answer_callback(self, callback_id, text):
        self.answers.append((callback_id, text))

    def sent_to(self, endpoint_id):
        return [s for s in self.sent if s.endpoint_id == endpoint_id]


class FakeLauncher:
    """Launcher double: records launches and terminations, never spawns anything."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.launched: list[tuple[str, Path]] = []
        self.terminated: list[object] = []

    async def launch(self, payload, work_dir):
        if self.fail:
            raise ProcessLaunchError("no terminal available")
        self.launched.append((payload, work_dir))
        return None

    def terminate(self, process):
        self.terminated.append(process)


async def _wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def make_transport():
    def factory(allow_from=("111",)):
        return FakeTransport(list(allow_from))
    return factory


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def failing_launcher():
    return FakeLauncher(fail=True)


@pytest.fixture
def local_config(tmp_path):
    return LocalConfig(
        poll_interval_s=0.01,
        heartbeat_window_s=0.3,
        heartbeat_interval_s=0.05,
        sweep_interval_s=0.1,
        startup_delay_s=0.0,
        stop_grace_s=0.0,
        cleanup_delay_s=0.05,
        startup_grace_s=0.5,
        default_timeout_s=2.0,
        temp_dir=str(tmp_path),
    )
