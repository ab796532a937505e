from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import NetworkError

from askbot.bus.queue import MessageBus
from askbot.channels.telegram import TelegramTransport
from askbot.config.schema import TelegramConfig
from askbot.errors import DeliveryError


def _fake_application(get_me_error=None):
    app = MagicMock()
    app.initialize = AsyncMock()
    app.start = AsyncMock()
    app.stop = AsyncMock()
    app.shutdown = AsyncMock()
    app.running = True
    app.updater.running = False
    app.updater.start_polling = AsyncMock()
    app.bot.get_me = AsyncMock(side_effect=get_me_error, return_value=MagicMock(username="askbot_test"))

    builder = MagicMock()
    for step in ("token", "request", "get_updates_request", "proxy", "get_updates_proxy"):
        getattr(builder, step).return_value = builder
    builder.build.return_value = app
    return app, builder


@pytest.fixture
def config():
    return TelegramConfig(enabled=True, token="123:abc", allow_from=["111"])


async def test_failed_connect_releases_the_application(config):
    app, builder = _fake_application(get_me_error=NetworkError("unreachable"))
    transport = TelegramTransport(config, MessageBus())

    with patch("askbot.channels.telegram.HTTPXRequest"), \
            patch("askbot.channels.telegram.Application") as application:
        application.builder.return_value = builder
        with pytest.raises(DeliveryError, match="Could not connect to Telegram"):
            await transport.start()

    app.stop.assert_awaited_once()
    app.shutdown.assert_awaited_once()
    assert transport._app is None
    assert not transport.is_running


async def test_successful_start_polls(config):
    app, builder = _fake_application()
    transport = TelegramTransport(config, MessageBus())

    with patch("askbot.channels.telegram.HTTPXRequest"), \
            patch("askbot.channels.telegram.Application") as application:
        application.builder.return_value = builder
        await transport.start()

    assert transport.is_running
    app.updater.start_polling.assert_awaited_once()

    await transport.stop()
    app.shutdown.assert_awaited_once()


async def test_missing_token_is_a_delivery_error(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    transport = TelegramTransport(TelegramConfig(allow_from=["111"]), MessageBus())

    with pytest.raises(DeliveryError):
        await transport.start()
