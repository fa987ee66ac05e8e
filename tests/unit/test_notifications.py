"""Unit tests for the Telegram notifier."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from flexloan.config import TelegramConfig
from flexloan.notifications.telegram import MAX_MESSAGE_LENGTH, TelegramNotifier


@pytest.fixture()
def telegram_notifier() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(
            enabled=True,
            alert_bot_token="alert-tok",
            log_bot_token="log-tok",
            chat_id="12345",
        )
    )


def _mock_session(status: int) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_alert_success(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(200)
        with patch("flexloan.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("flexloan.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("ratio 95%", subject="Danger")

        assert result is True
        url = session.post.call_args[0][0]
        payload = session.post.call_args.kwargs["json"]
        assert "botalert-tok" in url
        assert payload["text"].startswith("<b>Danger</b>")
        assert payload["disable_notification"] is False

    @pytest.mark.asyncio
    async def test_send_alert_failure(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(403)
        with patch("flexloan.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("flexloan.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("test alert")

        assert result is False

    @pytest.mark.asyncio
    async def test_send_log_uses_log_bot_silently(
        self, telegram_notifier: TelegramNotifier
    ) -> None:
        session = _mock_session(200)
        with patch("flexloan.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("flexloan.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_log("sweep done")

        assert result is True
        assert "botlog-tok" in session.post.call_args[0][0]
        assert session.post.call_args.kwargs["json"]["disable_notification"] is True

    @pytest.mark.asyncio
    async def test_long_message_truncated(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(200)
        with patch("flexloan.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("flexloan.notifications.telegram.aiohttp.TCPConnector"):
                await telegram_notifier.send_log("x" * 10_000)

        assert len(session.post.call_args.kwargs["json"]["text"]) == MAX_MESSAGE_LENGTH

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(self) -> None:
        notifier = TelegramNotifier(TelegramConfig(enabled=True))
        with patch("flexloan.notifications.telegram.aiohttp.ClientSession") as session_cls:
            assert await notifier.send_alert("x") is False
        session_cls.assert_not_called()
