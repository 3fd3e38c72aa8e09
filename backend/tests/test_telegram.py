from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.exceptions import TelegramNetworkError
from aiogram.methods import SendMessage

from mentor_relay.chat import ChatControl, ChatGatewayError, TelegramChatGateway, build_keyboard
from mentor_relay.config import Settings
from mentor_relay.types import ActionKind, ControlToken


def _settings(**overrides: object) -> Settings:
    base: dict[str, object] = {
        "telegram_bot_token": "123456:TEST-token",
        "telegram_chat_id": "-100200300",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)


def _bot() -> MagicMock:
    bot = MagicMock()
    bot.get_me = AsyncMock(return_value=SimpleNamespace(username="mentor_relay_bot"))
    bot.set_webhook = AsyncMock(return_value=True)
    bot.get_chat = AsyncMock(return_value=SimpleNamespace(id=-100200300))
    bot.send_message = AsyncMock(return_value=SimpleNamespace(message_id=42))
    bot.edit_message_text = AsyncMock()
    bot.answer_callback_query = AsyncMock(return_value=True)
    bot.session.close = AsyncMock()
    return bot


def _network_error() -> TelegramNetworkError:
    return TelegramNetworkError(method=SendMessage(chat_id=1, text="x"), message="timeout")


def test_build_keyboard_renders_controls() -> None:
    keyboard = build_keyboard(
        [
            ChatControl(label="Accept request", token=ControlToken(ActionKind.ACCEPT, "r1")),
            ChatControl(label="Request claimed", token=ControlToken(ActionKind.CLAIMED, "r1"), disabled=True),
        ]
    )

    row = keyboard.inline_keyboard[0]
    assert [button.text for button in row] == ["Accept request", "✔ Request claimed"]
    assert [button.callback_data for button in row] == ["mentor-accept:r1", "mentor-claimed:r1"]
    assert build_keyboard([]) is None


@pytest.mark.asyncio
async def test_start_marks_ready_and_registers_webhook() -> None:
    bot = _bot()
    gateway = TelegramChatGateway(
        _settings(telegram_webhook_url="https://relay.example.com/webhook/telegram", telegram_webhook_secret="s3"),
        bot=bot,
    )

    await gateway.start()

    assert gateway.ready is True
    bot.set_webhook.assert_awaited_once_with(
        url="https://relay.example.com/webhook/telegram",
        secret_token="s3",
        allowed_updates=["callback_query"],
    )


@pytest.mark.asyncio
async def test_start_without_token_stays_not_ready() -> None:
    gateway = TelegramChatGateway(_settings(telegram_bot_token=None))

    await gateway.start()

    assert gateway.ready is False
    with pytest.raises(ChatGatewayError):
        await gateway.send_message("-100200300", "hi", [])


@pytest.mark.asyncio
async def test_start_login_failure_stays_not_ready() -> None:
    bot = _bot()
    bot.get_me.side_effect = _network_error()
    gateway = TelegramChatGateway(_settings(), bot=bot)

    await gateway.start()

    assert gateway.ready is False


@pytest.mark.asyncio
async def test_send_and_update_message() -> None:
    bot = _bot()
    gateway = TelegramChatGateway(_settings(), bot=bot)
    await gateway.start()
    control = ChatControl(label="Accept request", token=ControlToken(ActionKind.ACCEPT, "r1"))

    await gateway.fetch_channel("-100200300")
    message_ref = await gateway.send_message("-100200300", "🆘 Mentor Needed", [control])
    await gateway.update_message("-100200300", message_ref, "done", [])
    await gateway.send_private("cb-1", "thanks")

    assert message_ref == "42"
    bot.get_chat.assert_awaited_once_with(chat_id="-100200300")
    sent = bot.send_message.await_args.kwargs
    assert sent["chat_id"] == "-100200300"
    assert sent["reply_markup"].inline_keyboard[0][0].callback_data == "mentor-accept:r1"
    bot.edit_message_text.assert_awaited_once_with(
        text="done",
        chat_id="-100200300",
        message_id=42,
        reply_markup=None,
    )
    bot.answer_callback_query.assert_awaited_once_with(callback_query_id="cb-1", text="thanks", show_alert=True)


@pytest.mark.asyncio
async def test_acknowledge_answers_callback_without_text() -> None:
    bot = _bot()
    gateway = TelegramChatGateway(_settings(), bot=bot)
    await gateway.start()

    await gateway.acknowledge("cb-1")

    bot.answer_callback_query.assert_awaited_once_with(callback_query_id="cb-1")

    bot.answer_callback_query.side_effect = _network_error()
    with pytest.raises(ChatGatewayError, match="Telegram callback answer failed"):
        await gateway.acknowledge("cb-2")


@pytest.mark.asyncio
async def test_telegram_errors_are_wrapped() -> None:
    bot = _bot()
    bot.send_message.side_effect = _network_error()
    bot.edit_message_text.side_effect = _network_error()
    gateway = TelegramChatGateway(_settings(), bot=bot)
    await gateway.start()

    with pytest.raises(ChatGatewayError, match="Telegram send failed"):
        await gateway.send_message("-100200300", "hi", [])
    with pytest.raises(ChatGatewayError, match="Telegram edit failed"):
        await gateway.update_message("-100200300", "42", "hi", [])


@pytest.mark.asyncio
async def test_close_resets_readiness() -> None:
    bot = _bot()
    gateway = TelegramChatGateway(_settings(), bot=bot)
    await gateway.start()

    await gateway.close()

    assert gateway.ready is False
    bot.session.close.assert_awaited_once()


def test_settings_parse_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    monkeypatch.setenv("MENTOR_CHAT_ID", "  -100999  ")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "   ")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example.com, https://b.example.com")

    settings = Settings(_env_file=None)

    assert settings.telegram_chat_id == "-100999"
    assert settings.telegram_bot_token is None
    assert settings.cors_origins == ["https://a.example.com", "https://b.example.com"]
    assert settings.rate_limit_max_requests == 10
