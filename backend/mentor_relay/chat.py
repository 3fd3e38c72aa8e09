from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import structlog
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.token import TokenValidationError

from mentor_relay.config import Settings
from mentor_relay.types import ControlToken

logger = structlog.get_logger(__name__)


class ChatGatewayError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class ChatControl:
    label: str
    token: ControlToken
    disabled: bool = False


class ChatGateway(Protocol):
    @property
    def ready(self) -> bool: ...

    async def fetch_channel(self, channel_ref: str) -> Any: ...

    async def send_message(self, channel_ref: str, content: str, controls: Sequence[ChatControl]) -> str: ...

    async def update_message(
        self,
        channel_ref: str,
        message_ref: str,
        content: str,
        controls: Sequence[ChatControl],
    ) -> None: ...

    async def send_private(self, reply_ref: str, content: str) -> None: ...

    async def acknowledge(self, reply_ref: str) -> None: ...


def build_keyboard(controls: Sequence[ChatControl]) -> InlineKeyboardMarkup | None:
    """Render controls as one inline keyboard row.

    Telegram has no disabled buttons; a disabled control keeps its label and
    carries a token whose action the claim path ignores.
    """
    if not controls:
        return None
    buttons = [
        InlineKeyboardButton(
            text=f"✔ {control.label}" if control.disabled else control.label,
            callback_data=control.token.encode(),
        )
        for control in controls
    ]
    return InlineKeyboardMarkup(inline_keyboard=[buttons])


class TelegramChatGateway:
    def __init__(self, settings: Settings, bot: Bot | None = None) -> None:
        self._settings = settings
        self._bot = bot
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def start(self) -> None:
        if self._bot is None:
            if not self._settings.telegram_bot_token:
                logger.warning("telegram_token_missing", detail="TELEGRAM_BOT_TOKEN is missing. Bot will not start.")
                return
            try:
                self._bot = Bot(token=self._settings.telegram_bot_token)
            except TokenValidationError as exc:
                logger.error("telegram_token_invalid", error=str(exc))
                return

        try:
            me = await self._bot.get_me()
            if self._settings.telegram_webhook_url:
                await self._bot.set_webhook(
                    url=self._settings.telegram_webhook_url,
                    secret_token=self._settings.telegram_webhook_secret,
                    allowed_updates=["callback_query"],
                )
        except TelegramAPIError as exc:
            logger.error("telegram_login_failed", error=str(exc))
            return

        self._ready = True
        logger.info("telegram_bot_ready", username=me.username, webhook=bool(self._settings.telegram_webhook_url))

    async def close(self) -> None:
        self._ready = False
        if self._bot is not None:
            await self._bot.session.close()

    def _require_bot(self) -> Bot:
        if self._bot is None or not self._ready:
            raise ChatGatewayError("Telegram bot is not connected")
        return self._bot

    async def fetch_channel(self, channel_ref: str) -> Any:
        bot = self._require_bot()
        try:
            return await bot.get_chat(chat_id=channel_ref)
        except TelegramAPIError as exc:
            raise ChatGatewayError(f"Chat {channel_ref} not available: {exc}") from exc

    async def send_message(self, channel_ref: str, content: str, controls: Sequence[ChatControl]) -> str:
        bot = self._require_bot()
        try:
            message = await bot.send_message(
                chat_id=channel_ref,
                text=content,
                reply_markup=build_keyboard(controls),
            )
        except TelegramAPIError as exc:
            raise ChatGatewayError(f"Telegram send failed: {exc}") from exc
        return str(message.message_id)

    async def update_message(
        self,
        channel_ref: str,
        message_ref: str,
        content: str,
        controls: Sequence[ChatControl],
    ) -> None:
        bot = self._require_bot()
        try:
            await bot.edit_message_text(
                text=content,
                chat_id=channel_ref,
                message_id=int(message_ref),
                reply_markup=build_keyboard(controls),
            )
        except TelegramAPIError as exc:
            raise ChatGatewayError(f"Telegram edit failed: {exc}") from exc

    async def send_private(self, reply_ref: str, content: str) -> None:
        bot = self._require_bot()
        try:
            await bot.answer_callback_query(callback_query_id=reply_ref, text=content, show_alert=True)
        except TelegramAPIError as exc:
            raise ChatGatewayError(f"Telegram callback answer failed: {exc}") from exc

    async def acknowledge(self, reply_ref: str) -> None:
        bot = self._require_bot()
        try:
            await bot.answer_callback_query(callback_query_id=reply_ref)
        except TelegramAPIError as exc:
            raise ChatGatewayError(f"Telegram callback answer failed: {exc}") from exc
