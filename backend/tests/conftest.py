from __future__ import annotations

from typing import Any, Sequence

import anyio
import pytest

from mentor_relay.chat import ChatControl, ChatGatewayError
from mentor_relay.config import get_settings
from mentor_relay.dispatcher import NotificationDispatcher
from mentor_relay.gateway import RequestGateway
from mentor_relay.main import build_request_gateway, create_app
from mentor_relay.store import InMemoryRequestStore

CHANNEL = "-100200300"


class FakeChatGateway:
    def __init__(self, *, ready: bool = True) -> None:
        self.ready = ready
        self.sent: list[tuple[str, str, list[ChatControl]]] = []
        self.updated: list[tuple[str, str, str, list[ChatControl]]] = []
        self.private: list[tuple[str, str]] = []
        self.fail_fetch: str | None = None
        self.fail_send: str | None = None
        self.fail_update: str | None = None
        self.fail_private: str | None = None
        self.fail_ack: str | None = None
        self.acknowledged: list[str] = []
        self._next_message_id = 1000

    async def fetch_channel(self, channel_ref: str) -> Any:
        await anyio.sleep(0)
        if self.fail_fetch:
            raise ChatGatewayError(self.fail_fetch)
        return {"id": channel_ref}

    async def send_message(self, channel_ref: str, content: str, controls: Sequence[ChatControl]) -> str:
        await anyio.sleep(0)
        if self.fail_send:
            raise ChatGatewayError(self.fail_send)
        self._next_message_id += 1
        self.sent.append((channel_ref, content, list(controls)))
        return str(self._next_message_id)

    async def update_message(
        self,
        channel_ref: str,
        message_ref: str,
        content: str,
        controls: Sequence[ChatControl],
    ) -> None:
        await anyio.sleep(0)
        if self.fail_update:
            raise ChatGatewayError(self.fail_update)
        self.updated.append((channel_ref, message_ref, content, list(controls)))

    async def send_private(self, reply_ref: str, content: str) -> None:
        await anyio.sleep(0)
        if self.fail_private:
            raise ChatGatewayError(self.fail_private)
        self.private.append((reply_ref, content))

    async def acknowledge(self, reply_ref: str) -> None:
        await anyio.sleep(0)
        if self.fail_ack:
            raise ChatGatewayError(self.fail_ack)
        self.acknowledged.append(reply_ref)


@pytest.fixture()
def chat() -> FakeChatGateway:
    return FakeChatGateway()


@pytest.fixture()
def store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture()
def dispatcher(chat: FakeChatGateway) -> NotificationDispatcher:
    return NotificationDispatcher(chat, CHANNEL)


@pytest.fixture()
def gateway(store: InMemoryRequestStore, chat: FakeChatGateway, dispatcher: NotificationDispatcher) -> RequestGateway:
    return RequestGateway(store=store, chat=chat, dispatcher=dispatcher)


@pytest.fixture()
def test_app(monkeypatch: pytest.MonkeyPatch, chat: FakeChatGateway):
    monkeypatch.setenv("TELEGRAM_CHAT_ID", CHANNEL)
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "hook-secret")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "3")
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    get_settings.cache_clear()

    app = create_app()
    app.state.chat = chat
    app.state.request_gateway = build_request_gateway(app.state.settings, chat)
    yield app
    get_settings.cache_clear()
