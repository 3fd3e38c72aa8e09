from __future__ import annotations

from time import perf_counter

import structlog

from mentor_relay.chat import ChatGateway
from mentor_relay.dispatcher import NotificationDispatcher, render_message
from mentor_relay.errors import DependencyUnavailable, DispatchError, RequestValidationFailed
from mentor_relay.resolver import ClaimIntent, ClaimResolver
from mentor_relay.store import RequestStore
from mentor_relay.types import (
    Accepted,
    ClaimOutcome,
    ControlToken,
    Delivery,
    MentorRequest,
    RequestFields,
    RequestStatus,
    ResponderIdentity,
)

logger = structlog.get_logger(__name__)


class RequestGateway:
    """Entry point for request creation, status polling and chat-side claims."""

    def __init__(
        self,
        *,
        store: RequestStore,
        chat: ChatGateway,
        dispatcher: NotificationDispatcher,
        resolver: ClaimResolver | None = None,
    ) -> None:
        self._store = store
        self._chat = chat
        self._dispatcher = dispatcher
        self._resolver = resolver or ClaimResolver(store)

    async def create_request(
        self,
        team_name: str | None,
        table_location: str | None,
        category: str | None,
        details: str | None = None,
    ) -> tuple[str, RequestStatus]:
        fields = RequestFields(
            team_name=(team_name or "").strip(),
            table_location=(table_location or "").strip(),
            category=(category or "").strip(),
            details=(details or "").strip(),
        )
        missing = [
            name
            for name, value in (
                ("teamName", fields.team_name),
                ("tableNumber", fields.table_location),
                ("queryCategory", fields.category),
            )
            if not value
        ]
        if missing:
            raise RequestValidationFailed(missing)

        if not self._chat.ready:
            raise DependencyUnavailable("chat", "Chat bot not ready. Please try again.")
        if not self._dispatcher.channel_ref:
            raise DependencyUnavailable("chat_channel", "Missing TELEGRAM_CHAT_ID in env")

        request_id = self._store.create(fields, render=render_message)
        logger.info("mentor_request_created", mentor_request_id=request_id, team_name=fields.team_name)

        request = self._store.get(request_id)
        if request is None:
            raise RuntimeError(f"Mentor request {request_id} vanished after insert")
        started = perf_counter()
        try:
            location = await self._dispatcher.announce(request)
        except DispatchError as exc:
            self._store.mark_delivery(request_id, Delivery.FAILED)
            logger.error(
                "mentor_request_dispatch_failed",
                mentor_request_id=request_id,
                error=str(exc),
                duration_ms=round((perf_counter() - started) * 1000, 2),
            )
        else:
            self._store.attach_message_ref(request_id, location.channel_ref, location.message_ref)
            self._store.mark_delivery(request_id, Delivery.SENT)

        return request_id, RequestStatus.PENDING

    def get_status(self, request_id: str) -> MentorRequest | None:
        return self._store.get(request_id)

    async def handle_claim_interaction(
        self,
        raw_token: str | None,
        responder: ResponderIdentity,
        reply_ref: str | None = None,
    ) -> ClaimOutcome | None:
        token = ControlToken.parse(raw_token)
        if token is None:
            logger.info("claim_token_unparseable", token=raw_token)
            await self._dispatcher.acknowledge(reply_ref)
            return None

        resolution = self._resolver.resolve(token, responder)
        if resolution is None:
            await self._dispatcher.acknowledge(reply_ref)
            return None

        outcome = resolution.outcome
        if isinstance(outcome, Accepted):
            if ClaimIntent.UPDATE_ANNOUNCEMENT in resolution.intents:
                await self._dispatcher.announce_accepted(
                    outcome.request,
                    responder,
                    reply_ref if ClaimIntent.ACKNOWLEDGE_RESPONDER in resolution.intents else None,
                )
        elif ClaimIntent.REPLY_REJECTION in resolution.intents:
            await self._dispatcher.notify_rejected(outcome, reply_ref)
        return outcome
