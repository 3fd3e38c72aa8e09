from __future__ import annotations

from time import perf_counter

import structlog

from mentor_relay.chat import ChatControl, ChatGateway, ChatGatewayError
from mentor_relay.errors import DispatchError
from mentor_relay.types import (
    ActionKind,
    AlreadyAccepted,
    ChatLocation,
    ClaimOutcome,
    ControlToken,
    MentorRequest,
    NotFound,
    RequestFields,
    ResponderIdentity,
)

logger = structlog.get_logger(__name__)

ACCEPT_LABEL = "Accept request"
CLAIMED_LABEL = "Request claimed"
CLAIM_ACK_TEXT = "You claimed this mentor request. Thank you!"
NOT_FOUND_TEXT = "This request was not found or was already handled."


def render_message(request_id: str, fields: RequestFields) -> str:
    detail_line = f"\nDetails: {fields.details}" if fields.details else ""
    return (
        "🆘 Mentor Needed\n"
        f"Team: {fields.team_name}\n"
        f"Table: {fields.table_location}\n"
        f"Category: {fields.category}{detail_line}\n\n"
        f"Request ID: {request_id}"
    )


def accepted_message(request: MentorRequest, responder: ResponderIdentity) -> str:
    return f"{request.rendered_message}\n\n✅ Accepted by {responder.display_name}"


def rejection_text(outcome: ClaimOutcome) -> str | None:
    if isinstance(outcome, NotFound):
        return NOT_FOUND_TEXT
    if isinstance(outcome, AlreadyAccepted):
        name = outcome.accepted_by.display_name or outcome.accepted_by.tag or "another mentor"
        return f"Already accepted by {name}."
    return None


class NotificationDispatcher:
    """Posts request announcements to the mentor chat and keeps them in sync with claims."""

    def __init__(self, chat: ChatGateway, channel_ref: str | None) -> None:
        self._chat = chat
        self._channel_ref = channel_ref

    @property
    def channel_ref(self) -> str | None:
        return self._channel_ref

    async def announce(self, request: MentorRequest) -> ChatLocation:
        if not self._chat.ready:
            raise DispatchError("Chat gateway is not connected")
        if not self._channel_ref:
            raise DispatchError("No target channel configured")

        started = perf_counter()
        control = ChatControl(label=ACCEPT_LABEL, token=ControlToken(ActionKind.ACCEPT, request.id))
        try:
            await self._chat.fetch_channel(self._channel_ref)
            message_ref = await self._chat.send_message(self._channel_ref, request.rendered_message, [control])
        except ChatGatewayError as exc:
            raise DispatchError(str(exc)) from exc

        logger.info(
            "announcement_sent",
            mentor_request_id=request.id,
            channel_ref=self._channel_ref,
            message_ref=message_ref,
            duration_ms=round((perf_counter() - started) * 1000, 2),
        )
        return ChatLocation(channel_ref=self._channel_ref, message_ref=message_ref)

    async def announce_accepted(
        self,
        request: MentorRequest,
        responder: ResponderIdentity,
        reply_ref: str | None = None,
    ) -> None:
        if request.channel_ref and request.message_ref:
            control = ChatControl(
                label=CLAIMED_LABEL,
                token=ControlToken(ActionKind.CLAIMED, request.id),
                disabled=True,
            )
            try:
                await self._chat.update_message(
                    request.channel_ref,
                    request.message_ref,
                    accepted_message(request, responder),
                    [control],
                )
            except ChatGatewayError as exc:
                logger.warning("announcement_update_failed", mentor_request_id=request.id, error=str(exc))
        else:
            logger.warning("announcement_missing", mentor_request_id=request.id)

        if reply_ref is not None:
            await self._reply(reply_ref, CLAIM_ACK_TEXT, request_id=request.id)

    async def notify_rejected(self, outcome: ClaimOutcome, reply_ref: str | None = None) -> None:
        text = rejection_text(outcome)
        if text is None or reply_ref is None:
            return
        await self._reply(reply_ref, text, request_id=outcome.request_id)

    async def acknowledge(self, reply_ref: str | None) -> None:
        """Clear the pending state of an interaction that needs no reply."""
        if reply_ref is None:
            return
        try:
            await self._chat.acknowledge(reply_ref)
        except ChatGatewayError as exc:
            logger.warning("interaction_ack_failed", reply_ref=reply_ref, error=str(exc))

    async def _reply(self, reply_ref: str, text: str, *, request_id: str) -> None:
        try:
            await self._chat.send_private(reply_ref, text)
        except ChatGatewayError as exc:
            logger.warning("private_reply_failed", mentor_request_id=request_id, error=str(exc))
