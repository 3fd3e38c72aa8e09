from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from mentor_relay.store import RequestStore
from mentor_relay.types import (
    Accepted,
    ActionKind,
    AlreadyAccepted,
    ClaimOutcome,
    ControlToken,
    ResponderIdentity,
)

logger = structlog.get_logger(__name__)


class ClaimIntent(str, Enum):
    UPDATE_ANNOUNCEMENT = "update_announcement"
    ACKNOWLEDGE_RESPONDER = "acknowledge_responder"
    REPLY_REJECTION = "reply_rejection"


@dataclass(frozen=True, slots=True)
class ClaimResolution:
    outcome: ClaimOutcome
    intents: tuple[ClaimIntent, ...]


class ClaimResolver:
    """Decides claim attempts: pending -> accepted, at most once per request."""

    def __init__(self, store: RequestStore) -> None:
        self._store = store

    def resolve(self, token: ControlToken, responder: ResponderIdentity) -> ClaimResolution | None:
        if token.action is not ActionKind.ACCEPT:
            logger.info("claim_discarded", action=token.action.value, mentor_request_id=token.request_id)
            return None

        outcome = self._store.try_accept(token.request_id, responder)
        if isinstance(outcome, Accepted):
            logger.info(
                "claim_accepted",
                mentor_request_id=token.request_id,
                responder_id=responder.external_id,
                responder_name=responder.display_name,
            )
            return ClaimResolution(
                outcome=outcome,
                intents=(ClaimIntent.UPDATE_ANNOUNCEMENT, ClaimIntent.ACKNOWLEDGE_RESPONDER),
            )

        logger.info(
            "claim_rejected",
            mentor_request_id=token.request_id,
            responder_id=responder.external_id,
            reason="already_accepted" if isinstance(outcome, AlreadyAccepted) else "not_found",
        )
        return ClaimResolution(outcome=outcome, intents=(ClaimIntent.REPLY_REJECTION,))
