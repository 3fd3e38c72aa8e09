from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Delivery(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ActionKind(str, Enum):
    ACCEPT = "mentor-accept"
    CLAIMED = "mentor-claimed"


@dataclass(frozen=True, slots=True)
class ControlToken:
    """Correlation value carried by a chat control: an action plus a request id."""

    action: ActionKind
    request_id: str

    @classmethod
    def parse(cls, raw: str | None) -> ControlToken | None:
        if not raw or ":" not in raw:
            return None
        action, _, request_id = raw.partition(":")
        try:
            kind = ActionKind(action)
        except ValueError:
            return None
        if not request_id:
            return None
        return cls(action=kind, request_id=request_id)

    def encode(self) -> str:
        return f"{self.action.value}:{self.request_id}"


@dataclass(frozen=True, slots=True)
class ResponderIdentity:
    external_id: str
    tag: str
    display_name: str


@dataclass(frozen=True, slots=True)
class RequestFields:
    team_name: str
    table_location: str
    category: str
    details: str = ""


@dataclass(frozen=True, slots=True)
class MentorRequest:
    id: str
    team_name: str
    table_location: str
    category: str
    details: str
    rendered_message: str
    created_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    accepted_by: ResponderIdentity | None = None
    accepted_at: datetime | None = None
    channel_ref: str | None = None
    message_ref: str | None = None
    delivery: Delivery = Delivery.PENDING


@dataclass(frozen=True, slots=True)
class ChatLocation:
    channel_ref: str
    message_ref: str


@dataclass(frozen=True, slots=True)
class Accepted:
    request: MentorRequest


@dataclass(frozen=True, slots=True)
class AlreadyAccepted:
    request_id: str
    accepted_by: ResponderIdentity


@dataclass(frozen=True, slots=True)
class NotFound:
    request_id: str


ClaimOutcome = Accepted | AlreadyAccepted | NotFound
