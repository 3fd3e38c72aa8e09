from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Protocol
from uuid import uuid4

import structlog

from mentor_relay.types import (
    Accepted,
    AlreadyAccepted,
    ClaimOutcome,
    Delivery,
    MentorRequest,
    NotFound,
    RequestFields,
    RequestStatus,
    ResponderIdentity,
)

logger = structlog.get_logger(__name__)

MessageRenderer = Callable[[str, RequestFields], str]


class RequestStore(Protocol):
    def create(self, fields: RequestFields, *, render: MessageRenderer) -> str: ...

    def get(self, request_id: str) -> MentorRequest | None: ...

    def try_accept(self, request_id: str, responder: ResponderIdentity) -> ClaimOutcome: ...

    def attach_message_ref(self, request_id: str, channel_ref: str, message_ref: str) -> None: ...

    def mark_delivery(self, request_id: str, delivery: Delivery) -> None: ...

    def count(self) -> int: ...


class InMemoryRequestStore:
    """Process-local request table.

    Every read and transition runs under a single lock, so callers on the
    event loop and in worker threads see the same serialized history. The
    lock is never held across chat I/O.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, MentorRequest] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create(self, fields: RequestFields, *, render: MessageRenderer) -> str:
        with self._lock:
            request_id = str(uuid4())
            while request_id in self._requests:
                request_id = str(uuid4())
            self._requests[request_id] = MentorRequest(
                id=request_id,
                team_name=fields.team_name,
                table_location=fields.table_location,
                category=fields.category,
                details=fields.details,
                rendered_message=render(request_id, fields),
                created_at=self._clock(),
            )
        return request_id

    def get(self, request_id: str) -> MentorRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def try_accept(self, request_id: str, responder: ResponderIdentity) -> ClaimOutcome:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                return NotFound(request_id=request_id)
            if current.status is RequestStatus.ACCEPTED:
                if current.accepted_by is None:
                    raise RuntimeError(f"Mentor request {request_id} is accepted without an acceptor")
                return AlreadyAccepted(request_id=request_id, accepted_by=current.accepted_by)

            accepted = replace(
                current,
                status=RequestStatus.ACCEPTED,
                accepted_by=responder,
                accepted_at=self._clock(),
            )
            self._requests[request_id] = accepted
        return Accepted(request=accepted)

    def attach_message_ref(self, request_id: str, channel_ref: str, message_ref: str) -> None:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise KeyError(request_id)
            if current.message_ref is not None:
                logger.warning(
                    "message_ref_already_attached",
                    mentor_request_id=request_id,
                    message_ref=current.message_ref,
                )
                return
            self._requests[request_id] = replace(current, channel_ref=channel_ref, message_ref=message_ref)

    def mark_delivery(self, request_id: str, delivery: Delivery) -> None:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise KeyError(request_id)
            self._requests[request_id] = replace(current, delivery=delivery)

    def count(self) -> int:
        with self._lock:
            return len(self._requests)
