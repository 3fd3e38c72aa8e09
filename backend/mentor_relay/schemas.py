from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from mentor_relay.types import Delivery, MentorRequest, ResponderIdentity


class CreateMentorRequestInput(BaseModel):
    team_name: str | None = Field(default=None, validation_alias=AliasChoices("teamName", "team_name"))
    table_location: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tableNumber", "tableLocation", "table_location"),
    )
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("queryCategory", "category"),
    )
    details: str | None = None


class CreateMentorRequestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    status: str


class AcceptedByPayload(BaseModel):
    id: str
    tag: str
    name: str

    @classmethod
    def from_identity(cls, identity: ResponderIdentity) -> AcceptedByPayload:
        return cls(id=identity.external_id, tag=identity.tag, name=identity.display_name)


class MentorRequestStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    status: str
    accepted_by: AcceptedByPayload | None = Field(default=None, alias="acceptedBy")
    accepted_at: datetime | None = Field(default=None, alias="acceptedAt")
    team_name: str = Field(alias="teamName")
    table_location: str = Field(alias="tableLocation")
    table_number: str = Field(alias="tableNumber")
    category: str = Field(alias="queryCategory")
    details: str
    notification_delivered: bool | None = Field(default=None, alias="notificationDelivered")

    @classmethod
    def from_request(cls, request: MentorRequest) -> MentorRequestStatusResponse:
        delivered = None if request.delivery is Delivery.PENDING else request.delivery is Delivery.SENT
        return cls(
            request_id=request.id,
            status=request.status.value,
            accepted_by=AcceptedByPayload.from_identity(request.accepted_by) if request.accepted_by else None,
            accepted_at=request.accepted_at,
            team_name=request.team_name,
            table_location=request.table_location,
            table_number=request.table_location,
            category=request.category,
            details=request.details,
            notification_delivered=delivered,
        )


class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: str


class ErrorEnvelope(BaseModel):
    message: str
    error: ErrorDetail
