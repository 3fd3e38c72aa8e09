from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter
from typing import AsyncIterator

import structlog
from aiogram.types import Update
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mentor_relay.chat import ChatGateway, TelegramChatGateway
from mentor_relay.config import Settings, get_settings
from mentor_relay.dispatcher import NotificationDispatcher
from mentor_relay.errors import APIError, register_exception_handlers
from mentor_relay.gateway import RequestGateway
from mentor_relay.logging_setup import configure_logging
from mentor_relay.middleware import RequestIDMiddleware
from mentor_relay.ratelimit import FixedWindowRateLimiter, enforce_mentor_request_limit
from mentor_relay.schemas import (
    CreateMentorRequestInput,
    CreateMentorRequestResponse,
    ErrorEnvelope,
    MentorRequestStatusResponse,
)
from mentor_relay.store import InMemoryRequestStore
from mentor_relay.types import ResponderIdentity

logger = structlog.get_logger(__name__)

WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def build_request_gateway(settings: Settings, chat: ChatGateway) -> RequestGateway:
    return RequestGateway(
        store=InMemoryRequestStore(),
        chat=chat,
        dispatcher=NotificationDispatcher(chat, settings.telegram_chat_id),
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(service="mentor-relay", level=settings.log_level, json_logs=settings.log_json)

    telegram = TelegramChatGateway(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await telegram.start()
        try:
            yield
        finally:
            await telegram.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.chat = telegram
    app.state.request_gateway = build_request_gateway(settings, telegram)
    app.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)

    @app.get("/")
    async def index() -> dict[str, object]:
        return {
            "ok": True,
            "message": f"{settings.app_name} running",
            "health": "/healthz",
            "mentorRequests": "/api/mentor-requests",
        }

    @app.get("/healthz")
    async def healthz(chat: ChatGateway = Depends(get_chat)) -> dict[str, object]:
        return {"status": "ok", "botReady": chat.ready}

    @app.get("/readyz")
    async def readyz(chat: ChatGateway = Depends(get_chat)) -> JSONResponse:
        if not chat.ready:
            raise APIError(
                code="DEPENDENCY_UNAVAILABLE",
                message="Chat bot not ready",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ready"})

    @app.post(
        "/api/mentor-requests",
        response_model=CreateMentorRequestResponse,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(enforce_mentor_request_limit)],
        responses={code: {"model": ErrorEnvelope} for code in (400, 429, 503)},
    )
    async def create_mentor_request(
        payload: CreateMentorRequestInput,
        gateway: RequestGateway = Depends(get_request_gateway),
    ) -> CreateMentorRequestResponse:
        start = perf_counter()
        request_id, request_status = await gateway.create_request(
            payload.team_name,
            payload.table_location,
            payload.category,
            payload.details,
        )
        logger.info(
            "mentor_request_create_completed",
            mentor_request_id=request_id,
            duration_ms=round((perf_counter() - start) * 1000, 2),
        )
        return CreateMentorRequestResponse(request_id=request_id, status=request_status.value)

    @app.get(
        "/api/mentor-requests/{request_id}",
        response_model=MentorRequestStatusResponse,
        response_model_exclude_none=True,
        responses={404: {"model": ErrorEnvelope}},
    )
    async def get_mentor_request(
        request_id: str,
        gateway: RequestGateway = Depends(get_request_gateway),
    ) -> MentorRequestStatusResponse:
        record = gateway.get_status(request_id)
        if record is None:
            raise APIError(code="NOT_FOUND", message="Request not found", status_code=status.HTTP_404_NOT_FOUND)
        return MentorRequestStatusResponse.from_request(record)

    @app.post("/webhook/telegram")
    async def telegram_webhook(
        request: Request,
        gateway: RequestGateway = Depends(get_request_gateway),
        settings: Settings = Depends(get_app_settings),
    ) -> dict[str, bool]:
        secret = settings.telegram_webhook_secret
        if secret and request.headers.get(WEBHOOK_SECRET_HEADER) != secret:
            logger.warning("webhook_secret_mismatch")
            raise APIError(code="FORBIDDEN", message="Invalid webhook secret", status_code=status.HTTP_403_FORBIDDEN)

        try:
            update = Update.model_validate(await request.json())
        except ValueError as exc:
            logger.error("webhook_parse_error", error=str(exc))
            raise APIError(code="INVALID_UPDATE", message="Invalid update") from exc

        callback = update.callback_query
        if callback is None:
            return {"ok": True}

        user = callback.from_user
        responder = ResponderIdentity(
            external_id=str(user.id),
            tag=user.username or "",
            display_name=user.full_name or user.username or "Mentor",
        )
        await gateway.handle_claim_interaction(callback.data, responder, reply_ref=callback.id)
        return {"ok": True}

    return app


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_chat(request: Request) -> ChatGateway:
    return request.app.state.chat


def get_request_gateway(request: Request) -> RequestGateway:
    return request.app.state.request_gateway


app = create_app()
