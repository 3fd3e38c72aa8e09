from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class RequestValidationFailed(Exception):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


class DependencyUnavailable(Exception):
    def __init__(self, dependency: str, message: str) -> None:
        self.dependency = dependency
        self.message = message
        super().__init__(message)


class DispatchError(Exception):
    pass


class APIError(Exception):
    def __init__(self, code: str, message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_body(*, request: Request, code: str, message: str) -> dict[str, object]:
    return {"message": message, "error": {"code": code, "message": message, "request_id": _request_id(request)}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request=request, code=exc.code, message=exc.message),
        )

    @app.exception_handler(RequestValidationFailed)
    async def missing_fields_handler(request: Request, exc: RequestValidationFailed) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                request=request,
                code="VALIDATION_ERROR",
                message="teamName, tableNumber, and queryCategory are required",
            ),
        )

    @app.exception_handler(DependencyUnavailable)
    async def dependency_unavailable_handler(request: Request, exc: DependencyUnavailable) -> JSONResponse:
        logger.warning("dependency_unavailable", dependency=exc.dependency, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=_error_body(request=request, code="DEPENDENCY_UNAVAILABLE", message=exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(request=request, code="VALIDATION_ERROR", message=message),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message = str(exc.detail) if exc.detail else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request=request, code="HTTP_ERROR", message=message),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request=request,
                code="INTERNAL_SERVER_ERROR",
                message="An unexpected error occurred.",
            ),
        )
