"""
Exception handlers that turn engine errors into the response envelope.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.infrastructure.observability.logging import get_logger

from ..domain.errors import MatchmakingError
from .schemas import failure

logger = get_logger(__name__)

STATUS_BY_CODE = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "stale_version": status.HTTP_409_CONFLICT,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}

CODE_BY_HTTP_STATUS = {
    status.HTTP_400_BAD_REQUEST: "invalid_input",
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


def status_for(error: MatchmakingError) -> int:
    return STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def matchmaking_error_handler(request: Request, exc: MatchmakingError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request failed",
        path=request.url.path,
        code=exc.code,
        error=exc.message,
        context={k: v for k, v in exc.context.items() if isinstance(v, str | int | float | bool)},
    )
    headers = {"Retry-After": "1"} if exc.recoverable else None
    return JSONResponse(
        status_code=status_code, content=failure(exc.code, exc.message), headers=headers
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "; ".join(
        f"{'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}"
        for detail in exc.errors()
    )
    logger.info("Request validation failed", path=request.url.path, error=message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content=failure("invalid_input", message)
    )


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = CODE_BY_HTTP_STATUS.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content=failure(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error", path=request.url.path, error=str(exc), error_type=type(exc).__name__
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=failure("internal_error", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MatchmakingError, matchmaking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
