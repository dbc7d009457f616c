"""JSON error responses shared by the function routes."""

from __future__ import annotations

import logging
import re

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..gemini import GeminiError
from ..media import MediaError

logger = logging.getLogger(__name__)

FUNCTIONS_PREFIX = "/functions/v1"
ERROR_HEADER = "x-error"
ERROR_HEADER_LIMIT = 256

_TIMEOUT_PATTERN = re.compile(r"timeout|deadline", re.IGNORECASE)


def classify_status(exc: BaseException) -> int:
    """Map a failure to 400 (bad input), 504 (timeout) or 500."""

    if isinstance(exc, RequestValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, MediaError) and exc.status_code == status.HTTP_400_BAD_REQUEST:
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, GeminiError) and exc.is_timeout:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, MediaError) and exc.status_code == status.HTTP_504_GATEWAY_TIMEOUT:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if _TIMEOUT_PATTERN.search(str(exc)):
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _header_value(message: str) -> str:
    # header values must stay latin-1 encodable on one line
    flat = " ".join(message.split())[:ERROR_HEADER_LIMIT]
    return flat.encode("ascii", "replace").decode("ascii")


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        {"error": message},
        status_code=status_code,
        headers={ERROR_HEADER: _header_value(message)},
    )


def exception_response(exc: BaseException) -> JSONResponse:
    message = str(exc) or exc.__class__.__name__
    status_code = classify_status(exc)
    if status_code >= 500:
        logger.warning("Function failed with %s: %s", status_code, message)
    return error_response(message, status_code)


def validation_message(exc: RequestValidationError) -> str:
    """Render the first validation problem the way clients expect."""

    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        if error.get("type") == "missing" and location:
            return f"{location[-1]} is required"
        message = str(error.get("msg") or "")
        # model validators prefix their message with "Value error, "
        return message.removeprefix("Value error, ") or "invalid request body"
    return "invalid request body"


def install_error_handlers(app: FastAPI) -> None:
    """Render errors on the function routes as ``{"error": ...}`` bodies."""

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(validation_message(exc), status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(StarletteHTTPException)
    async def _http_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if not request.url.path.startswith(FUNCTIONS_PREFIX):
            return JSONResponse(
                {"detail": exc.detail},
                status_code=exc.status_code,
                headers=getattr(exc, "headers", None),
            )
        message = (
            "Method not allowed"
            if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
            else str(exc.detail)
        )
        return error_response(message, exc.status_code)


__all__ = [
    "ERROR_HEADER",
    "FUNCTIONS_PREFIX",
    "classify_status",
    "error_response",
    "exception_response",
    "install_error_handlers",
    "validation_message",
]
