from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when a required server-side setting is missing or unusable."""


class ErrorEnvelope(JSONResponse):
    """``{"error": ..., "details": ...}`` body shared by every failure response.

    Keyword arguments passed through ``extra`` are merged into the top level of
    the payload, which is how the already-checked-in conflict ships the open
    record next to the message.
    """

    def __init__(
        self,
        *,
        status_code: int,
        error: str,
        details: Any | None = None,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"error": error}
        if details is not None:
            payload["details"] = details
        if extra:
            payload.update(extra)
        super().__init__(payload, status_code=status_code, headers=headers)


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc) or None, "message": err.get("msg", "Invalid value")})
    return details


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = HTTPStatus(exc.status_code).phrase
    details = detail if isinstance(detail, (dict, list)) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        error=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_400_BAD_REQUEST,
        error="Validation failed",
        details=_validation_details(exc),
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("configuration.error", exc_info=exc, extra={"extra_data": {"path": request.url.path}})
    return ErrorEnvelope(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, error="Server configuration error")


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "request.failed",
        exc_info=exc,
        extra={"extra_data": {"method": request.method, "path": request.url.path}},
    )
    return ErrorEnvelope(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, error="Internal server error")
