"""
Domain errors raised by services and rendered by the API layer.

Routes may still raise ``HTTPException`` directly for auth and lookup
failures; services never import FastAPI and raise these instead.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class BadRequestError(ApiError):
    status_code = 400
    code = "bad_request"


class ForbiddenError(ApiError):
    status_code = 403
    code = "forbidden"


class NotFoundError(ApiError):
    status_code = 404
    code = "not_found"


class ConflictError(ApiError):
    status_code = 409
    code = "conflict"


class TemplateError(BadRequestError):
    """The presence-sheet template is structurally broken (anchors missing)."""

    code = "template_integrity"


class TemplateUnavailableError(ApiError):
    """The presence-sheet template file is missing or unreadable."""

    status_code = 500
    code = "template_unavailable"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
