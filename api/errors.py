"""
api/errors.py -- AppError -> JSON envelope.

Every error body the API emits has one shape:

    {"error": {"code": "...", "message": "...", "detail": ...}}

envelope() builds it. error_response() is the AppError entry point, used by
the exception handler in api/main.py and by the session middleware, which has
to build its 403 response directly (exceptions raised in middleware never
reach the app's exception handlers).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from core.errors import AppError, Internal


def envelope(
    status_code: int,
    code: str,
    message: str,
    detail: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def error_response(exc: AppError) -> JSONResponse:
    """Render any AppError in the standard envelope.

    Server-side failures are reduced to the generic Internal message so no
    internal detail reaches the client.
    """
    if exc.status_code >= 500:
        exc = Internal()
    return envelope(exc.status_code, exc.code, exc.message, exc.details)
