"""
core/errors.py -- Error taxonomy shared by every layer.

Every failure a client can observe is one of these classes. Each carries the
HTTP status it maps to, a stable machine-readable code, a client-safe message
and optional structured details. api/errors.py turns them into the standard
{"error": {...}} envelope; nothing below the api/ layer builds responses.

Taxonomy:
  BadRequest (400)        malformed input; InvalidIds / InvalidPositions for reorder
  Unauthorized (401)      missing/invalid/expired credential; InvalidCredential from the codec
  CsrfInvalid (403)       double-submit token mismatch on a mutating request
  NotFound (404)          absent OR not owned by the caller (never distinguished)
  Conflict (409)          MaxPhotosReached, GalleryFull, unique collisions
  PayloadTooLarge (413)   upload over the configured cap
  Internal (500)          unexpected failure; message is always generic

Layer rule: core/ is the kernel. No imports from api/, auth/, or photos/, and
no web framework imports.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for all client-facing failures."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, code: str | None = None, details: Any = None) -> None:
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class BadRequest(AppError):
    status_code = 400
    code = "bad_request"
    message = "Invalid request."


class InvalidIds(BadRequest):
    code = "invalid_ids"
    message = "Some ids are invalid."


class InvalidPositions(BadRequest):
    code = "invalid_positions"
    message = "Positions must be a 1..N permutation."


# ---------------------------------------------------------------------------
# 401 / 403
# ---------------------------------------------------------------------------


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class InvalidCredential(Unauthorized):
    """Raised by the credential codec: bad signature, malformed payload, or expired."""

    code = "invalid_credential"
    message = "Invalid or expired credential."


class CsrfInvalid(AppError):
    status_code = 403
    code = "csrf_invalid"
    message = "Invalid CSRF token."


# ---------------------------------------------------------------------------
# 404 / 409 / 413
# ---------------------------------------------------------------------------


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    message = "Conflict."


class MaxPhotosReached(Conflict):
    code = "max_photos_reached"
    message = "Maximum of 5 photos (including avatar)."


class GalleryFull(Conflict):
    code = "gallery_full"
    message = "Gallery is full."


class PayloadTooLarge(AppError):
    status_code = 413
    code = "file_too_large"
    message = "Uploaded file is too large."


# ---------------------------------------------------------------------------
# 500
# ---------------------------------------------------------------------------


class Internal(AppError):
    """Opaque failure. The message never carries internal detail."""
