"""
auth/csrf.py -- Double-submit CSRF token store.

The token lives in two places that must match on every mutating request
made with a live session:
  - the csrf_token cookie (readable by JS, SameSite=Strict, week-scale TTL)
  - the X-CSRF-Token request header, echoed by same-origin script

The credential cookie is httpOnly and rides along on cross-site requests
automatically; the CSRF cookie is readable only by same-origin script. A
forged cross-site request therefore carries the session but cannot produce
the matching header.

The token is random and unrelated to the credential; no server-side state
is kept.

Layer rule: no imports from api/ or photos/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from enum import Enum

from core.config import Settings

logger = logging.getLogger("matcha.csrf")

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


class RequestKind(Enum):
    """Classification of an HTTP method for the CSRF rules."""

    SAFE = "safe"
    MUTATING = "mutating"

    @classmethod
    def for_method(cls, method: str) -> RequestKind:
        # Anything not known to be read-only is treated as mutating.
        return _METHOD_KINDS.get(method.upper(), cls.MUTATING)


_METHOD_KINDS: dict[str, RequestKind] = {
    "GET": RequestKind.SAFE,
    "HEAD": RequestKind.SAFE,
    "OPTIONS": RequestKind.SAFE,
    "POST": RequestKind.MUTATING,
    "PUT": RequestKind.MUTATING,
    "PATCH": RequestKind.MUTATING,
    "DELETE": RequestKind.MUTATING,
}


def generate_csrf_token() -> str:
    """32 random bytes as 64 hex chars."""
    return secrets.token_hex(32)


def csrf_tokens_match(cookie_value: str | None, header_value: str | None) -> bool:
    """True only when both values are present and byte-equal (constant-time compare)."""
    if not cookie_value or not header_value:
        return False
    return hmac.compare_digest(cookie_value.encode("utf-8"), header_value.encode("utf-8"))


def issue_csrf_token(response, settings: Settings) -> str:
    """Mint a token, set it as the readable cookie, and echo it in the response header."""
    token = generate_csrf_token()
    response.set_cookie(
        CSRF_COOKIE,
        value=token,
        httponly=False,  # must be readable by JS to echo into the header
        samesite="strict",
        secure=settings.secure_cookies,
        max_age=settings.csrf_cookie_max_age,
        path="/",
    )
    response.headers[CSRF_HEADER] = token
    logger.debug("issued new CSRF token")
    return token
