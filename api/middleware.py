"""
api/middleware.py -- Session middleware chain.

Runs for every HTTP request before routing, in a fixed order:

  1. Credential parse   -- decode the access_token cookie once; the result
                           (SessionContext or None) goes on request.state.session.
  2. CSRF enforcement   -- a mutating request made with a valid credential
                           must carry X-CSRF-Token equal to the csrf_token
                           cookie, else 403 before the handler runs.
  3. Handler
  4. CSRF issuance      -- a safe request with a valid credential but no
                           csrf_token cookie gets a fresh token (cookie +
                           response header).

Requests without a valid credential pass through untouched. Their fate is
decided by the route guard (require_session answers 401 on protected
routes), so CSRF rules never turn a plain 401 into a 403.

The 403 is rendered here with api.errors.error_response: an exception raised
inside middleware would bypass the app's exception handlers.

Pattern: Interceptor / Chain of Responsibility, registered in api/main.py
with app.middleware("http").
"""

from __future__ import annotations

import logging

from fastapi import Request

from api.errors import error_response
from auth.csrf import CSRF_COOKIE, CSRF_HEADER, RequestKind, csrf_tokens_match, issue_csrf_token
from auth.dependencies import session_from_cookies
from core.errors import CsrfInvalid

logger = logging.getLogger("matcha.csrf")


async def session_chain(request: Request, call_next):
    session = session_from_cookies(request.cookies, request.app.state.codec)
    request.state.session = session
    kind = RequestKind.for_method(request.method)

    if session is not None and kind is RequestKind.MUTATING:
        if not csrf_tokens_match(request.cookies.get(CSRF_COOKIE), request.headers.get(CSRF_HEADER)):
            logger.warning(
                "CSRF rejected %s %s user_id=%s",
                request.method,
                request.url.path,
                session.user_id,
            )
            return error_response(CsrfInvalid())

    response = await call_next(request)

    if session is not None and kind is RequestKind.SAFE and not request.cookies.get(CSRF_COOKIE):
        issue_csrf_token(response, request.app.state.settings)
    return response
