"""
auth/dependencies.py -- FastAPI Depends() helpers and the realtime handshake guard.

One credential source for every transport: the "access_token" cookie. HTTP
requests and WebSocket upgrades both go through session_from_cookies(), so
the two channels cannot drift apart.

For HTTP, the session middleware (api/middleware.py) decodes the cookie once
per request and stores the result on request.state.session before routing.
The guards here only read it:

  try_get_session()  -- soft variant, returns None when unauthenticated.
  require_session()  -- raises Unauthorized (401). Never attempts a refresh.

authenticate_websocket() runs at accept time, before any message is
exchanged. The realtime endpoint closes the socket if it returns None.

Layer rule: no imports from api/ or photos/.
  auth/dependencies.py may import from fastapi (for Request/WebSocket)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping

from fastapi import Request, WebSocket

from auth.models import SessionContext
from auth.tokens import ACCESS_COOKIE, CredentialCodec
from core.errors import InvalidCredential, Unauthorized


def session_from_cookies(cookies: Mapping[str, str], codec: CredentialCodec) -> SessionContext | None:
    """Verify the access_token cookie and derive the session identity.

    Returns None when the cookie is missing or fails verification.
    """
    token = cookies.get(ACCESS_COOKIE)
    if not token:
        return None
    try:
        claims = codec.verify(token)
    except InvalidCredential:
        return None
    return SessionContext.from_claims(claims)


def try_get_session(request: Request) -> SessionContext | None:
    """Return the identity attached by the session middleware, or None."""
    return getattr(request.state, "session", None)


def require_session(request: Request) -> SessionContext:
    """Require authentication. Raises Unauthorized (401) if there is no valid credential.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: SessionContext = Depends(require_session)): ...
    """
    session = try_get_session(request)
    if session is None:
        raise Unauthorized()
    return session


def authenticate_websocket(websocket: WebSocket, allowed_origins: Collection[str]) -> SessionContext | None:
    """Handshake guard for the realtime channel.

    Reads the same cookie as HTTP from the upgrade request. A browser Origin
    outside the configured origins is refused as well; non-browser clients
    that send no Origin are judged on the cookie alone.
    """
    origin = websocket.headers.get("origin")
    if origin and origin not in allowed_origins:
        return None
    return session_from_cookies(websocket.cookies, websocket.app.state.codec)
