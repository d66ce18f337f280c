"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; sets access + CSRF cookies; 201
  POST /api/v1/auth/login            -- email-or-username login; sets access + CSRF cookies
  POST /api/v1/auth/logout           -- clears the access cookie; 204
  GET  /api/v1/auth/me               -- current user + avatar urls (requires auth)
  GET  /api/v1/auth/verify-email     -- consume an emailed verification token
  POST /api/v1/auth/forgot-password  -- email a reset link; always {"ok": true}
  POST /api/v1/auth/reset-password   -- consume a reset token, set a new password

Security:
  [H2] register / login / forgot-password are rate-limited per client IP
       (AUTH_RATE_LIMIT, default 10/minute).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that set the access cookie.
  A fresh CSRF token is issued with every new session, so the client can
  make mutating calls right after authenticating.
  forgot-password answers identically whether or not the email exists.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.errors import error_response
from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    OkResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from api.routes.v1.photos import avatar_urls
from auth.csrf import issue_csrf_token
from auth.dependencies import require_session
from auth.models import SessionContext, User
from auth.store import UserStore
from auth.tokens import authenticate_user, clear_auth_cookie, hash_password, set_auth_cookie
from core.errors import BadRequest, Conflict, NotFound, Unauthorized

logger = logging.getLogger("matcha.auth")

VERIFY_TOKEN_TTL = timedelta(hours=1)
RESET_TOKEN_TTL = timedelta(hours=1)

# Auth policy:
# - POST /api/v1/auth/register:         public, rate-limited
# - POST /api/v1/auth/login:            public, rate-limited
# - POST /api/v1/auth/logout:           public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:               requires auth (require_session)
# - GET  /api/v1/auth/verify-email:     public -- the token is the authorization
# - POST /api/v1/auth/forgot-password:  public, rate-limited
# - POST /api/v1/auth/reset-password:   public -- the token is the authorization
router = APIRouter()


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(auth_rate_limit)  # [H2]
def register(request: Request, body: RegisterRequest, background: BackgroundTasks) -> JSONResponse:
    """Create an account, start a session and queue the verification mail.

    Email and username uniqueness is enforced by the database; a collision
    answers 409 user_already_exists without revealing which field collided.
    Mail delivery failures are logged by the background task and never fail
    the request.
    """
    user_store: UserStore = request.app.state.user_store
    new_user = User(email=body.email, username=body.username, password_hash=hash_password(body.password))
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise Conflict("Email or username already taken.", code="user_already_exists") from exc
    user = user_store.get_by_id(user_id)
    logger.info("user registered user_id=%s", user_id)

    token = secrets.token_urlsafe(32)
    user_store.create_email_verification(user_id, token, _expiry(VERIFY_TOKEN_TTL))
    link = f"{request.app.state.settings.public_base_url}/api/v1/auth/verify-email?token={token}"
    background.add_task(
        request.app.state.mailer.send_quietly,
        user.email,
        "Verify your Matcha account",
        f"Hi {user.username},\n\nConfirm your email address by opening this link:\n{link}\n",
    )

    resp = JSONResponse(status_code=201, content=AuthResponse(user=_user_to_response(user)).model_dump())
    _start_session(request, resp, user)
    return resp


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(auth_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email or username and password; set the session cookies.

    Uses authenticate_user() which includes timing equalization [C1]. Do NOT
    inline get_by_login() + verify_password() -- that re-introduces the
    timing attack. Unknown account and wrong password get the same answer.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email_or_username, body.password)
    if user is None:
        logger.info("login failed login=%r", body.email_or_username)
        resp = error_response(Unauthorized("Invalid credentials.", code="invalid_credentials"))
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = JSONResponse(status_code=200, content=AuthResponse(user=_user_to_response(user)).model_dump())
    _start_session(request, resp, user)
    logger.info("user logged in user_id=%s", user.id)
    return resp


@router.post("/auth/logout", status_code=204)
def logout() -> Response:
    """Clear the access cookie and end the session."""
    resp = Response(status_code=204)
    clear_auth_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, session: SessionContext = Depends(require_session)) -> MeResponse:
    """Return the current user and their avatar urls (or null)."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(session.user_id)
    if user is None:
        # Valid credential for an account that no longer exists.
        raise Unauthorized()
    return MeResponse(user=_user_to_response(user), avatar=avatar_urls(user_store.get_avatar_key(user.id)))


# ---------------------------------------------------------------------------
# Emailed tokens
# ---------------------------------------------------------------------------


@router.get("/auth/verify-email", response_model=OkResponse)
def verify_email(request: Request, token: str = "") -> OkResponse:
    """Mark the account's email as verified. Tokens are single use and expire after an hour."""
    if not token:
        raise BadRequest("Missing token.", code="missing_token")
    user_store: UserStore = request.app.state.user_store
    record = user_store.get_email_verification(token)
    if record is None:
        raise BadRequest("Invalid token.", code="invalid_token")
    if _is_expired(record.expires_at):
        raise BadRequest("Token expired.", code="token_expired")
    user_store.mark_email_verified(record.user_id, token)
    logger.info("email verified user_id=%s", record.user_id)
    return OkResponse()


@router.post("/auth/forgot-password", response_model=OkResponse)
@limiter.limit(auth_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest, background: BackgroundTasks) -> OkResponse:
    """Email a password-reset link if the address belongs to an account.

    The response is the same either way so the endpoint cannot be used to
    discover registered addresses.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_login(body.email.lower())
    if user is not None and user.email == body.email.lower():
        token = secrets.token_urlsafe(32)
        user_store.create_password_reset(user.id, token, _expiry(RESET_TOKEN_TTL))
        link = f"{request.app.state.settings.public_base_url}/reset-password?token={token}"
        background.add_task(
            request.app.state.mailer.send_quietly,
            user.email,
            "Reset your Matcha password",
            f"Hi {user.username},\n\nSet a new password here (valid for one hour):\n{link}\n",
        )
    return OkResponse()


@router.post("/auth/reset-password", response_model=OkResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> OkResponse:
    """Set a new password with a reset token. Existing credentials stay valid until they expire."""
    user_store: UserStore = request.app.state.user_store
    record = user_store.get_password_reset(body.token)
    if record is None:
        raise BadRequest("Invalid token.", code="invalid_token")
    if record.used_at is not None:
        raise BadRequest("Token already used.", code="token_already_used")
    if _is_expired(record.expires_at):
        raise BadRequest("Token expired.", code="token_expired")
    if not user_store.reset_password(body.token, hash_password(body.new_password)):
        # Lost the race against a concurrent reset with the same token.
        raise BadRequest("Token already used.", code="token_already_used")
    logger.info("password reset user_id=%s", record.user_id)
    return OkResponse()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _start_session(request: Request, resp: Response, user: User) -> None:
    """Mint a credential for user and attach the access + CSRF cookies to resp."""
    settings = request.app.state.settings
    set_auth_cookie(resp, request.app.state.codec.mint(user.id, user.username), settings)
    issue_csrf_token(resp, settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise NotFound("User not found.")
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        email_verified=user.email_verified_at is not None,
        created_at=user.created_at or "",
    )


def _expiry(ttl: timedelta) -> str:
    return (datetime.now(timezone.utc) + ttl).isoformat()


def _is_expired(expires_at: str) -> bool:
    return datetime.fromisoformat(expires_at) <= datetime.now(timezone.utc)
