"""
auth/tokens.py -- Credential codec, password hashing, and access cookie helpers.

Security design decisions:
  Credential: python-jose with HS256. Tokens carry the subject id ("sub"),
       the username, "iat" and "exp". The server never stores them; validity
       is signature + expiry only. There is no refresh: logging in again is
       the only way to obtain a new credential.

  Expiry boundary: jose treats a token as valid while now <= exp. The codec
       disables jose's own exp check and applies "valid while now < exp"
       itself, so a credential is rejected at exactly its expiry instant.

  Passwords: bcrypt used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an account exists.

  SECRET_KEY: injected into CredentialCodec from Settings once at startup
       (see core/config.py for the missing/short key policy).

Layer rule: no imports from api/ or photos/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import CredentialClaims
from core.config import Settings, get_settings
from core.errors import InvalidCredential

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("matcha.auth")

ACCESS_COOKIE = "access_token"

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input past 72 bytes; the API layer caps passwords at
    128 characters, which keeps typical inputs below that threshold.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("matcha_timing_dummy")


def authenticate_user(store: UserStore, login: str, password: str) -> User | None:
    """Authenticate by email or username with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown login: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_login(login)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Credential codec
# ---------------------------------------------------------------------------


class CredentialCodec:
    """Mint and verify signed, time-bounded credentials.

    Usage:
        codec = CredentialCodec(secret_key, ttl_seconds=900)
        token = codec.mint(42, "alice")
        claims = codec.verify(token)   # raises InvalidCredential

    clock returns epoch seconds; tests inject a fixed clock to probe the
    expiry boundary.
    """

    def __init__(self, secret_key: str, ttl_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialCodec:
        return cls(settings.secret_key, settings.token_expire_seconds)

    def mint(self, subject_id: int, subject_name: str) -> str:
        issued_at = int(self._clock())
        payload = {
            "sub": str(subject_id),
            "username": subject_name,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> CredentialClaims:
        """Return the claims of a valid token.

        Raises InvalidCredential if the signature does not match, the payload
        is malformed, or the current time is at/after the encoded expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise InvalidCredential() from exc

        try:
            claims = CredentialClaims(
                subject_id=int(payload["sub"]),
                subject_name=str(payload["username"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidCredential() from exc

        if self._clock() >= claims.expires_at:
            raise InvalidCredential("Credential expired.")
        return claims


@lru_cache
def get_codec() -> CredentialCodec:
    """Return the process-wide codec built from Settings."""
    return CredentialCodec.from_settings(get_settings())


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, settings: Settings) -> None:
    """Write the credential as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": sent on top-level same-site navigations, not on
        cross-site subrequests.
    max_age: matches the credential TTL so both expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.token_expire_seconds,
        path="/",
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/")
