"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in photos/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or photos/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    password_hash is the bcrypt hash; it never leaves the auth layer.
    email_verified_at stays None until the verification link is followed.
    """

    email: str
    username: str
    password_hash: str
    id: int | None = None
    email_verified_at: str | None = None
    created_at: str | None = None


@dataclass
class Profile:
    """Editable profile fields. A user without a profiles row gets the defaults."""

    user_id: int
    display_name: str = ""
    gender: str | None = None  # "male", "female", "other"
    sexual_pref: str | None = None  # "straight", "gay", "bisexual", "other"
    bio: str = ""
    birthdate: str | None = None  # YYYY-MM-DD
    fame_rating: int = 0


@dataclass
class OneTimeToken:
    """An emailed single-purpose token (email verification or password reset).

    used_at is only tracked for password resets; verification tokens are
    deleted when consumed.
    """

    token: str
    user_id: int
    expires_at: str  # ISO 8601, UTC
    used_at: str | None = None


@dataclass(frozen=True)
class CredentialClaims:
    """Decoded content of a verified credential."""

    subject_id: int
    subject_name: str
    issued_at: int  # epoch seconds
    expires_at: int  # epoch seconds


@dataclass(frozen=True)
class SessionContext:
    """Per-request identity derived from a verified credential. Never persisted."""

    user_id: int
    username: str

    @classmethod
    def from_claims(cls, claims: CredentialClaims) -> "SessionContext":
        return cls(user_id=claims.subject_id, username=claims.subject_name)
