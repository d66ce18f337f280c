"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as photos/store.py).
UserStore is the repository; _row_to_user / _row_to_profile / _row_to_token
are the mappers. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email and username are each UNIQUE; create_user() lets IntegrityError
  propagate so the route can answer 409 without a racy pre-check.

Tables live in core/db.py; the Engine is shared with PhotoStore.

Layer rule: no imports from api/ or photos/.
"""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.engine import Engine

from auth.models import OneTimeToken, Profile, User
from core.db import email_verification_tokens, now_iso, password_reset_tokens, photos, profiles, users

_PROFILE_FIELDS: frozenset[str] = frozenset(
    {"display_name", "gender", "sexual_pref", "bio", "birthdate", "fame_rating"}
)


class UserStore:
    """Repository for users, profiles and emailed one-time tokens.

    Usage:
        store = UserStore(create_db_engine("sqlite:///matcha.db"))
        uid = store.create_user(User(email="a@b.c", username="alice", password_hash=hash_password("secret")))
        user = store.get_by_login("alice")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username is taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                users.insert().values(
                    email=user.email,
                    username=user.username,
                    password_hash=user.password_hash,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Exact, case-sensitive username lookup."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, login: str) -> User | None:
        """Look up a user by email OR username, as typed into the login form.

        Emails are stored lowercased, so anything containing "@" is lowercased
        before the comparison. Usernames stay case-sensitive.
        """
        if "@" in login:
            login = login.lower()
        with self.engine.connect() as conn:
            row = conn.execute(
                users.select().where(or_(users.c.email == login, users.c.username == login)).limit(1)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def create_email_verification(self, user_id: int, token: str, expires_at: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(email_verification_tokens.insert().values(token=token, user_id=user_id, expires_at=expires_at))
            conn.commit()

    def get_email_verification(self, token: str) -> OneTimeToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                email_verification_tokens.select().where(email_verification_tokens.c.token == token)
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def mark_email_verified(self, user_id: int, token: str) -> None:
        """Stamp email_verified_at and delete the consumed token in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(email_verified_at=now_iso()))
            conn.execute(email_verification_tokens.delete().where(email_verification_tokens.c.token == token))

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def create_password_reset(self, user_id: int, token: str, expires_at: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(password_reset_tokens.insert().values(token=token, user_id=user_id, expires_at=expires_at))
            conn.commit()

    def get_password_reset(self, token: str) -> OneTimeToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                password_reset_tokens.select().where(password_reset_tokens.c.token == token)
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def reset_password(self, token: str, password_hash: str) -> bool:
        """Set a new password hash and mark the token used, atomically.

        The token row is claimed with a conditional UPDATE (used_at IS NULL) so
        two concurrent resets with the same token cannot both succeed.
        Returns False if the token was already used.
        """
        with self.engine.begin() as conn:
            user_id = conn.execute(
                select(password_reset_tokens.c.user_id).where(password_reset_tokens.c.token == token)
            ).scalar()
            if user_id is None:
                return False
            claimed = conn.execute(
                password_reset_tokens.update()
                .where((password_reset_tokens.c.token == token) & (password_reset_tokens.c.used_at.is_(None)))
                .values(used_at=now_iso())
            )
            if claimed.rowcount == 0:
                return False
            conn.execute(users.update().where(users.c.id == user_id).values(password_hash=password_hash))
        return True

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> Profile:
        """Return the stored profile, or an all-defaults Profile if none exists yet."""
        with self.engine.connect() as conn:
            row = conn.execute(profiles.select().where(profiles.c.user_id == user_id)).fetchone()
        return _row_to_profile(row) if row is not None else Profile(user_id=user_id)

    def upsert_profile(self, user_id: int, **fields) -> Profile:
        """Create or update the user's profile with the given fields.

        Only keys in _PROFILE_FIELDS are accepted. Unknown keys raise
        ValueError rather than being silently ignored.

        Raises sqlalchemy.exc.IntegrityError on a CHECK violation.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        values = {**fields, "updated_at": now_iso()}
        with self.engine.begin() as conn:
            result = conn.execute(profiles.update().where(profiles.c.user_id == user_id).values(**values))
            if result.rowcount == 0:
                conn.execute(profiles.insert().values(user_id=user_id, **values))
            row = conn.execute(profiles.select().where(profiles.c.user_id == user_id)).fetchone()
        return _row_to_profile(row)

    # ------------------------------------------------------------------
    # Avatar lookup (read-only view onto the photos table)
    # ------------------------------------------------------------------

    def get_avatar_key(self, user_id: int) -> str | None:
        """Return the storage key of the user's avatar, or None."""
        with self.engine.connect() as conn:
            return conn.execute(
                select(photos.c.storage_key).where((photos.c.user_id == user_id) & (photos.c.kind == "avatar"))
            ).scalar()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        password_hash=row.password_hash,
        email_verified_at=row.email_verified_at,
        created_at=row.created_at,
    )


def _row_to_profile(row) -> Profile:
    return Profile(
        user_id=row.user_id,
        display_name=row.display_name,
        gender=row.gender,
        sexual_pref=row.sexual_pref,
        bio=row.bio,
        birthdate=row.birthdate,
        fame_rating=row.fame_rating,
    )


def _row_to_token(row) -> OneTimeToken:
    return OneTimeToken(
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        used_at=getattr(row, "used_at", None),
    )
