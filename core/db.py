"""
core/db.py -- Shared SQLAlchemy Core schema and engine factory.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in auth/models.py
and photos/models.py remain the authoritative domain representation. One
MetaData holds every table; UserStore and PhotoStore share one Engine so the
photos -> users foreign key and the public-profile join work on any backend.
Swapping SQLite for PostgreSQL is a connection string change.

Security: all queries use bound parameters. No f-strings in SQL.

Transactions on SQLite:
  pysqlite's own BEGIN handling is disabled (isolation_level=None) and the
  "begin" event emits BEGIN explicitly. This is the SQLAlchemy-documented
  recipe for correct SQLite transactions; it also lets owner_transaction()
  request BEGIN IMMEDIATE, which takes the write lock up front so a
  read-validate-write sequence cannot interleave with another writer.

Gallery position uniqueness is NOT a unique index. SQLite checks unique
indexes row by row inside a multi-row UPDATE, so a single-statement
permutation (1<->2) would be rejected half-way. The photo slot engine
enforces distinct positions inside owner-serialized transactions instead.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.errors import AppError, BadRequest, Conflict

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(30), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("email_verified_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

profiles = Table(
    "profiles",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("display_name", String(100), nullable=False, server_default=""),
    Column("gender", String(10)),
    Column("sexual_pref", String(10)),
    Column("bio", String(500), nullable=False, server_default=""),
    Column("birthdate", String(10)),  # YYYY-MM-DD
    Column("fame_rating", Integer, nullable=False, server_default="0"),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint("fame_rating BETWEEN 0 AND 100", name="ck_profiles_fame_rating"),
    CheckConstraint("gender IS NULL OR gender IN ('male', 'female', 'other')", name="ck_profiles_gender"),
    CheckConstraint(
        "sexual_pref IS NULL OR sexual_pref IN ('straight', 'gay', 'bisexual', 'other')",
        name="ck_profiles_sexual_pref",
    ),
)

email_verification_tokens = Table(
    "email_verification_tokens",
    metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

password_reset_tokens = Table(
    "password_reset_tokens",
    metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("used_at", String(32)),
)

photos = Table(
    "photos",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("kind", String(10), nullable=False),
    Column("position", Integer),  # NULL for the avatar, 1..5 for gallery rows
    Column("storage_key", Text, nullable=False),
    Column("mime_type", String(30), nullable=False),
    Column("width", Integer),
    Column("height", Integer),
    Column("size_bytes", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("kind IN ('avatar', 'gallery')", name="ck_photos_kind"),
    CheckConstraint(
        "(kind = 'avatar' AND position IS NULL) OR (kind = 'gallery' AND position BETWEEN 1 AND 5)",
        name="ck_photos_position",
    ),
)

# At most one avatar per user.
Index(
    "uq_photos_one_avatar",
    photos.c.user_id,
    unique=True,
    sqlite_where=photos.c.kind == "avatar",
    postgresql_where=photos.c.kind == "avatar",
)
Index("ix_photos_user_kind", photos.c.user_id, photos.c.kind)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Per-connection PRAGMAs and transaction control.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. WAL lets readers proceed during writes;
    foreign_keys is off by default in SQLite.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA busy_timeout=5000")
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _sqlite_begin(conn: Connection) -> None:
    mode = conn.get_execution_options().get("sqlite_begin", "DEFERRED")
    conn.exec_driver_sql(f"BEGIN {mode}")


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure every table exists."""
    connect_args: dict = {}
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(engine, "connect", _configure_sqlite)
        event.listen(engine, "begin", _sqlite_begin)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@contextmanager
def owner_transaction(engine: Engine, user_id: int) -> Iterator[Connection]:
    """Run a block as one transaction serialized against other writers for user_id.

    PostgreSQL: the owner's users row is locked FOR UPDATE, so two mutations
    on the same owner queue up while other owners proceed in parallel.
    SQLite: FOR UPDATE renders as nothing; BEGIN IMMEDIATE takes the database
    write lock instead (a superset of owner scope).

    Commits on normal exit, rolls back if the block raises.
    """
    with engine.connect() as conn:
        conn.execution_options(sqlite_begin="IMMEDIATE")
        with conn.begin():
            conn.execute(select(users.c.id).where(users.c.id == user_id).with_for_update())
            yield conn


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def translate_integrity_error(exc: IntegrityError) -> AppError:
    """Map a storage constraint violation onto the error taxonomy.

    Unique violations become Conflict; CHECK and foreign key violations become
    BadRequest. The driver message is never forwarded to the client.
    """
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate == "23505" or "unique" in str(orig).lower():
        return Conflict("Resource already exists.")
    return BadRequest("Invalid value.", code="constraint_violation")
