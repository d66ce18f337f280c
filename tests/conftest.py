"""
tests/conftest.py -- Shared test fixtures for Matcha tests.

This module provides:
  - engine: an isolated named shared-memory SQLite engine per test
  - make_user(): inserts a user row directly (for store/service unit tests)
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - client: TestClient over the real app (middleware, routes, handlers)
  - signup / csrf / make_image: request helper fixtures

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment is set before any application import: get_settings() is cached
at first call, and api/main.py reads it at import time.
"""

from __future__ import annotations

import io
import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: set before any api/auth/core import (get_settings() is cached).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
# TestClient sends Host: testserver.
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="matcha-test-uploads-"))

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.engine import Engine

from api.main import app
from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.db import create_db_engine
from core.mailer import Mailer
from photos.files import LocalFileStore
from photos.imaging import ImageTransformer
from photos.service import PhotoService
from photos.store import PhotoStore

PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingMailer(Mailer):
    """Mailer that keeps messages in memory instead of logging or sending them."""

    def __init__(self) -> None:
        super().__init__(host="", port=0, sender="test@matcha.local")
        object.__setattr__(self, "sent", [])

    def send(self, to: str, subject: str, text: str) -> None:
        self.sent.append({"to": to, "subject": subject, "text": text})


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine(f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield eng
    eng.dispose()


@pytest.fixture()
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture()
def make_user(user_store: UserStore):
    """Insert a user row and return its id. Password hashing is skipped for speed."""

    def _make(username: str = "alice") -> int:
        return user_store.create_user(
            User(email=f"{username}@example.com", username=username, password_hash="not-a-real-hash")
        )

    return _make


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, mailer: Mailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state so TestClient routes see an isolated
    database. Backing files go to the UPLOADS_DIR set above, which is also the
    directory the /uploads static mount serves.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.engine = engine
        app.state.user_store = UserStore(engine)
        app.state.photo_service = PhotoService(
            store=PhotoStore(engine),
            files=LocalFileStore(settings.uploads_dir),
            transformer=ImageTransformer(),
            max_upload_bytes=settings.max_upload_bytes,
        )
        app.state.mailer = mailer
        yield

    return test_lifespan


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(engine: Engine, mailer: RecordingMailer) -> Generator[TestClient, None, None]:
    """TestClient over the real app with a fresh database and an empty cookie jar."""
    app.router.lifespan_context = _patch_lifespan(engine, mailer)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture()
def uploads_root() -> Path:
    return get_settings().uploads_dir


# ---------------------------------------------------------------------------
# Request helpers (exposed as fixtures)
# ---------------------------------------------------------------------------


def _csrf_headers(client: TestClient) -> dict[str, str]:
    token = client.cookies.get("csrf_token")
    return {"X-CSRF-Token": token} if token else {}


@pytest.fixture()
def csrf(client: TestClient):
    """csrf() -> headers echoing the csrf_token cookie, as the frontend does."""
    return lambda: _csrf_headers(client)


@pytest.fixture()
def signup(client: TestClient):
    """signup(username) registers (and signs in) a user and returns the user payload."""

    def _signup(username: str = "alice", password: str = PASSWORD) -> dict:
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": f"{username}@example.com", "username": username, "password": password},
            headers=_csrf_headers(client),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["user"]

    return _signup


def _image_bytes(fmt: str = "PNG", size: tuple[int, int] = (64, 48), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def make_image():
    """make_image(fmt="PNG", size=(w, h)) -> encoded image bytes generated with Pillow."""
    return _image_bytes