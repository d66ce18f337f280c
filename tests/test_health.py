"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version and timestamp fields
  - No authentication required
"""

from __future__ import annotations

from datetime import datetime

from api.main import VERSION


def test_health_returns_status_version_timestamp(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION
    assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None


def test_health_no_auth_required(client):
    """Health endpoint is accessible without any cookies."""
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"
