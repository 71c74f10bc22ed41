"""
Baseline router contract checks.

Locks the public method/path table and the rate-limit contract so handler
moves between router modules cannot silently drop an endpoint.
"""

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import vibe.main as m
from vibe.auth.security import create_access_token
from vibe.routes import swipes as swipe_routes
from vibe.services.rate_limit import limiter

EXPECTED = {
    ("GET", "/me/profile"),
    ("PUT", "/me/profile"),
    ("DELETE", "/me/profile"),
    ("POST", "/me/photos"),
    ("POST", "/me/phone"),
    ("GET", "/feed"),
    ("DELETE", "/feed/session"),
    ("POST", "/swipes"),
    ("GET", "/likes"),
    ("POST", "/likes/{from_uid}/reveal"),
    ("GET", "/matches"),
    ("GET", "/matches/stream"),
    ("DELETE", "/matches/{other_uid}"),
    ("GET", "/matches/{match_id}/messages"),
    ("GET", "/matches/{match_id}/messages/stream"),
    ("POST", "/matches/{match_id}/messages"),
    ("POST", "/matches/{match_id}/read"),
    ("POST", "/safety/blocks"),
    ("DELETE", "/safety/blocks/{blocked_uid}"),
    ("GET", "/safety/blocks"),
    ("POST", "/safety/report"),
    ("GET", "/health"),
}


def test_route_table_is_complete():
    table = {
        (method, route.path)
        for route in m.app.routes
        for method in getattr(route, "methods", None) or ()
        if method != "HEAD"
    }
    assert EXPECTED <= table


def test_swipes_are_rate_limited_per_user(monkeypatch):
    limiter.reset()
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "create_tables", lambda: None)
    monkeypatch.setattr(swipe_routes, "is_sponsored_id", lambda target: True)
    monkeypatch.setattr(limiter, "check", _limit_after(2))
    headers = {"Authorization": f"Bearer {create_access_token('alice')}"}

    with TestClient(m.app) as client:
        codes = [
            client.post("/swipes", json={"target_id": f"ad-{i}", "direction": "like"}, headers=headers).status_code
            for i in range(3)
        ]
        blocked = client.post("/swipes", json={"target_id": "ad-x", "direction": "like"}, headers=headers)

    assert codes == [200, 200, 429]
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1
    limiter.reset()


def _limit_after(n):
    original = type(limiter).check

    def check(key, limit, window_seconds):
        return original(limiter, key, limit=n, window_seconds=window_seconds)

    return check
