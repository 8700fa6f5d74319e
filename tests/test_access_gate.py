"""
tests/test_access_gate.py -- Integration tests for the Access Gate on GET /auth/users.

Coverage:
  - No Authorization header: forwarded anonymously (200)
  - Invalid, expired, or wrong-kind token: 401 and the route never runs
  - Valid token far from expiry: 200, no rotated header
  - Valid token inside the rotation window: 200 plus a fresh 1h access token
    in the Authorization response header, carrying the same identity
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import pytest
from starlette.requests import Request

from auth.dependencies import bearer_token
from auth.tokens import TokenKind

if TYPE_CHECKING:
    from conftest import ApiHarness

_CLAIMS = {"userId": 1, "email": "gate@x.com", "deviceId": "d1"}


def _get_users(api: ApiHarness, token: str | None = None):
    headers = {"Authorization": f"Bearer {token}"} if token is not None else {}
    return api.client.get("/auth/users", headers=headers)


class TestGateRejects:
    def test_garbage_token(self, api: ApiHarness) -> None:
        resp = _get_users(api, "garbage")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Access token is not valid"

    def test_expired_token(self, api: ApiHarness) -> None:
        expired = api.tokens.mint(TokenKind.access, _CLAIMS, ttl_seconds=-30)
        assert _get_users(api, expired).status_code == 401

    def test_refresh_token_is_not_an_access_token(self, api: ApiHarness) -> None:
        refresh = api.tokens.mint(TokenKind.refresh, _CLAIMS)
        assert _get_users(api, refresh).status_code == 401

    def test_reset_token_is_not_an_access_token(self, api: ApiHarness) -> None:
        reset = api.tokens.mint(TokenKind.reset, {"userId": 1})
        assert _get_users(api, reset).status_code == 401


class TestGatePasses:
    def test_anonymous_request_is_forwarded(self, api: ApiHarness) -> None:
        resp = _get_users(api)
        assert resp.status_code == 200
        assert "authorization" not in resp.headers

    def test_fresh_token_is_not_rotated(self, api: ApiHarness) -> None:
        token = api.tokens.mint(TokenKind.access, _CLAIMS)
        resp = _get_users(api, token)
        assert resp.status_code == 200
        assert "authorization" not in resp.headers

    def test_near_expiry_token_is_rotated(self, api: ApiHarness) -> None:
        original = api.tokens.mint(TokenKind.access, _CLAIMS, ttl_seconds=120)
        resp = _get_users(api, original)
        assert resp.status_code == 200

        header = resp.headers["authorization"]
        assert header.startswith("Bearer ")
        rotated = header[len("Bearer ") :]
        assert rotated != original

        claims = api.tokens.verify(TokenKind.access, rotated)
        assert {k: claims[k] for k in _CLAIMS} == _CLAIMS
        assert abs(claims["exp"] - (int(time.time()) + 3600)) <= 2

    def test_rotation_boundary_is_inclusive(self, api: ApiHarness) -> None:
        """exp - now == 300 rotates; the window is `<=`, not `<`."""
        original = api.tokens.mint(TokenKind.access, _CLAIMS, ttl_seconds=300)
        resp = _get_users(api, original)
        assert "authorization" in resp.headers


def _request_with(headers: dict[str, str]) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


@pytest.mark.parametrize(
    "headers,expected",
    [
        ({}, None),
        ({"Authorization": "Bearer abc.def.ghi"}, "abc.def.ghi"),
        ({"Authorization": "Bearer "}, None),
        ({"Authorization": "Basic dXNlcjpwYXNz"}, None),
        ({"Authorization": "Bearerabc"}, None),
    ],
)
def test_bearer_token_extraction(headers: dict[str, str], expected: str | None) -> None:
    assert bearer_token(_request_with(headers)) == expected
