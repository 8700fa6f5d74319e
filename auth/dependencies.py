"""
auth/dependencies.py -- FastAPI Depends() helpers: the Access Gate.

Two gates, one per bearer token kind:
  access_gate()  -- GET /auth/users and other access-scoped routes.
  refresh_gate() -- POST /auth/refreshToken.

Both read `Authorization: Bearer <token>`. With no token they forward None
and let the route decide -- the gate itself never rejects an anonymous call.
With a token that fails verification they raise HTTP 401 and the route never
runs. With a valid token they return an Identity and also stash it on
request.state.identity.

Silent rotation: when a valid access token has rotation_window_seconds or
less left, access_gate mints a fresh one with the same identity claims and
sets it on the outgoing `Authorization` response header. The caller's token
keeps working until its own exp.

Collaborators come from app.state (tokens, settings), wired in the lifespan.

Layer rule: may import fastapi because this module is part of the FastAPI
dependency injection system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, Response

from auth.tokens import TokenError, TokenKind, TokenService, seconds_until_expiry

logger = logging.getLogger("authservice.gate")

_RESERVED_CLAIMS = ("iat", "exp")


@dataclass(frozen=True)
class Identity:
    """Decoded claims of a verified bearer token."""

    user_id: int | None
    email: str | None = None
    device_id: str | None = None
    claims: dict = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict) -> Identity:
        return cls(
            user_id=claims.get("userId"),
            email=claims.get("email"),
            device_id=claims.get("deviceId"),
            claims=claims,
        )

    def identity_claims(self) -> dict:
        """The claims to carry into a re-issued token (everything but iat/exp)."""
        return {k: v for k, v in self.claims.items() if k not in _RESERVED_CLAIMS}


def bearer_token(request: Request) -> str | None:
    """Return the token from `Authorization: Bearer <token>`, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def _verify_or_401(request: Request, kind: TokenKind, token: str, message: str) -> Identity:
    tokens: TokenService = request.app.state.tokens
    try:
        claims = tokens.verify(kind, token)
    except TokenError as exc:
        logger.warning("Rejected %s token on %s %s: %s", kind.value, request.method, request.url.path, exc)
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": message},
        ) from exc
    identity = Identity.from_claims(claims)
    request.state.identity = identity
    return identity


def access_gate(request: Request, response: Response) -> Identity | None:
    """Verify an optional access token and rotate it when close to expiry.

    Use as a FastAPI dependency:
        @router.get("/auth/users")
        def route(identity: Identity | None = Depends(access_gate)): ...
    """
    token = bearer_token(request)
    if token is None:
        return None

    identity = _verify_or_401(request, TokenKind.access, token, "Access token is not valid")

    window = request.app.state.settings.rotation_window_seconds
    if seconds_until_expiry(identity.claims) <= window:
        tokens: TokenService = request.app.state.tokens
        rotated = tokens.mint(TokenKind.access, identity.identity_claims())
        response.headers["Authorization"] = f"Bearer {rotated}"
        logger.info("Rotated access token for user %s", identity.user_id)

    return identity


def refresh_gate(request: Request) -> Identity | None:
    """Verify an optional refresh token. No rotation.

    Use as a FastAPI dependency:
        @router.post("/auth/refreshToken")
        def route(identity: Identity | None = Depends(refresh_gate)): ...
    """
    token = bearer_token(request)
    if token is None:
        return None
    return _verify_or_401(request, TokenKind.refresh, token, "Refresh token is not valid")
