"""
auth/tokens.py -- Signed, time-bounded tokens for the auth flows.

Security design decisions:
  JWT: python-jose with HS256. Every token carries iat and exp (epoch
       seconds); no clock-skew leeway is applied on verification.

  Key registry: each TokenKind signs with its own secret from KeyRegistry.
       A reset token cannot authorize a refresh and a refresh token cannot
       pass the Access Gate, because the signature check fails under the
       other kind's key [K1]. Keys are loaded once from Settings, which has
       already rejected missing, short, or shared keys.

  verify() vs decode(): verify() is the trust boundary and raises a typed
       TokenError. decode() skips the signature check and is only for
       inspecting tokens this service stored itself (device matching in the
       refresh flow). Never authorize anything on decode() output.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

if TYPE_CHECKING:
    from core.config import Settings

_ALGORITHM = "HS256"


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"
    reset = "reset"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for every token verification failure."""


class TokenMalformed(TokenError):
    """The token could not be parsed as a JWT."""


class TokenInvalidSignature(TokenError):
    """The signature does not validate under the expected kind's key."""


class TokenExpired(TokenError):
    """The signature is valid but the exp claim is in the past."""


# ---------------------------------------------------------------------------
# Key registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyRegistry:
    """One HS256 signing secret per TokenKind."""

    access: str
    refresh: str
    reset: str

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyRegistry:
        return cls(
            access=settings.access_token_secret,
            refresh=settings.refresh_token_secret,
            reset=settings.reset_token_secret,
        )

    def key_for(self, kind: TokenKind) -> str:
        return getattr(self, kind.value)


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Mint and verify tokens of each kind.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        raw = tokens.mint(TokenKind.access, {"userId": 1, "email": "a@x.com"})
        claims = tokens.verify(TokenKind.access, raw)   # raises TokenError
    """

    def __init__(self, keys: KeyRegistry, ttls: dict[TokenKind, int]) -> None:
        self._keys = keys
        self._ttls = dict(ttls)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(
            KeyRegistry.from_settings(settings),
            {
                TokenKind.access: settings.access_token_ttl_seconds,
                TokenKind.refresh: settings.refresh_token_ttl_seconds,
                TokenKind.reset: settings.reset_token_ttl_seconds,
            },
        )

    def mint(self, kind: TokenKind, claims: dict, ttl_seconds: int | None = None) -> str:
        """Sign claims as a token of the given kind.

        Args:
            kind:        Which key signs the token.
            claims:      Identity claims (userId, email, deviceId...). Copied,
                         never mutated. Any iat/exp in it is overwritten.
            ttl_seconds: Lifetime override. Defaults to the kind's configured TTL.
                         Zero or a negative value mints an already-expired token.
        """
        now = int(time.time())
        ttl = self._ttls[kind] if ttl_seconds is None else ttl_seconds
        payload = {**claims, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, self._keys.key_for(kind), algorithm=_ALGORITHM)

    def verify(self, kind: TokenKind, token: str) -> dict:
        """Check signature and expiry and return the claims.

        Raises:
            TokenMalformed:        token is not a parseable JWT.
            TokenInvalidSignature: signed with another key, or tampered with.
            TokenExpired:          exp is not in the future.
        """
        # Parse first so a garbage string is reported as malformed rather
        # than as a bad signature.
        self.decode(token)
        try:
            claims = jwt.decode(token, self._keys.key_for(kind), algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired(f"{kind.value} token has expired") from exc
        except JWTError as exc:
            raise TokenInvalidSignature(f"{kind.value} token failed verification") from exc
        # jose only rejects exp < now; a token is dead once exp == now.
        if "exp" not in claims or seconds_until_expiry(claims) <= 0:
            raise TokenExpired(f"{kind.value} token has expired")
        return claims

    def decode(self, token: str) -> dict:
        """Return the claims WITHOUT checking signature or expiry.

        Raises TokenMalformed if the token cannot be parsed.
        """
        try:
            return jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenMalformed("token is not a valid JWT") from exc


def seconds_until_expiry(claims: dict, now: int | None = None) -> int:
    """Return exp - now in whole seconds (zero or negative once expired)."""
    current = int(time.time()) if now is None else now
    return int(claims["exp"]) - current
