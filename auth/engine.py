"""
auth/engine.py -- Registration, login, refresh, and password-reset flows.

AuthEngine is the only code that mutates UserRecords. It is constructed once
per process with its collaborators injected (store, token service, notifier,
settings), so nothing here reads the environment.

State machine per user:
  register            -> record persisted with OTP + device placeholder,
                         placeholder overwritten with a refresh token,
                         OTP emailed
  verify_otp_and_login -> OTP + password checked, access + refresh returned
  refresh_token       -> device entry must exist; overwritten with the new
                         access token
  forgot_password     -> reset token emailed as a link
  reset_password      -> reset token verified, password hash overwritten

Known limitations kept as-is (see DESIGN.md):
  - register writes twice and sends mail last. A crash between writes leaves
    the placeholder; a failed send leaves a registered user and answers 500.
  - The OTP is never cleared, so it stays valid for every later login.
  - forgot_password answers NotFound for unknown emails (account enumeration).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    Conflict,
    InternalError,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidOtp,
    NotFound,
    Unauthorized,
    WeakPassword,
)
from auth.models import DeviceToken, UserRecord
from auth.notifier import NotificationError, Notifier
from auth.passwords import generate_otp, hash_password, is_strong_password, verify_dummy, verify_password
from auth.tokens import TokenError, TokenKind, TokenMalformed, TokenService

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("authservice.engine")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
# Keeps (page - 1) * limit inside a signed 64-bit SQL integer.
MAX_PAGING_VALUE = 2**31 - 1

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str


@contextmanager
def _internal(action: str) -> Iterator[None]:
    """Turn store and notifier failures into InternalError after logging them."""
    try:
        yield
    except (SQLAlchemyError, NotificationError) as exc:
        logger.exception("%s failed", action)
        raise InternalError() from exc


def _parse_positive_int(value: object, default: int) -> int:
    """Parse the leading integer of a query value, like "2abc" -> 2.

    Absent, non-numeric, or < 1 falls back to default. Values above
    MAX_PAGING_VALUE are clamped to it.
    """
    if value is None:
        return default
    match = _LEADING_INT.match(str(value))
    if match is None:
        return default
    parsed = int(match.group(1))
    if parsed < 1:
        return default
    return min(parsed, MAX_PAGING_VALUE)


class AuthEngine:
    """Orchestrates the auth flows over the store, tokens, hasher, and notifier."""

    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str, device_id: str) -> str:
        """Create an unverified user bound to device_id and email them an OTP.

        Raises Conflict, WeakPassword, or InternalError.
        """
        with _internal("register lookup"):
            existing = self.store.get_by_email(email)
        if existing is not None:
            raise Conflict()

        if not is_strong_password(password):
            raise WeakPassword()

        otp = generate_otp(self.settings.otp_length)
        user = UserRecord(
            username=username,
            email=email,
            password_hash=hash_password(password, self.settings.bcrypt_rounds),
            otp=otp,
            tokens=[DeviceToken(device_id=device_id, token="")],
        )

        try:
            self.store.create_user(user)
        except IntegrityError as exc:
            # Lost the race against a concurrent registration, or the
            # username is taken. Either way the identity already exists.
            logger.info("Registration conflict for %s", email)
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            logger.exception("register insert failed")
            raise InternalError() from exc

        refresh = self.tokens.mint(TokenKind.refresh, {"userId": user.id, "deviceId": device_id})
        user.set_device_token(device_id, refresh)
        with _internal("register device token write"):
            self.store.update_user(user)

        with _internal("OTP email"):
            self.notifier.send_otp(email, otp)

        logger.info("Registered user %s (device %s)", user.id, device_id)
        return "User registered successfully"

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def verify_otp_and_login(
        self,
        email: str,
        otp_input: str,
        password: str,
        device_id: str | None = None,
    ) -> LoginResult:
        """Check the emailed OTP and the password, then issue access + refresh tokens.

        The OTP is checked before the password. When device_id is given it is
        bound into both tokens; the refresh token is still not persisted, so
        the device must already be registered for a later refresh to succeed.

        Raises InvalidCredentials, InvalidOtp, or InternalError.
        """
        with _internal("login lookup"):
            user = self.store.get_by_email(email)
        if user is None:
            # Equalize timing with the wrong-password path.
            verify_dummy(password)
            raise InvalidCredentials()

        if not user.otp or not hmac.compare_digest(otp_input.encode("utf-8"), user.otp.encode("utf-8")):
            raise InvalidOtp()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        claims: dict = {"userId": user.id, "email": user.email}
        if device_id:
            claims["deviceId"] = device_id
        result = LoginResult(
            access_token=self.tokens.mint(TokenKind.access, claims),
            refresh_token=self.tokens.mint(TokenKind.refresh, claims),
        )
        logger.info("User %s logged in", user.id)
        return result

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str:
        """Email a reset link carrying a 30-minute reset token.

        Raises NotFound or InternalError.
        """
        with _internal("forgot-password lookup"):
            user = self.store.get_by_email(email)
        if user is None:
            raise NotFound()

        reset_token = self.tokens.mint(TokenKind.reset, {"userId": user.id})
        reset_link = f"{self.settings.client_url.rstrip('/')}/reset-password/{reset_token}"
        with _internal("password reset email"):
            self.notifier.send_password_reset(email, reset_link)

        logger.info("Password reset link issued for user %s", user.id)
        return "Password reset link sent to your email"

    def reset_password(self, reset_token: str, new_password: str) -> str:
        """Replace the password of the user named by a valid reset token.

        Sessions on other devices are left alone.

        Raises InvalidOrExpiredToken, NotFound, WeakPassword, or InternalError.
        """
        try:
            claims = self.tokens.verify(TokenKind.reset, reset_token)
        except TokenError as exc:
            raise InvalidOrExpiredToken() from exc

        with _internal("reset lookup"):
            user = self.store.get_by_id(claims.get("userId"))
        if user is None:
            raise NotFound()

        if not is_strong_password(new_password):
            raise WeakPassword()

        user.password_hash = hash_password(new_password, self.settings.bcrypt_rounds)
        with _internal("password write"):
            self.store.update_user(user)

        logger.info("Password reset for user %s", user.id)
        return "Password reset successful"

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_token(self, user_id: int | None, device_id: str | None) -> str:
        """Issue a new access token for a device that already holds a stored token.

        user_id and device_id come from a verified refresh token. The device
        entry is found by decoding the stored tokens without verification;
        entries that do not parse (the registration placeholder) never match.

        Raises Unauthorized or InternalError.
        """
        if not user_id:
            raise Unauthorized("Invalid user ID in token")

        with _internal("refresh lookup"):
            user = self.store.get_by_id(user_id)
        if user is None:
            raise Unauthorized("User not found")

        entry = self._find_device_entry(user, device_id)
        if entry is None:
            logger.warning("Refresh rejected for user %s: device not authorized", user.id)
            raise Unauthorized("Device not authorized")

        access = self.tokens.mint(
            TokenKind.access,
            {"userId": user.id, "email": user.email, "deviceId": device_id},
        )
        entry.token = access
        with _internal("refresh device token write"):
            self.store.update_user(user)
        return access

    def _find_device_entry(self, user: UserRecord, device_id: str | None) -> DeviceToken | None:
        if not device_id:
            return None
        for entry in user.tokens:
            try:
                claims = self.tokens.decode(entry.token)
            except TokenMalformed:
                continue
            if claims.get("deviceId") == device_id:
                return entry
        return None

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_users(self, page: object = None, limit: object = None) -> list[UserRecord]:
        """Return one page of users in store order.

        page and limit are raw query values; see _parse_positive_int. The
        limit is uncapped unless LIST_USERS_MAX_LIMIT is set.
        """
        page_num = _parse_positive_int(page, DEFAULT_PAGE)
        page_size = _parse_positive_int(limit, DEFAULT_LIMIT)
        cap = self.settings.list_users_max_limit
        if cap > 0:
            page_size = min(page_size, cap)
        with _internal("list users"):
            return self.store.list_users(offset=(page_num - 1) * page_size, limit=page_size)
