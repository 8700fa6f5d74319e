"""
auth/passwords.py -- Password hashing, password policy, and OTP generation.

Passwords: bcrypt used directly (no passlib wrapper). Cost factor defaults to
10 and comes from Settings.bcrypt_rounds so tests and production agree on
the same code path.

Timing equalization: _DUMMY_HASH lets the login flow run bcrypt even when the
email is unknown, so response time does not reveal whether an account exists.

OTPs: 4 uniform random digits from the `random` module. They are short-lived,
emailed codes checked alongside the password, not secrets in their own right.
"""

from __future__ import annotations

import random
import re

import bcrypt

# ASCII letters and digits only, at least one of each, 8 or more characters.
_PASSWORD_RE = re.compile(r"(?=.*[A-Za-z])(?=.*[0-9])[A-Za-z0-9]{8,}")

_OTP_DIGITS = "0123456789"


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first unknown-email login is not
# measurably faster than later ones.
_DUMMY_HASH: str = hash_password("authservice_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Burn one bcrypt check against a throwaway hash. Result is discarded."""
    verify_password(plain, _DUMMY_HASH)


def is_strong_password(password: str) -> bool:
    return _PASSWORD_RE.fullmatch(password) is not None


def generate_otp(length: int = 4) -> str:
    """Return a numeric OTP of the given length, each digit drawn uniformly."""
    return "".join(random.choice(_OTP_DIGITS) for _ in range(length))  # noqa: S311 -- not a secret
