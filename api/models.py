"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (otpInput, deviceId, accessToken...). Request models
forbid unknown fields, so a typo in a field name is a 422, not a silently
ignored value. String fields are taken verbatim: a password padded with
spaces must reach the policy check unchanged and fail it.

Password fields are capped at 72 characters: bcrypt only hashes the first
72 bytes and current bcrypt releases reject anything longer. The policy
allows ASCII letters and digits only, so characters and bytes coincide.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import UserRecord

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class _ResponseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_RequestModel):
    """Request body for POST /auth/register."""

    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(max_length=72)
    device_id: str = Field(min_length=1, max_length=255)


class LoginRequest(_RequestModel):
    """Request body for POST /auth/verifyOTPAndLogin.

    deviceId is optional. When present it is bound into both issued tokens.
    """

    email: str = Field(min_length=3, max_length=320)
    otp_input: str = Field(min_length=1, max_length=16)
    password: str = Field(min_length=1, max_length=72)
    device_id: Optional[str] = Field(default=None, min_length=1, max_length=255)


class ForgotPasswordRequest(_RequestModel):
    """Request body for POST /auth/forgotPassword."""

    email: str = Field(min_length=3, max_length=320)


class ResetPasswordRequest(_RequestModel):
    """Request body for POST /auth/resetPassword."""

    reset_token: str = Field(min_length=1, max_length=4096)
    new_password: str = Field(max_length=72)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(_ResponseModel):
    message: str


class LoginResponse(_ResponseModel):
    """Response for POST /auth/verifyOTPAndLogin."""

    message: str = "Login successful"
    access_token: str
    refresh_token: str


class AccessTokenResponse(_ResponseModel):
    """Response for POST /auth/refreshToken."""

    access_token: str


class UserResponse(_ResponseModel):
    """One row of GET /auth/users.

    Password hash, OTP, and stored token values are never serialized; the
    device IDs a user is bound to are.
    """

    id: int
    username: str
    email: str
    devices: list[str] = Field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            devices=[t.device_id for t in user.tokens],
            created_at=user.created_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
