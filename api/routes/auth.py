"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /auth/register            -- create user, email OTP; 201
  POST /auth/verifyOTPAndLogin   -- OTP + password; returns access + refresh tokens
  POST /auth/refreshToken        -- refresh bearer; returns a new access token
  GET  /auth/users               -- paginated user list (access bearer, optional)
  POST /auth/forgotPassword      -- email a reset link
  POST /auth/resetPassword       -- reset token + new password

Handlers stay thin: they validate the body (pydantic), call AuthEngine, and
shape the response. Engine failures are AuthError subclasses and are turned
into the error envelope by the handler in api/main.py, so no route builds an
error response itself.

Security:
  [H2] Login and forgot-password are rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on every response that carries a token.
  The @limiter.limit() decorator sits ABOVE @router.post so slowapi can attach
  the limit to the function object FastAPI registers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AccessTokenResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import Identity, access_gate, refresh_gate
from auth.engine import AuthEngine
from core.config import get_settings

# Auth policy:
# - POST /auth/register:          public
# - POST /auth/verifyOTPAndLogin: public, rate limited
# - POST /auth/refreshToken:      refresh bearer; missing token -> engine answers 401
# - GET  /auth/users:             access bearer if present; anonymous calls pass through
# - POST /auth/forgotPassword:    public, rate limited
# - POST /auth/resetPassword:     public (the reset token is in the body)
router = APIRouter()

_settings = get_settings()


def _engine(request: Request) -> AuthEngine:
    return request.app.state.engine


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Register a user bound to body.deviceId and email them an OTP."""
    message = _engine(request).register(body.username, body.email, body.password, body.device_id)
    return MessageResponse(message=message)


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/auth/verifyOTPAndLogin", response_model=LoginResponse)
def verify_otp_and_login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Check OTP and password; return a 1h access token and a 5m refresh token."""
    result = _engine(request).verify_otp_and_login(body.email, body.otp_input, body.password, body.device_id)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return LoginResponse(access_token=result.access_token, refresh_token=result.refresh_token)


@router.post("/auth/refreshToken", response_model=AccessTokenResponse)
def refresh_token(
    request: Request,
    response: Response,
    identity: Identity | None = Depends(refresh_gate),
) -> AccessTokenResponse:
    """Exchange a device-bound refresh token for a new access token."""
    user_id = identity.user_id if identity else None
    device_id = identity.device_id if identity else None
    access = _engine(request).refresh_token(user_id, device_id)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AccessTokenResponse(access_token=access)


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    page: str | None = None,
    limit: str | None = None,
    identity: Identity | None = Depends(access_gate),
) -> list[UserResponse]:
    """List users page by page in store order. Defaults: page=1, limit=10.

    page and limit are taken as raw strings so a non-numeric value falls back
    to the default instead of failing validation.
    """
    users = _engine(request).list_users(page, limit)
    return [UserResponse.from_record(u) for u in users]


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/auth/forgotPassword", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a 30-minute password reset link."""
    return MessageResponse(message=_engine(request).forgot_password(body.email))


@router.post("/auth/resetPassword", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password using a reset token from the emailed link."""
    return MessageResponse(message=_engine(request).reset_password(body.reset_token, body.new_password))
