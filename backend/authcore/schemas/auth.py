"""Pydantic schemas for authentication API."""

import re
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_PASSWORD_CLASSES = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[^A-Za-z0-9]"), "a symbol"),
)

OtpPurpose = Literal[
    "login",
    "device_verification",
    "reset_password",
    "reset_pin",
    "email_verification",
]


def _check_password_strength(value: str) -> str:
    missing = [label for pattern, label in _PASSWORD_CLASSES if not pattern.search(value)]
    if missing:
        raise ValueError(f"Password must contain {', '.join(missing)}")
    return value


class ApiResponse(BaseModel):
    """Success envelope shared by every endpoint."""

    success: bool = True
    message: str
    data: Any = None


# --- Requests ---


class LoginRequest(BaseModel):
    """Request for phone + PIN login."""

    phone: str = Field(..., min_length=1, max_length=32)
    pin: str = Field(..., min_length=4, max_length=6)


class EmailLoginRequest(BaseModel):
    """Request for email + password login."""

    email: str = Field(..., min_length=3, max_length=100, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1, max_length=128)


class VerifyOtpRequest(BaseModel):
    """Request to complete a challenged login."""

    identity: str = Field(..., min_length=1, max_length=100, description="Email or phone number")
    otp: str = Field(..., pattern=r"^\d{6}$")


class ResendOtpRequest(BaseModel):
    identity: str = Field(..., min_length=1, max_length=100)
    purpose: OtpPurpose = "login"


class ForgotPinRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)


class ResetPinRequest(BaseModel):
    """Request to set a new PIN with a reset code."""

    phone: str = Field(..., min_length=1, max_length=32)
    otp: str = Field(..., pattern=r"^\d{6}$")
    new_pin: str = Field(..., pattern=r"^\d{4,6}$")


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=100, pattern=r"^[^@\s]+@[^@\s]+$")


class ResetPasswordRequest(BaseModel):
    """Request to set a new password with a reset code."""

    email: str = Field(..., min_length=3, max_length=100, pattern=r"^[^@\s]+@[^@\s]+$")
    otp: str = Field(..., pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class RefreshRequest(BaseModel):
    """Request for token refresh. The token may also arrive as a Bearer header."""

    refresh_token: str | None = None


class LogoutRequest(BaseModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token to revoke. Its session can no longer be rotated.",
    )


class ChangePinRequest(BaseModel):
    current_pin: str = Field(..., pattern=r"^\d{4,6}$")
    new_pin: str = Field(..., pattern=r"^\d{4,6}$")


class ChangePasswordRequest(BaseModel):
    """Request for password change."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="New password (minimum 8 characters, mixed case, numbers and symbols)",
    )

    @field_validator("new_password")
    @classmethod
    def validate_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class RevokeSessionRequest(BaseModel):
    """Revoke the caller's sessions by refresh session id and/or device id."""

    refresh_token_id: UUID | None = None
    device_id: str | None = Field(None, min_length=1, max_length=255)
    revoke_current: bool = False

    @model_validator(mode="after")
    def require_target(self) -> "RevokeSessionRequest":
        if self.refresh_token_id is None and not self.device_id:
            raise ValueError("refresh_token_id or device_id is required")
        return self


# --- Responses ---


class TokenResponse(BaseModel):
    """Response with JWT tokens."""

    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    token_type: str = "bearer"


class OtpChallengeResponse(BaseModel):
    """Returned instead of tokens when the device must be verified."""

    requires_otp: bool = True
    send_to: str | None = Field(None, description="Masked address the code was sent to")


class PrincipalResponse(BaseModel):
    """Response with principal information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    phone_number: str
    email: str | None
    role_slug: str | None
    member_tier_code: str | None
    is_member: bool
    email_verified_at: datetime | None
    created_at: datetime


class LoginResponse(BaseModel):
    """Tokens plus the signed-in principal."""

    token: TokenResponse
    user: PrincipalResponse


class SessionResponse(BaseModel):
    """One refresh session as listed to its owner."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    device_id: str | None
    ip: str | None
    user_agent: str | None
    created_at: datetime
    last_login_at: datetime | None
    expires_at: datetime
    revoked_at: datetime | None
    status: Literal["active", "expired", "revoked"]
    is_current_device: bool


class RevokeSessionResponse(BaseModel):
    revoked: int
