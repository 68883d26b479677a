"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core import get_db
from authcore.core.request_utils import get_bearer_token, get_device_context
from authcore.models.principal import Principal
from authcore.schemas.auth import (
    ApiResponse,
    ChangePasswordRequest,
    ChangePinRequest,
    EmailLoginRequest,
    ForgotPasswordRequest,
    ForgotPinRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    OtpChallengeResponse,
    PrincipalResponse,
    RefreshRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    ResetPinRequest,
    RevokeSessionRequest,
    RevokeSessionResponse,
    SessionResponse,
    TokenResponse,
    VerifyOtpRequest,
)
from authcore.services.auth import AuthService, LoginResult
from authcore.services.blacklist import TokenBlacklist, get_token_blacklist
from authcore.services.errors import AuthenticationError, InvalidTokenError
from authcore.services.rotation import INVALID_REFRESH_TOKEN
from authcore.services.tokens import TokenBundle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    blacklist: TokenBlacklist = Depends(get_token_blacklist),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, blacklist=blacklist)


async def get_current_principal(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> Principal:
    """Dependency to get the current authenticated principal from the access token."""
    token = get_bearer_token(request)
    if token is None:
        raise AuthenticationError("Missing or invalid authorization header")
    return await auth_service.authenticate_access_token(token)


def _token_response(bundle: TokenBundle) -> TokenResponse:
    return TokenResponse(
        access_token=bundle.access_token,
        access_token_expires_at=bundle.access_token_expires_at,
        refresh_token=bundle.refresh_token,
        refresh_token_expires_at=bundle.refresh_token_expires_at,
    )


def _login_response(result: LoginResult) -> ApiResponse:
    if result.requires_otp or result.tokens is None:
        challenge = OtpChallengeResponse(send_to=result.send_to)
        return ApiResponse(
            message="Verification code sent. Verify it to continue.",
            data=challenge.model_dump(mode="json"),
        )
    payload = LoginResponse(
        token=_token_response(result.tokens),
        user=PrincipalResponse.model_validate(result.principal),
    )
    return ApiResponse(message="Login successful", data=payload.model_dump(mode="json"))


# --- Public endpoints ---


@router.post("/login", response_model=ApiResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Phone + PIN login.

    Returns tokens on a trusted device. An unrecognized device gets a
    verification code instead (``requires_otp``), to be exchanged at
    ``/auth/verify-otp``. Requires the ``X-Device-Id`` header.
    """
    result = await auth_service.login_with_pin(
        request.phone, request.pin, get_device_context(http_request)
    )
    return _login_response(result)


@router.post("/login-email", response_model=ApiResponse)
async def login_email(
    request: EmailLoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Email + password login. Always answered with a verification code."""
    result = await auth_service.login_with_email(
        request.email, request.password, get_device_context(http_request)
    )
    return _login_response(result)


@router.post("/verify-otp", response_model=ApiResponse)
async def verify_otp(
    request: VerifyOtpRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Exchange a login code for tokens and trust the current device."""
    result = await auth_service.verify_login_otp(
        request.identity, request.otp, get_device_context(http_request)
    )
    return _login_response(result)


@router.post("/resend-otp", response_model=ApiResponse)
async def resend_otp(
    request: ResendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    data = await auth_service.resend_otp(request.identity, request.purpose)
    return ApiResponse(message="If the account exists, a new code has been sent.", data=data)


@router.post("/forgot-pin", response_model=ApiResponse)
async def forgot_pin(
    request: ForgotPinRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    await auth_service.forgot_pin(request.phone)
    return ApiResponse(message="If the account exists, a reset code has been sent.")


@router.post("/reset-pin", response_model=ApiResponse)
async def reset_pin(
    request: ResetPinRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Set a new PIN. Every existing session is revoked."""
    await auth_service.reset_pin(request.phone, request.otp, request.new_pin)
    return ApiResponse(message="PIN has been reset. Please log in again.")


@router.post("/forgot-password", response_model=ApiResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    await auth_service.forgot_password(request.email)
    return ApiResponse(message="If the account exists, a reset code has been sent.")


@router.post("/reset-password", response_model=ApiResponse)
async def reset_password(
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Set a new password. Every existing session is revoked."""
    await auth_service.reset_password(request.email, request.otp, request.new_password)
    return ApiResponse(message="Password has been reset. Please log in again.")


@router.post("/refresh-token", response_model=ApiResponse)
async def refresh_token(
    http_request: Request,
    request: RefreshRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Rotate a refresh token.

    The token is read from the body, or from ``Authorization: Bearer``.
    The presented token is revoked; the response carries its replacement.
    """
    token = (request.refresh_token if request else None) or get_bearer_token(http_request)
    if not token:
        raise InvalidTokenError(INVALID_REFRESH_TOKEN)
    bundle = await auth_service.refresh(token)
    return ApiResponse(
        message="Token refreshed",
        data=_token_response(bundle).model_dump(mode="json"),
    )


# --- Authenticated endpoints ---


@router.post("/logout", response_model=ApiResponse)
async def logout(
    http_request: Request,
    request: LogoutRequest | None = None,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Log out the current session.

    Revokes the given refresh token's session and blacklists the current
    access token for the remainder of its TTL.
    """
    await auth_service.logout(
        request.refresh_token if request else None,
        get_bearer_token(http_request),
    )
    logger.info("Principal logged out", extra={"principal_id": str(current_principal.id)})
    return ApiResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=ApiResponse)
async def logout_all(
    http_request: Request,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Log out everywhere: revoke every session and invalidate all issued tokens."""
    count = await auth_service.logout_all(current_principal, get_bearer_token(http_request))
    return ApiResponse(
        message="Logged out from all devices",
        data=RevokeSessionResponse(revoked=count).model_dump(),
    )


@router.post("/change-pin", response_model=ApiResponse)
async def change_pin(
    request: ChangePinRequest,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Change the PIN. All existing tokens are invalidated; log in again."""
    await auth_service.change_pin(current_principal, request.current_pin, request.new_pin)
    return ApiResponse(message="PIN changed successfully")


@router.post("/change-password", response_model=ApiResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Change the password. All existing tokens are invalidated; log in again."""
    await auth_service.change_password(
        current_principal, request.current_password, request.new_password
    )
    return ApiResponse(message="Password changed successfully")


@router.get("/me", response_model=ApiResponse)
async def get_current_principal_info(
    current_principal: Principal = Depends(get_current_principal),
) -> ApiResponse:
    """Get the current principal's information."""
    return ApiResponse(
        message="Current user",
        data=PrincipalResponse.model_validate(current_principal).model_dump(mode="json"),
    )


@router.get("/sessions", response_model=ApiResponse)
async def list_sessions(
    http_request: Request,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """List the caller's refresh sessions, newest first."""
    device = get_device_context(http_request)
    views = await auth_service.revocation.list_sessions(current_principal, device.device_id)
    return ApiResponse(
        message="Sessions",
        data=[SessionResponse.model_validate(v).model_dump(mode="json") for v in views],
    )


@router.post("/sessions/revoke", response_model=ApiResponse)
async def revoke_sessions(
    request: RevokeSessionRequest,
    http_request: Request,
    current_principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    """Revoke the caller's active sessions by session id and/or device id."""
    device = get_device_context(http_request)
    count = await auth_service.revocation.revoke_selected(
        current_principal,
        session_id=request.refresh_token_id,
        device_id=request.device_id,
        revoke_current=request.revoke_current,
        current_device_id=device.device_id,
        current_access_token=get_bearer_token(http_request),
    )
    return ApiResponse(
        message="Sessions revoked" if count else "No matching active session",
        data=RevokeSessionResponse(revoked=count).model_dump(),
    )
