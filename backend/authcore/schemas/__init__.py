# Authcore Pydantic Schemas
from authcore.schemas.auth import (
    ApiResponse,
    LoginRequest,
    LoginResponse,
    PrincipalResponse,
    RevokeSessionRequest,
    SessionResponse,
    TokenResponse,
)

__all__ = [
    "ApiResponse",
    "LoginRequest",
    "LoginResponse",
    "PrincipalResponse",
    "RevokeSessionRequest",
    "SessionResponse",
    "TokenResponse",
]
