# Authcore Services
from authcore.services.auth import AuthService, LoginResult
from authcore.services.blacklist import TokenBlacklist, get_token_blacklist
from authcore.services.revocation import RevocationAuthority
from authcore.services.rotation import RotationCoordinator
from authcore.services.tokens import CredentialIssuer, TokenBundle, TokenClaims

__all__ = [
    "AuthService",
    "CredentialIssuer",
    "LoginResult",
    "RevocationAuthority",
    "RotationCoordinator",
    "TokenBlacklist",
    "TokenBundle",
    "TokenClaims",
    "get_token_blacklist",
]
