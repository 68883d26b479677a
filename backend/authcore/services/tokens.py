"""Credential issuer - signed access/refresh token pairs."""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.core.request_utils import DeviceContext
from authcore.models.principal import Principal
from authcore.services.errors import InvalidTokenError, MalformedPrincipal, TokenExpiredError
from authcore.services.refresh_store import RefreshStore

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh"]

# Claims owned by the issuer; caller-supplied extras can never override them
RESERVED_CLAIMS = frozenset(
    {
        "sub",
        "name",
        "phone",
        "role",
        "token_version",
        "member_tier_code",
        "jti",
        "iat",
        "exp",
        "type",
    }
)

_REQUIRED_CLAIMS: dict[str, type | tuple[type, ...]] = {
    "sub": str,
    "name": str,
    "phone": str,
    "role": str,
    "token_version": int,
    "jti": str,
    "iat": int,
    "exp": int,
    "type": str,
}


@dataclass(frozen=True)
class TokenClaims:
    """Decoded claim set of an access or refresh token."""

    sub: str
    name: str
    phone: str
    role: str
    token_version: int
    jti: str
    iat: int
    exp: int
    type: str
    member_tier_code: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        """Build claims from a decoded payload, rejecting incomplete ones."""
        for name, expected in _REQUIRED_CLAIMS.items():
            value = payload.get(name)
            # bool is an int subclass; a boolean token_version is malformed
            if value is None or isinstance(value, bool) or not isinstance(value, expected):
                raise InvalidTokenError(f"Token missing or malformed claim: {name}")
        if payload["type"] not in ("access", "refresh"):
            raise InvalidTokenError("Unknown token type")
        try:
            UUID(payload["sub"])
        except ValueError as e:
            raise InvalidTokenError("Token subject is not a valid id") from e

        tier = payload.get("member_tier_code")
        return cls(
            sub=payload["sub"],
            name=payload["name"],
            phone=payload["phone"],
            role=payload["role"],
            token_version=payload["token_version"],
            jti=payload["jti"],
            iat=payload["iat"],
            exp=payload["exp"],
            type=payload["type"],
            member_tier_code=tier if isinstance(tier, str) else None,
            extra={k: v for k, v in payload.items() if k not in RESERVED_CLAIMS},
        )

    @property
    def principal_id(self) -> UUID:
        return UUID(self.sub)

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=UTC)


@dataclass(frozen=True)
class TokenBundle:
    """An access/refresh pair with expiry timestamps for the client."""

    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    refresh_jti: str

    def as_dict(self) -> dict[str, str]:
        return {
            "access_token": self.access_token,
            "access_token_expires_at": self.access_token_expires_at.isoformat(),
            "refresh_token": self.refresh_token,
            "refresh_token_expires_at": self.refresh_token_expires_at.isoformat(),
        }


def encode_token(
    claims: dict[str, Any],
    token_type: TokenType,
    ttl_seconds: int,
    settings: Settings | None = None,
) -> tuple[str, TokenClaims]:
    """Sign a token with a fresh 128-bit jti, iat=now and exp=now+ttl."""
    settings = settings or default_settings
    now = int(time.time())
    payload = {
        **claims,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": token_type,
    }
    token = jwt.encode(
        payload,
        settings.effective_jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    # PyJWT 2.x returns str; older type stubs may declare bytes
    return str(token), TokenClaims.from_payload(payload)


def decode_token(
    token: str,
    expected_type: TokenType | None = None,
    settings: Settings | None = None,
) -> TokenClaims:
    """Verify signature and expiry and return the typed claims."""
    settings = settings or default_settings
    try:
        payload = jwt.decode(
            token,
            settings.effective_jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat", "sub", "jti"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except PyJWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}") from e

    claims = TokenClaims.from_payload(payload)
    if expected_type is not None and claims.type != expected_type:
        raise InvalidTokenError(f"Not an {expected_type} token")
    return claims


def build_principal_claims(principal: Principal) -> dict[str, Any]:
    """Snapshot the principal into the core claim set."""
    if not principal.role_slug:
        raise MalformedPrincipal("Principal has no role")
    return {
        "sub": str(principal.id),
        "name": principal.full_name,
        "phone": principal.phone_number,
        "role": principal.role_slug,
        "token_version": int(principal.token_version or 0),
        "member_tier_code": principal.member_tier_code,
    }


class CredentialIssuer:
    """Builds signed token pairs and records the refresh session."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or default_settings
        self.store = RefreshStore(session)

    async def issue(
        self,
        principal: Principal,
        device: DeviceContext | None = None,
        extra_claims: dict[str, Any] | None = None,
    ) -> TokenBundle:
        """Issue an access/refresh pair for a principal.

        Persists one RefreshSession keyed by the refresh token's jti and bound
        to the device, ip and user agent of the current request.
        """
        claims = {k: v for k, v in (extra_claims or {}).items() if k not in RESERVED_CLAIMS}
        claims.update(build_principal_claims(principal))

        access, access_claims = encode_token(
            claims, "access", self.settings.access_token_ttl_seconds, self.settings
        )
        refresh, refresh_claims = encode_token(
            claims, "refresh", self.settings.refresh_token_ttl_seconds, self.settings
        )

        await self.store.add(
            principal.id,
            refresh_claims.jti,
            refresh_claims.expires_at,
            device,
        )
        logger.debug(
            "Issued token pair",
            extra={"principal_id": str(principal.id), "jti": refresh_claims.jti},
        )

        return TokenBundle(
            access_token=access,
            access_token_expires_at=access_claims.expires_at,
            refresh_token=refresh,
            refresh_token_expires_at=refresh_claims.expires_at,
            refresh_jti=refresh_claims.jti,
        )
