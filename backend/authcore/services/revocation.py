"""Revocation authority - single-token, per-device and global revocation."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import jwt
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.models.base import utcnow
from authcore.models.principal import Principal
from authcore.services.blacklist import TokenBlacklist, get_token_blacklist
from authcore.services.device_trust import DeviceTrustGate
from authcore.services.errors import TokenError, ValidationError
from authcore.services.refresh_store import RefreshStore, SessionStatus, session_status
from authcore.services.tokens import decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionView:
    """A refresh session as shown to its owner."""

    id: UUID
    device_id: str | None
    ip: str | None
    user_agent: str | None
    created_at: datetime
    last_login_at: datetime | None
    expires_at: datetime
    revoked_at: datetime | None
    status: SessionStatus
    is_current_device: bool


class RevocationAuthority:
    """Composes the refresh store, the blacklist and token_version."""

    def __init__(
        self,
        session: AsyncSession,
        blacklist: TokenBlacklist | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or default_settings
        self.blacklist = blacklist if blacklist is not None else get_token_blacklist()
        self.store = RefreshStore(session)

    async def revoke_by_token(self, refresh_token: str | None) -> int:
        """Revoke the session of a refresh token. Idempotent, never raises on bad input.

        Signature is verified but expiry is not: logging out with an expired
        refresh token still closes its session row.
        """
        if not refresh_token:
            return 0
        try:
            claims = decode_token(refresh_token, expected_type="refresh", settings=self.settings)
            jti = claims.jti
        except TokenError:
            jti = self._unverified_expired_jti(refresh_token)
        if not jti:
            return 0
        return await self.store.revoke_matching(jti=jti)

    def _unverified_expired_jti(self, token: str) -> str | None:
        try:
            payload = jwt.decode(
                token,
                self.settings.effective_jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                options={"verify_exp": False},
            )
        except jwt.PyJWTError:
            return None
        if payload.get("type") != "refresh":
            return None
        jti = payload.get("jti")
        return jti if isinstance(jti, str) else None

    async def revoke_by_device(self, principal: Principal, device_id: str) -> int:
        """Revoke every open session of a principal on one device."""
        count = await self.store.revoke_matching(principal.id, device_id=device_id)
        logger.info(
            f"Revoked {count} session(s) by device",
            extra={"principal_id": str(principal.id), "device_id": device_id},
        )
        return count

    async def revoke_all_for_user(self, principal: Principal, bump_version: bool = True) -> int:
        """Logout everywhere / compromise recovery.

        Bumping token_version invalidates every previously issued access and
        refresh token at its next verification, even while still unexpired.
        Both changes are committed together.
        """
        if bump_version:
            # Increment in SQL so concurrent bumps never collapse into one
            await self.session.execute(
                update(Principal)
                .where(Principal.id == principal.id)
                .values(token_version=Principal.token_version + 1)
                .execution_options(synchronize_session=False)
            )
            await self.session.refresh(principal, attribute_names=["token_version"])
        # Wait out in-flight rotations so their children are revoked too
        await self.store.lock_open(principal.id)
        count = await self.store.revoke_matching(principal.id)
        await self.session.commit()
        logger.warning(
            f"Revoked all sessions ({count}), token_version={principal.token_version}",
            extra={"principal_id": str(principal.id)},
        )
        return count

    async def list_sessions(
        self, principal: Principal, current_device_id: str | None = None
    ) -> list[SessionView]:
        """Every session of a principal with its derived status, newest first."""
        rows = await self.store.list_for_principal(principal.id)
        logins = await DeviceTrustGate(self.session).last_logins(principal.id)
        now = utcnow()

        views = []
        for row in rows:
            login = logins.get(row.device_id) if row.device_id else None
            views.append(
                SessionView(
                    id=row.id,
                    device_id=row.device_id,
                    ip=row.ip,
                    user_agent=row.user_agent,
                    created_at=row.created_at,
                    last_login_at=login.logged_in_at if login else None,
                    expires_at=row.expires_at,
                    revoked_at=row.revoked_at,
                    status=session_status(row, now),
                    is_current_device=bool(current_device_id)
                    and row.device_id == current_device_id,
                )
            )
        return views

    async def revoke_selected(
        self,
        principal: Principal,
        *,
        session_id: UUID | None = None,
        device_id: str | None = None,
        revoke_current: bool = False,
        current_device_id: str | None = None,
        current_access_token: str | None = None,
    ) -> int:
        """Revoke the caller's active sessions matching an id and/or a device.

        When revoke_current is set and the caller's own device is among the
        targets, the caller's access token is blacklisted too so the live
        session dies now rather than at access-token expiry.
        """
        if session_id is None and not device_id:
            raise ValidationError("refresh_token_id or device_id is required")

        targets = await self.store.list_active(
            principal.id, session_id=session_id, device_id=device_id
        )
        if not targets:
            return 0

        count = await self.store.revoke_matching(principal.id, ids=[row.id for row in targets])
        await self.session.commit()

        if revoke_current and current_device_id:
            if any(row.device_id == current_device_id for row in targets):
                await self.blacklist_access_token(current_access_token)
        return count

    async def blacklist_access_token(self, access_token: str | None) -> bool:
        """Deny an access token for its remaining life. Best-effort.

        Returns whether a marker was written; decode failures are swallowed so
        they can never fail a logout.
        """
        if not access_token:
            return False
        try:
            claims = decode_token(access_token, expected_type="access", settings=self.settings)
        except TokenError:
            return False
        return await self.blacklist.put(claims.jti, claims.exp)
