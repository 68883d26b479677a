"""Rotation coordinator - exchanges a refresh token for a new pair exactly once.

Presented -> SignatureValid -> SubjectExists -> VersionCurrent -> SessionActive -> Exchanged

The refresh session row is locked (SELECT ... FOR UPDATE) and then revoked
with a compare-and-set, so two concurrent exchanges of the same token can
never both produce children: the second one either waits on the lock and
then sees revoked_at, or loses the compare-and-set.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.core.request_utils import DeviceContext
from authcore.models.base import utcnow
from authcore.services.errors import InvalidTokenError, TokenError
from authcore.services.principals import PrincipalDirectory
from authcore.services.refresh_store import RefreshStore, session_status
from authcore.services.tokens import CredentialIssuer, TokenBundle, decode_token

logger = logging.getLogger(__name__)

# The one public message for every rejected exchange
INVALID_REFRESH_TOKEN = "invalid_or_expired_refresh_token"


class _Rejected(Exception):
    """Internal rejection reason; never leaves this module."""


class RotationCoordinator:
    """Exchanges a presented refresh token for a new access/refresh pair."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or default_settings
        self.principals = PrincipalDirectory(session)
        self.store = RefreshStore(session)
        self.issuer = CredentialIssuer(session, self.settings)

    async def rotate(self, refresh_token: str) -> TokenBundle:
        """Rotate a refresh token and commit the exchange.

        Every rejection raises the same InvalidTokenError so callers cannot
        tell which check failed. Nothing is written before the compare-and-set
        succeeds; any later failure is rolled back by the request transaction.
        """
        try:
            bundle = await self._exchange(refresh_token)
        except _Rejected as e:
            logger.info(f"Refresh token rejected: {e}")
            raise InvalidTokenError(INVALID_REFRESH_TOKEN) from None

        await self.session.commit()
        return bundle

    async def _exchange(self, refresh_token: str) -> TokenBundle:
        # 1. Signature, expiry and token type
        try:
            claims = decode_token(refresh_token, expected_type="refresh", settings=self.settings)
        except TokenError as e:
            raise _Rejected(f"undecodable: {e.message}") from e

        # 2. Subject
        principal = await self.principals.get_by_id(claims.principal_id)
        if principal is None:
            raise _Rejected("unknown subject")
        if not principal.is_active:
            raise _Rejected("subject inactive")

        # 3. Version - a global revoke forces re-authentication
        if claims.token_version < principal.token_version:
            raise _Rejected("session expired")

        # 4. Lock the session row for the rest of the transaction
        row = await self.store.get_by_jti(claims.jti, for_update=True)

        # 5. Session must be present, unrevoked and unexpired
        if row is None:
            raise _Rejected("unknown session")
        if row.principal_id != principal.id:
            raise _Rejected("session belongs to another subject")
        now = utcnow()
        status = session_status(row, now)
        if status != "active":
            raise _Rejected(f"session {status}")

        # 6. Revoke the presented session, then issue its replacement
        if not await self.store.mark_revoked(row, now):
            raise _Rejected("lost concurrent rotation")

        device = DeviceContext(device_id=row.device_id, ip=row.ip, user_agent=row.user_agent)
        bundle = await self.issuer.issue(principal, device)
        logger.info(
            "Rotated refresh token",
            extra={"principal_id": str(principal.id), "jti": claims.jti},
        )
        return bundle
