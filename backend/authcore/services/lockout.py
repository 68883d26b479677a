"""Lockout guard - deactivates accounts after repeated failed logins.

The lockout is a one-way trip: once the threshold trips the account is
deactivated and needs administrative reactivation. There is no cooldown.
"""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.core.request_utils import DeviceContext
from authcore.models.base import utcnow
from authcore.models.failed_attempt import FailedAttempt
from authcore.models.principal import Principal
from authcore.services.errors import AccountLockedError

logger = logging.getLogger(__name__)

LOCKOUT_REASON = "Account has been locked after too many failed login attempts."


class LockoutGuard:
    """Tracks failed credential checks per identity (phone or email)."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or default_settings

    async def recent_failures(self, identity: str) -> int:
        """Failed attempts for the identity within the trailing window."""
        since = utcnow() - timedelta(hours=self.settings.lockout_window_hours)
        result = await self.session.execute(
            select(func.count(FailedAttempt.id)).where(
                FailedAttempt.identity == identity,
                FailedAttempt.success.is_(False),
                FailedAttempt.attempted_at >= since,
            )
        )
        return result.scalar() or 0

    async def enforce(self, principal: Principal, identity: str) -> None:
        """Deactivate and reject when the failure count reached the threshold."""
        failures = await self.recent_failures(identity)
        if failures < self.settings.lockout_threshold:
            return

        if principal.is_active:
            principal.is_active = False
            principal.banned_reason = LOCKOUT_REASON
            # Commit so the ban survives the rejection below
            await self.session.commit()
            logger.warning(
                f"Account locked after {failures} failed login attempts",
                extra={"principal_id": str(principal.id)},
            )
        raise AccountLockedError(LOCKOUT_REASON)

    async def record_failure(
        self,
        identity: str,
        principal_id: UUID | None = None,
        device: DeviceContext | None = None,
    ) -> None:
        """Persist one failed attempt; committed so it survives the rejection."""
        device = device or DeviceContext()
        self.session.add(
            FailedAttempt(
                identity=identity,
                principal_id=principal_id,
                success=False,
                ip_address=device.ip,
                user_agent=device.user_agent,
                device_type=device.device_type,
                platform=device.platform,
                browser=device.browser,
                attempted_at=utcnow(),
            )
        )
        await self.session.commit()

    async def clear(self, identity: str) -> int:
        """Forget failed attempts after a correct credential check."""
        result = await self.session.execute(
            delete(FailedAttempt).where(
                FailedAttempt.identity == identity,
                FailedAttempt.success.is_(False),
            )
        )
        return result.rowcount or 0  # type: ignore[attr-defined]
