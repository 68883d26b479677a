"""One-time code issuer and verifier."""

import logging
import secrets
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.models.base import utcnow
from authcore.models.one_time_code import OneTimeCode
from authcore.models.principal import Principal
from authcore.services.errors import RateLimitError

logger = logging.getLogger(__name__)

CODE_LENGTH = 6

# Fixed code used when OTP delivery is disabled (local development)
DISABLED_OTP_CODE = "999999"

# TTL in minutes per purpose
OTP_TTL_MINUTES: dict[str, int] = {
    "login": 5,
    "device_verification": 5,
    "reset_password": 10,
    "reset_pin": 10,
    "email_verification": 10,
}
DEFAULT_TTL_MINUTES = 5
EMAIL_LOGIN_TTL_MINUTES = 20

OTP_PURPOSES = tuple(OTP_TTL_MINUTES)


def generate_code() -> str:
    """Fixed-width 6-digit decimal code."""
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


class OneTimeCodeService:
    """Issues, rate-limits and checks codes per (principal, purpose)."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or default_settings

    def _active_filter(self, principal_id: UUID, purpose: str):
        return (
            OneTimeCode.principal_id == principal_id,
            OneTimeCode.purpose == purpose,
            OneTimeCode.used_at.is_(None),
            OneTimeCode.invalidated_at.is_(None),
        )

    async def invalidate_active(self, principal_id: UUID, purpose: str) -> int:
        """Invalidate every unused, non-invalidated code for the pair."""
        result = await self.session.execute(
            update(OneTimeCode)
            .where(*self._active_filter(principal_id, purpose))
            .values(invalidated_at=utcnow())
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def issue(
        self,
        principal_id: UUID,
        purpose: str,
        ttl_minutes: int | None = None,
    ) -> OneTimeCode:
        """Issue a new code, invalidating prior active codes for the same purpose."""
        # Serialize issuers per principal so at most one code stays active
        await self.session.execute(
            select(Principal.id).where(Principal.id == principal_id).with_for_update()
        )
        await self.invalidate_active(principal_id, purpose)

        ttl = ttl_minutes or OTP_TTL_MINUTES.get(purpose, DEFAULT_TTL_MINUTES)
        code = generate_code() if self.settings.otp_enabled else DISABLED_OTP_CODE
        row = OneTimeCode(
            principal_id=principal_id,
            purpose=purpose,
            code=code,
            expires_at=utcnow() + timedelta(minutes=ttl),
            attempt_count=0,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info(
            "Issued one-time code",
            extra={"principal_id": str(principal_id), "purpose": purpose},
        )
        return row

    async def get_active(self, principal_id: UUID, purpose: str) -> OneTimeCode | None:
        """Latest unused, non-invalidated, unexpired code for the pair."""
        result = await self.session.execute(
            select(OneTimeCode)
            .where(*self._active_filter(principal_id, purpose), OneTimeCode.expires_at > utcnow())
            .order_by(OneTimeCode.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def verify(self, principal_id: UUID, purpose: str, code: str) -> OneTimeCode | None:
        """Check a submitted code. Returns the consumed row, or None.

        attempt_count is incremented (and committed, so it survives the
        caller's rejection) only on a value mismatch. A code with
        otp_max_attempts mismatches is dead even for the correct value.
        """
        row = await self.get_active(principal_id, purpose)
        if row is None:
            return None

        if row.attempt_count >= self.settings.otp_max_attempts:
            return None

        if not secrets.compare_digest(row.code.strip().encode(), (code or "").strip().encode()):
            row.attempt_count += 1
            await self.session.commit()
            logger.info(
                "One-time code mismatch",
                extra={"principal_id": str(principal_id), "purpose": purpose},
            )
            return None

        row.used_at = utcnow()
        await self.session.flush()
        return row

    async def check_resend_allowed(self, principal_id: UUID, purpose: str) -> None:
        """Raise RateLimitError when the last code was issued inside the cooldown."""
        cooldown = self.settings.otp_resend_cooldown_seconds
        if cooldown <= 0:
            return
        result = await self.session.execute(
            select(OneTimeCode.created_at)
            .where(OneTimeCode.principal_id == principal_id, OneTimeCode.purpose == purpose)
            .order_by(OneTimeCode.created_at.desc())
            .limit(1)
        )
        last_issued: datetime | None = result.scalar_one_or_none()
        if last_issued is not None and utcnow() - last_issued < timedelta(seconds=cooldown):
            raise RateLimitError("Please wait before requesting another code.")
