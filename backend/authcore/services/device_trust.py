"""Device trust gate.

Decides whether a login on a device needs a one-time-code challenge. A
device is trusted once a fully verified login has been recorded for the
(principal, device_id) pair. Device ids are client-supplied and spoofable, so
trust only decides whether to challenge; it never replaces the credential
check.
"""

import logging
import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.request_utils import DeviceContext
from authcore.models.base import utcnow
from authcore.models.device_login import DeviceLoginRecord

logger = logging.getLogger(__name__)

_EMAIL_MASK = re.compile(r"(^.).*(@.*$)")


def mask_email(email: str | None) -> str | None:
    """Mask the local part of an address: ``alice@example.com`` -> ``a***@example.com``."""
    if not email:
        return None
    return _EMAIL_MASK.sub(r"\1***\2", email)


class DeviceTrustGate:
    """Reads and records trusted devices per principal."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_record(self, principal_id: UUID, device_id: str) -> DeviceLoginRecord | None:
        result = await self.session.execute(
            select(DeviceLoginRecord).where(
                DeviceLoginRecord.principal_id == principal_id,
                DeviceLoginRecord.device_id == device_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_trusted(self, principal_id: UUID, device_id: str | None) -> bool:
        """A device without an id is never trusted."""
        if not device_id:
            return False
        return await self.get_record(principal_id, device_id) is not None

    async def record_login(self, principal_id: UUID, device: DeviceContext) -> DeviceLoginRecord:
        """Upsert the (principal, device) row with fresh login metadata.

        Call only after a fully verified login on that device.
        """
        if not device.device_id:
            raise ValueError("record_login requires a device id")

        record = await self.get_record(principal_id, device.device_id)
        if record is None:
            record = DeviceLoginRecord(principal_id=principal_id, device_id=device.device_id)
            self.session.add(record)
            logger.info(
                "Trusted new device",
                extra={"principal_id": str(principal_id), "device_id": device.device_id},
            )

        record.logged_in_at = utcnow()
        record.ip_address = device.ip
        record.user_agent = device.user_agent
        record.device_type = device.device_type
        record.platform = device.platform
        record.browser = device.browser
        record.country = device.country
        record.city = device.city
        record.latitude = device.latitude
        record.longitude = device.longitude
        await self.session.flush()
        return record

    async def last_logins(self, principal_id: UUID) -> dict[str, DeviceLoginRecord]:
        """Device login records of a principal keyed by device id."""
        result = await self.session.execute(
            select(DeviceLoginRecord).where(DeviceLoginRecord.principal_id == principal_id)
        )
        return {row.device_id: row for row in result.scalars().all()}
