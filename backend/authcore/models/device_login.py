"""Device login records - presence of a row marks a trusted device."""

import uuid
from datetime import datetime

from sqlalchemy import Float, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import BaseModel, UTCDateTime


class DeviceLoginRecord(BaseModel):
    """Last successful, fully verified login of a principal on one device.

    Upserted on (principal_id, device_id) so a device never gets a second row.
    """

    __tablename__ = "device_logins"
    __table_args__ = (
        UniqueConstraint("principal_id", "device_id", name="uq_device_logins_principal_device"),
    )

    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    logged_in_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Connection metadata (client-supplied hints)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(255), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<DeviceLoginRecord device={self.device_id!r}>"
