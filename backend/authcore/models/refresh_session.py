"""Refresh sessions - one row per issued refresh token."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import BaseModel, UTCDateTime


class RefreshSession(BaseModel):
    """A persisted refresh token identified by its JTI claim.

    Created at issuance or as the product of a rotation. revoked_at moves
    from NULL to a timestamp exactly once; a row past expires_at is treated
    as expired. Rows are never revived or reused.
    """

    __tablename__ = "refresh_sessions"

    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<RefreshSession jti={self.jti}>"
