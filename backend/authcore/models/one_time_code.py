"""One-time numeric codes for login challenges and resets."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import BaseModel, UTCDateTime


class OneTimeCode(BaseModel):
    """A short-lived 6-digit code scoped to (principal, purpose).

    At most one active (unused, non-invalidated, unexpired) row exists per
    (principal_id, purpose); issuing a new code invalidates the others.
    """

    __tablename__ = "one_time_codes"
    __table_args__ = (
        Index("ix_one_time_codes_principal_purpose_created", "principal_id", "purpose", "created_at"),
    )

    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purpose: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<OneTimeCode purpose={self.purpose!r} principal={self.principal_id}>"
