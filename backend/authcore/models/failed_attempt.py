"""Failed credential checks, counted by the lockout guard."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import BaseModel, UTCDateTime


class FailedAttempt(BaseModel):
    """One login attempt for an identity (phone number or email)."""

    __tablename__ = "failed_attempts"
    __table_args__ = (Index("ix_failed_attempts_identity_attempted", "identity", "attempted_at"),)

    identity: Mapped[str] = mapped_column(String(255), nullable=False)
    # Null when the identity did not resolve to a principal
    principal_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(255), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
