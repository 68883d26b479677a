"""Principal model - the end user credentials are issued for."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import BaseModel, UTCDateTime


class Principal(BaseModel):
    """An authenticated end user.

    Owned by the identity store. The auth core reads it, increments
    token_version and flips is_active on lockout.

    token_version is embedded in every issued token; bumping it invalidates
    all previously issued access and refresh tokens at their next use.
    """

    __tablename__ = "principals"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)

    # Opaque argon2 hashes
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Monotonic, never decremented
    token_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    banned_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role_slug: Mapped[str | None] = mapped_column(String(50), nullable=True)
    member_tier_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_member: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Principal {self.id}>"
