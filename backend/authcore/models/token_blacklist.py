"""Denied access-token JTIs, kept until the token would have expired anyway."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.core.database import Base
from authcore.models.base import UTCDateTime


class BlacklistedToken(Base):
    """One denied access token. Survives process restarts."""

    __tablename__ = "token_blacklist"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Equal to the token's own exp claim
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
