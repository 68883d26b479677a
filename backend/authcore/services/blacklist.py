"""Access-token blacklist.

A denylist of access-token JTIs, consulted on every access-token verification
in addition to signature, expiry and token_version. Markers live in the
``token_blacklist`` table so they survive restarts and are shared by every
worker. token_version plus expiry remain authoritative.

The blacklist reads and writes through its own short sessions, never through
the request transaction: a marker is only written after the revocation it
accompanies has committed, and a failed request can't roll it back.

Each marker expires with the token it denies (``expires_at`` is the token's
``exp``). Refresh tokens are never blacklisted; the refresh store covers them.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.core.database import async_session_maker
from authcore.models.token_blacklist import BlacklistedToken

logger = logging.getLogger(__name__)

# Sweep interval for the background cleanup loop
CLEANUP_INTERVAL_SECONDS = 300


class TokenBlacklist:
    """Database-backed JTI denylist with per-entry expiry."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory or async_session_maker
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=UTC)

    async def put(self, jti: str, exp: float) -> bool:
        """Deny a JTI until exp (a Unix timestamp). Returns False when nothing was stored.

        A token already past exp is dead on its own; no marker is needed.
        """
        if not jti or exp <= self._clock():
            return False
        expires_at = datetime.fromtimestamp(exp, tz=UTC)
        async with self._session_factory() as session:
            row = await session.get(BlacklistedToken, jti)
            if row is None:
                session.add(BlacklistedToken(jti=jti, expires_at=expires_at))
            elif expires_at < row.expires_at:
                # Never extend an existing marker past the token's natural expiry
                row.expires_at = expires_at
            try:
                await session.commit()
            except IntegrityError:
                # Inserted concurrently; the existing marker already denies it
                await session.rollback()
        return True

    async def contains(self, jti: str) -> bool:
        """Check if a JTI is currently denied."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(BlacklistedToken.jti).where(
                    BlacklistedToken.jti == jti,
                    BlacklistedToken.expires_at > self._now(),
                )
            )
            return result.scalar_one_or_none() is not None

    async def cleanup_expired(self) -> int:
        """Remove expired entries. Returns count removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(BlacklistedToken).where(BlacklistedToken.expires_at <= self._now())
            )
            await session.commit()
            return result.rowcount or 0  # type: ignore[attr-defined]

    async def count(self) -> int:
        """Number of stored markers, including expired ones not yet swept."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(BlacklistedToken))
            return result.scalar_one()


_instance: TokenBlacklist | None = None


def get_token_blacklist() -> TokenBlacklist:
    """Process-wide blacklist bound to the application database."""
    global _instance
    if _instance is None:
        _instance = TokenBlacklist()
    return _instance


async def blacklist_cleanup_loop(interval: float = CLEANUP_INTERVAL_SECONDS) -> None:
    """Periodically remove expired entries from the token blacklist."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await get_token_blacklist().cleanup_expired()
            if removed > 0:
                logger.info(f"Cleaned up {removed} expired token blacklist entries")
        except Exception:
            logger.exception("Error cleaning up token blacklist")
