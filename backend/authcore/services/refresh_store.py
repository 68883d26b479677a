"""Refresh store - persisted per-device refresh sessions."""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.request_utils import DeviceContext
from authcore.models.base import utcnow
from authcore.models.refresh_session import RefreshSession

logger = logging.getLogger(__name__)

SessionStatus = Literal["active", "expired", "revoked"]


def session_status(row: RefreshSession, now: datetime | None = None) -> SessionStatus:
    """Derive the lifecycle state of a refresh session.

    Revoked wins over expired: a revoked row stays revoked after it expires.
    """
    now = now or utcnow()
    if row.revoked_at is not None:
        return "revoked"
    if now > row.expires_at:
        return "expired"
    return "active"


class RefreshStore:
    """Data access for refresh sessions.

    All mutations run in the caller's transaction; nothing here commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        principal_id: UUID,
        jti: str,
        expires_at: datetime,
        device: DeviceContext | None = None,
    ) -> RefreshSession:
        """Persist a new refresh session bound to the request's device."""
        device = device or DeviceContext()
        row = RefreshSession(
            principal_id=principal_id,
            jti=jti,
            device_id=device.device_id,
            ip=device.ip,
            user_agent=device.user_agent,
            expires_at=expires_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_jti(self, jti: str, *, for_update: bool = False) -> RefreshSession | None:
        """Look up a session by JTI.

        With for_update=True the row is locked (SELECT ... FOR UPDATE) until
        the surrounding transaction ends, and the locked values replace any
        copy already held by the session.
        """
        stmt = select(RefreshSession).where(RefreshSession.jti == jti)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_revoked(self, row: RefreshSession, now: datetime | None = None) -> bool:
        """Revoke one session with a compare-and-set on revoked_at.

        Returns False when another transaction revoked it first.
        """
        now = now or utcnow()
        result: Any = await self.session.execute(
            update(RefreshSession)
            .where(RefreshSession.id == row.id, RefreshSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        return result.rowcount == 1

    async def lock_open(self, principal_id: UUID) -> list[UUID]:
        """Lock every non-revoked session of a principal (SELECT ... FOR UPDATE).

        A rotation holding one of these rows must commit or roll back first,
        so a later statement in the same transaction also sees its child.
        """
        result = await self.session.execute(
            select(RefreshSession.id)
            .where(
                RefreshSession.principal_id == principal_id,
                RefreshSession.revoked_at.is_(None),
            )
            .with_for_update()
        )
        return list(result.scalars().all())

    async def revoke_matching(
        self,
        principal_id: UUID | None = None,
        *,
        jti: str | None = None,
        device_id: str | None = None,
        ids: Sequence[UUID] | None = None,
        now: datetime | None = None,
    ) -> int:
        """Revoke every non-revoked session matching all given filters."""
        if principal_id is None and jti is None:
            raise ValueError("revoke_matching needs a principal_id or a jti")

        now = now or utcnow()
        stmt = update(RefreshSession).where(RefreshSession.revoked_at.is_(None))
        if principal_id is not None:
            stmt = stmt.where(RefreshSession.principal_id == principal_id)
        if jti is not None:
            stmt = stmt.where(RefreshSession.jti == jti)
        if device_id is not None:
            stmt = stmt.where(RefreshSession.device_id == device_id)
        if ids is not None:
            if not ids:
                return 0
            stmt = stmt.where(RefreshSession.id.in_(list(ids)))

        result: Any = await self.session.execute(stmt.values(revoked_at=now))
        return result.rowcount or 0

    async def list_active(
        self,
        principal_id: UUID,
        *,
        session_id: UUID | None = None,
        device_id: str | None = None,
        now: datetime | None = None,
    ) -> list[RefreshSession]:
        """Non-revoked, unexpired sessions of a principal matching the filters."""
        now = now or utcnow()
        stmt = select(RefreshSession).where(
            RefreshSession.principal_id == principal_id,
            RefreshSession.revoked_at.is_(None),
            RefreshSession.expires_at > now,
        )
        if session_id is not None:
            stmt = stmt.where(RefreshSession.id == session_id)
        if device_id is not None:
            stmt = stmt.where(RefreshSession.device_id == device_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_principal(self, principal_id: UUID) -> list[RefreshSession]:
        """All sessions of a principal, newest first."""
        result = await self.session.execute(
            select(RefreshSession)
            .where(RefreshSession.principal_id == principal_id)
            .order_by(RefreshSession.created_at.desc())
        )
        return list(result.scalars().all())
