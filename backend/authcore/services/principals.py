"""Principal lookup and credential hash checks."""

import logging
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.models.principal import Principal

logger = logging.getLogger(__name__)

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

# Verified against when the identity is unknown so both branches cost the same
_DUMMY_HASH = ph.hash("dummy-credential")


def hash_secret(secret: str) -> str:
    """Hash a PIN or password using Argon2id."""
    return ph.hash(secret)


def verify_secret(secret: str, secret_hash: str | None) -> bool:
    """Verify a PIN or password against its hash using constant-time comparison."""
    if not secret_hash:
        return False
    try:
        ph.verify(secret_hash, secret)
        return True
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        logger.warning("Stored credential hash could not be verified")
        return False


def burn_dummy_verification(secret: str) -> None:
    """Spend one hash verification so unknown identities are not faster."""
    verify_secret(secret, _DUMMY_HASH)


class PrincipalDirectory:
    """Read access to principals in the identity store."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, principal_id: UUID) -> Principal | None:
        """Load a principal with fresh column values.

        populate_existing forces token_version and is_active to be re-read even
        when the row is already in the session.
        """
        result = await self.session.execute(
            select(Principal)
            .where(Principal.id == principal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone_number: str) -> Principal | None:
        result = await self.session.execute(
            select(Principal).where(Principal.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Principal | None:
        result = await self.session.execute(
            select(Principal).where(Principal.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_by_identity(self, identity: str) -> Principal | None:
        """Resolve an email address or a phone number."""
        identity = identity.strip()
        if "@" in identity:
            return await self.get_by_email(identity)
        return await self.get_by_phone(identity)

