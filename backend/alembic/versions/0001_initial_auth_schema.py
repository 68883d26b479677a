"""Initial auth schema: principals, refresh sessions, one-time codes, device logins, failed attempts.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:30:00

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # Create principals table
    op.create_table(
        "principals",
        sa.Column("id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("pin_hash", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("banned_reason", sa.String(length=500), nullable=True),
        sa.Column("role_slug", sa.String(length=50), nullable=True),
        sa.Column("member_tier_code", sa.String(length=50), nullable=True),
        sa.Column("is_member", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_principals_phone_number", "principals", ["phone_number"], unique=True)
    op.create_index("ix_principals_email", "principals", ["email"], unique=True)

    # Create refresh_sessions table
    op.create_table(
        "refresh_sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.Column("principal_id", sa.UUID(), nullable=False),
        sa.Column("jti", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["principal_id"], ["principals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("jti"),
    )
    op.create_index("ix_refresh_sessions_principal_id", "refresh_sessions", ["principal_id"])
    op.create_index("ix_refresh_sessions_device_id", "refresh_sessions", ["device_id"])

    # Create one_time_codes table
    op.create_table(
        "one_time_codes",
        sa.Column("id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.Column("principal_id", sa.UUID(), nullable=False),
        sa.Column("purpose", sa.String(length=50), nullable=False),
        sa.Column("code", sa.String(length=10), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invalidated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["principal_id"], ["principals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_one_time_codes_principal_id", "one_time_codes", ["principal_id"])
    op.create_index("ix_one_time_codes_purpose", "one_time_codes", ["purpose"])
    op.create_index("ix_one_time_codes_expires_at", "one_time_codes", ["expires_at"])
    op.create_index(
        "ix_one_time_codes_principal_purpose_created",
        "one_time_codes",
        ["principal_id", "purpose", "created_at"],
    )

    # Create device_logins table
    op.create_table(
        "device_logins",
        sa.Column("id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.Column("principal_id", sa.UUID(), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=False),
        sa.Column("logged_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(length=255), nullable=True),
        sa.Column("platform", sa.String(length=255), nullable=True),
        sa.Column("browser", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["principal_id"], ["principals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "principal_id", "device_id", name="uq_device_logins_principal_device"
        ),
    )
    op.create_index("ix_device_logins_principal_id", "device_logins", ["principal_id"])

    # Create failed_attempts table
    op.create_table(
        "failed_attempts",
        sa.Column("id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.Column("identity", sa.String(length=255), nullable=False),
        sa.Column("principal_id", sa.UUID(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("device_type", sa.String(length=255), nullable=True),
        sa.Column("platform", sa.String(length=255), nullable=True),
        sa.Column("browser", sa.String(length=255), nullable=True),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_failed_attempts_identity_attempted",
        "failed_attempts",
        ["identity", "attempted_at"],
    )


def downgrade() -> None:
    op.drop_table("failed_attempts")
    op.drop_table("device_logins")
    op.drop_table("one_time_codes")
    op.drop_table("refresh_sessions")
    op.drop_table("principals")
