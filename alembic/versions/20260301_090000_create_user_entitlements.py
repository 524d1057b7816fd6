"""Create user_entitlements and apple_credentials

Revision ID: 3f9a1c7d2e10
Revises:
Create Date: 2026-03-01 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9a1c7d2e10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""

    # ------------------------------------------------------------------
    # 1. user_entitlements: one row per user, written by the RevenueCat
    #    webhook. The FK name is matched when classifying write errors.
    # ------------------------------------------------------------------
    op.create_table(
        "user_entitlements",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_pro", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revenuecat_app_user_id", sa.String(length=255), nullable=True),
        sa.Column("last_event_type", sa.String(length=64), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth.users.id"],
            name="user_entitlements_user_id_fkey",
            ondelete="CASCADE",
        ),
    )

    # ------------------------------------------------------------------
    # 2. apple_credentials: Sign in with Apple tokens for revocation
    # ------------------------------------------------------------------
    op.create_table(
        "apple_credentials",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("authorization_code", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("token_exchanged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["auth.users.id"],
            name="apple_credentials_user_id_fkey",
            ondelete="CASCADE",
        ),
    )

    # ------------------------------------------------------------------
    # 3. Row level security: only the service role writes these tables;
    #    users may read their own entitlement.
    # ------------------------------------------------------------------
    op.execute("ALTER TABLE user_entitlements ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE apple_credentials ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY user_entitlements_select_own ON user_entitlements "
        "FOR SELECT USING (auth.uid() = user_id)"
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute("DROP POLICY IF EXISTS user_entitlements_select_own ON user_entitlements")
    op.drop_table("apple_credentials")
    op.drop_table("user_entitlements")
