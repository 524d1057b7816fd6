"""
Entitlement Models
==================

Mirror of the user's RevenueCat entitlement, one row per user.
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from mobile_backend.db.base import Base


class UserEntitlement(Base):
    """
    Current Pro entitlement for a user.

    ``user_id`` references ``auth.users.id`` (owned by Supabase Auth) through
    the ``user_entitlements_user_id_fkey`` constraint created in the migration;
    rows vanish with the auth user via ``ON DELETE CASCADE``.
    """

    __tablename__ = "user_entitlements"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )
    is_pro: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    revenuecat_app_user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    last_event_type: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UserEntitlement(user_id={self.user_id}, is_pro={self.is_pro})>"
