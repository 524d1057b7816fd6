"""
Apple Credential Models
=======================

Sign in with Apple tokens kept so the grant can be revoked on account deletion.
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import DateTime, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from mobile_backend.db.base import Base


class AppleCredential(Base):
    """Apple authorization code and tokens for one user."""

    __tablename__ = "apple_credentials"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )
    # Only set when the server could not exchange it at sign-in time
    authorization_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_exchanged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AppleCredential(user_id={self.user_id})>"
