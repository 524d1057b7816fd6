"""
Database Models
===============

SQLAlchemy ORM models for the tables these functions write.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations and the admin client.
"""

from mobile_backend.models.apple_credential import AppleCredential
from mobile_backend.models.entitlement import UserEntitlement

__all__ = [
    "AppleCredential",
    "UserEntitlement",
]
