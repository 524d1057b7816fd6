"""
Database Module
===============

Engine management, base model and the admin storage client.
"""

from mobile_backend.db.admin import AdminClient, DbError, QueryResult, create_admin_client
from mobile_backend.db.base import Base
from mobile_backend.db.session import close_db, get_engine, init_db

__all__ = [
    "AdminClient",
    "Base",
    "DbError",
    "QueryResult",
    "close_db",
    "create_admin_client",
    "get_engine",
    "init_db",
]
