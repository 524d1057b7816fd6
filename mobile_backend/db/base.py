"""
Database Base Model
===================

Provides the base class for all SQLAlchemy models.
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all database models.

    Every ``datetime`` column is stored as ``timestamptz``.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }
