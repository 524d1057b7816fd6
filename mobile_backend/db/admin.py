"""
Admin Storage Client
====================

Service-role access to the Supabase Postgres tables used by the edge
functions.

Every operation returns a :class:`QueryResult` instead of raising on
database failures, so callers can classify ``DbError`` values with plain
predicates (see ``is_unknown_user_db_error``). Anything that is not a
SQLAlchemy error still propagates.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import DateTime, Table, Uuid, column, delete, select, table
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from mobile_backend.db.base import Base
from mobile_backend.db.session import get_engine
from mobile_backend.utils.helpers import parse_date

# Register mapped tables on Base.metadata
import mobile_backend.models  # noqa: F401

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for a malformed literal (bad uuid or timestamp text)
INVALID_TEXT_REPRESENTATION = "22P02"


class InvalidValueError(ValueError):
    """A value could not be converted to its column type."""

    def __init__(self, column_name: str, value: Any):
        super().__init__(f"invalid input for column {column_name}: {value!r}")
        self.column_name = column_name

    def to_db_error(self) -> "DbError":
        return DbError(message=str(self), code=INVALID_TEXT_REPRESENTATION)


@dataclass(frozen=True)
class DbError:
    """Database failure description, independent of the driver."""

    message: str
    code: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: Exception) -> "DbError":
        """
        Build from a SQLAlchemy exception.

        The SQLSTATE lives on the driver exception: ``exc.orig`` for
        psycopg-style drivers, ``exc.orig.__cause__`` for asyncpg.
        """
        driver_exc = getattr(exc, "orig", None) or exc
        source = driver_exc
        code = _sqlstate(driver_exc)
        cause = getattr(driver_exc, "__cause__", None)
        if code is None and cause is not None:
            code = _sqlstate(cause)
            if code is not None:
                source = cause

        details = getattr(source, "detail", None)
        constraint = getattr(source, "constraint_name", None)
        if constraint:
            details = f"{details} (constraint {constraint})" if details else f"constraint {constraint}"

        return cls(message=str(source), code=code, details=details)


@dataclass(frozen=True)
class QueryResult:
    """Outcome of an admin-client call: ``data`` on success, ``error`` otherwise."""

    data: Optional[dict[str, Any]] = None
    error: Optional[DbError] = None


def _sqlstate(exc: Any) -> Optional[str]:
    for attr in ("sqlstate", "pgcode"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def _resolve_table(name: str) -> Table:
    try:
        return Base.metadata.tables[name]
    except KeyError:
        raise ValueError(f"Unknown table for upsert: {name}") from None


def _coerce_values(tbl: Table, values: Mapping[str, Any]) -> dict[str, Any]:
    """Convert REST-style values (ISO strings, UUID strings) to column types."""
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        col = tbl.c[key]
        if isinstance(value, str):
            try:
                if isinstance(col.type, DateTime):
                    value = parse_date(value)
                elif isinstance(col.type, Uuid):
                    value = uuid.UUID(value)
            except ValueError as exc:
                raise InvalidValueError(key, value) from exc
        coerced[key] = value
    return coerced


def build_upsert(table_name: str, values: Mapping[str, Any], on_conflict: str) -> Insert:
    """
    ``INSERT ... ON CONFLICT (<on_conflict>) DO UPDATE`` for ``values``.

    Only the supplied columns are overwritten, so a partial record leaves
    the other columns of an existing row untouched.
    """
    tbl = _resolve_table(table_name)
    row = _coerce_values(tbl, values)
    stmt = insert(tbl).values(**row)
    update_cols = {key: stmt.excluded[key] for key in row if key != on_conflict}
    if not update_cols:
        return stmt.on_conflict_do_nothing(index_elements=[on_conflict])
    return stmt.on_conflict_do_update(index_elements=[on_conflict], set_=update_cols)


class AdminClient:
    """Storage handle used by the edge functions (bypasses RLS)."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    async def upsert(
        self,
        table_name: str,
        values: Mapping[str, Any],
        on_conflict: str,
    ) -> QueryResult:
        """Insert or replace one row keyed by ``on_conflict`` in a single statement."""
        try:
            stmt = build_upsert(table_name, values, on_conflict)
        except InvalidValueError as exc:
            return QueryResult(error=exc.to_db_error())
        try:
            async with self._engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as exc:
            return QueryResult(error=DbError.from_exception(exc))
        return QueryResult()

    async def delete(self, table_name: str, column_name: str, value: Any) -> QueryResult:
        """Delete every row of ``table_name`` where ``column_name = value``."""
        tbl = table(table_name, column(column_name))
        stmt = delete(tbl).where(tbl.c[column_name] == value)
        try:
            async with self._engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as exc:
            return QueryResult(error=DbError.from_exception(exc))
        return QueryResult()

    async def select_one(self, table_name: str, column_name: str, value: Any) -> QueryResult:
        """Fetch one mapped row as a dict (``data`` is None when absent)."""
        tbl = _resolve_table(table_name)
        try:
            value = _coerce_values(tbl, {column_name: value})[column_name]
        except InvalidValueError as exc:
            return QueryResult(error=exc.to_db_error())
        stmt = select(tbl).where(tbl.c[column_name] == value).limit(1)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                row = result.mappings().first()
        except SQLAlchemyError as exc:
            return QueryResult(error=DbError.from_exception(exc))
        return QueryResult(data=dict(row) if row is not None else None)


# Factory signature handed to handlers
CreateAdminClient = Callable[[str], AdminClient]


def create_admin_client(database_url: str) -> AdminClient:
    """Default factory: an ``AdminClient`` on the shared engine for ``database_url``."""
    return AdminClient(get_engine(database_url))
