"""
Admin Client Tests
==================

Statement building, driver error translation and the client calls, all
checked without a database (PostgreSQL dialect compile, mocked engine).
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from mobile_backend.db.admin import AdminClient, DbError, InvalidValueError, QueryResult, build_upsert

USER_ID = "7b4c1f2e-3a5d-4e6f-8a9b-0c1d2e3f4a5b"


class FakeAsyncpgError(Exception):
    """Shape of an asyncpg ``PostgresError``."""

    def __init__(self, message, sqlstate, detail=None, constraint_name=None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.detail = detail
        self.constraint_name = constraint_name


class FakeAdaptedError(Exception):
    """SQLAlchemy's asyncpg adapter wraps the driver error as ``__cause__``."""


def compile_pg(stmt):
    return stmt.compile(dialect=postgresql.dialect())


class TestBuildUpsert:
    """Tests for build_upsert."""

    def test_entitlement_upsert_overwrites_on_conflict(self):
        stmt = build_upsert(
            "user_entitlements",
            {
                "user_id": USER_ID,
                "is_pro": True,
                "product_id": "pro_monthly",
                "expires_at": "2025-01-01T00:00:00.000Z",
                "updated_at": "2026-01-01T00:00:00.000Z",
                "revenuecat_app_user_id": "$RCAnonymousID:abc",
                "last_event_type": "RENEWAL",
            },
            on_conflict="user_id",
        )
        compiled = compile_pg(stmt)
        sql = str(compiled)

        assert sql.startswith("INSERT INTO user_entitlements")
        assert "ON CONFLICT (user_id) DO UPDATE SET" in sql
        assert "is_pro = excluded.is_pro" in sql
        assert "expires_at = excluded.expires_at" in sql
        assert "user_id = excluded.user_id" not in sql

        assert compiled.params["user_id"] == uuid.UUID(USER_ID)
        assert compiled.params["expires_at"] == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert compiled.params["updated_at"] == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_null_values_are_written(self):
        stmt = build_upsert(
            "user_entitlements",
            {"user_id": USER_ID, "is_pro": False, "expires_at": None},
            on_conflict="user_id",
        )
        compiled = compile_pg(stmt)

        assert "expires_at = excluded.expires_at" in str(compiled)
        assert compiled.params["expires_at"] is None

    def test_partial_record_leaves_other_columns(self):
        stmt = build_upsert(
            "apple_credentials",
            {
                "user_id": USER_ID,
                "authorization_code": "c0de",
                "updated_at": "2026-01-01T00:00:00.000Z",
            },
            on_conflict="user_id",
        )
        sql = str(compile_pg(stmt))

        assert "authorization_code = excluded.authorization_code" in sql
        assert "refresh_token" not in sql

    def test_key_only_record_does_nothing_on_conflict(self):
        stmt = build_upsert("user_entitlements", {"user_id": USER_ID}, on_conflict="user_id")

        assert "ON CONFLICT (user_id) DO NOTHING" in str(compile_pg(stmt))

    def test_malformed_uuid_text(self):
        with pytest.raises(InvalidValueError) as exc_info:
            build_upsert("user_entitlements", {"user_id": f"{USER_ID}\n"}, on_conflict="user_id")

        assert exc_info.value.column_name == "user_id"
        assert exc_info.value.to_db_error().code == "22P02"

    def test_unknown_table(self):
        with pytest.raises(ValueError, match="Unknown table"):
            build_upsert("subscriptions", {"user_id": USER_ID}, on_conflict="user_id")


class TestDbErrorFromException:
    """Tests for DbError.from_exception."""

    def test_sqlstate_from_driver_cause(self):
        driver_error = FakeAsyncpgError(
            'insert or update on table "user_entitlements" violates foreign key constraint',
            sqlstate="23503",
            detail='Key (user_id) is not present in table "users".',
            constraint_name="user_entitlements_user_id_fkey",
        )
        adapted = FakeAdaptedError("adapted")
        adapted.__cause__ = driver_error
        exc = IntegrityError("INSERT INTO user_entitlements ...", {}, adapted)

        error = DbError.from_exception(exc)

        assert error.code == "23503"
        assert "violates foreign key constraint" in error.message
        assert "user_entitlements_user_id_fkey" in error.details

    def test_sqlstate_on_orig(self):
        orig = FakeAsyncpgError("connection failure", sqlstate="08006")
        exc = OperationalError("INSERT ...", {}, orig)

        error = DbError.from_exception(exc)

        assert error == DbError(message="connection failure", code="08006", details=None)

    def test_no_sqlstate(self):
        exc = OperationalError("INSERT ...", {}, Exception("server closed the connection"))

        error = DbError.from_exception(exc)

        assert error.code is None
        assert error.message == "server closed the connection"


def make_engine():
    """Mock AsyncEngine whose begin()/connect() yield one mock connection."""
    conn = AsyncMock()
    ctx = MagicMock()
    ctx.__aenter__.return_value = conn
    ctx.__aexit__.return_value = False
    engine = MagicMock()
    engine.begin.return_value = ctx
    engine.connect.return_value = ctx
    return engine, conn


class TestAdminClient:
    """Tests for AdminClient against a mocked engine."""

    @pytest.mark.asyncio
    async def test_upsert_success(self):
        engine, conn = make_engine()

        result = await AdminClient(engine).upsert(
            "user_entitlements",
            {"user_id": USER_ID, "is_pro": True},
            on_conflict="user_id",
        )

        assert result == QueryResult()
        conn.execute.assert_awaited_once()
        engine.begin.assert_called_once()

    @pytest.mark.asyncio
    async def test_upsert_error_returned_as_value(self):
        engine, conn = make_engine()
        adapted = FakeAdaptedError("adapted")
        adapted.__cause__ = FakeAsyncpgError("violates foreign key constraint", sqlstate="23503")
        conn.execute.side_effect = IntegrityError("INSERT ...", {}, adapted)

        result = await AdminClient(engine).upsert(
            "user_entitlements",
            {"user_id": USER_ID, "is_pro": True},
            on_conflict="user_id",
        )

        assert result.data is None
        assert result.error.code == "23503"

    @pytest.mark.asyncio
    async def test_delete_error_returned_as_value(self):
        engine, conn = make_engine()
        conn.execute.side_effect = OperationalError("DELETE ...", {}, Exception("relation does not exist"))

        result = await AdminClient(engine).delete("user_usage", "user_id", USER_ID)

        assert result.error.message == "relation does not exist"

    @pytest.mark.asyncio
    async def test_select_one_returns_row(self):
        engine, conn = make_engine()
        rows = MagicMock()
        rows.mappings.return_value.first.return_value = {"user_id": uuid.UUID(USER_ID), "refresh_token": "rt"}
        conn.execute.return_value = rows

        result = await AdminClient(engine).select_one("apple_credentials", "user_id", USER_ID)

        assert result.data == {"user_id": uuid.UUID(USER_ID), "refresh_token": "rt"}
        engine.connect.assert_called_once()

    @pytest.mark.asyncio
    async def test_select_one_missing_row(self):
        engine, conn = make_engine()
        rows = MagicMock()
        rows.mappings.return_value.first.return_value = None
        conn.execute.return_value = rows

        result = await AdminClient(engine).select_one("apple_credentials", "user_id", USER_ID)

        assert result == QueryResult()

    @pytest.mark.asyncio
    async def test_upsert_malformed_value_returned_as_error(self):
        engine, conn = make_engine()

        result = await AdminClient(engine).upsert(
            "user_entitlements",
            {"user_id": "not-a-uuid", "is_pro": True},
            on_conflict="user_id",
        )

        assert result.error.code == "22P02"
        conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_select_one_malformed_value_returned_as_error(self):
        engine, conn = make_engine()

        result = await AdminClient(engine).select_one("apple_credentials", "user_id", "not-a-uuid")

        assert result.error.code == "22P02"
        engine.connect.assert_not_called()
