"""
Account Functions
=================

Edge functions called by the mobile app on behalf of a signed-in user:

- ``DeleteUserHandler``          self-service account deletion
- ``AppleTokenExchangeHandler``  store a Sign in with Apple refresh token

Both identify the caller from their own Supabase access token and only
then switch to service-role access for the privileged work.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.responses import Response

from mobile_backend.config import EnvGetter, settings_env
from mobile_backend.core.errors import (
    AppException,
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    ErrorCodes,
    InternalError,
    MethodNotAllowedError,
)
from mobile_backend.core.http import CLIENT_CORS_HEADERS, json_response, preflight_response
from mobile_backend.db.admin import AdminClient, CreateAdminClient, create_admin_client
from mobile_backend.services.apple_auth import (
    AppleAuthError,
    AppleConfig,
    CreateAppleClient,
    create_apple_client,
    try_generate_client_secret,
)
from mobile_backend.services.supabase_auth import (
    AuthUser,
    CreateAuthClient,
    SupabaseAuthClient,
    SupabaseAuthError,
    create_auth_client,
)
from mobile_backend.utils.helpers import format_datetime, redact_id, utc_now

logger = logging.getLogger(__name__)

APPLE_CREDENTIALS_TABLE = "apple_credentials"

# Per-user rows removed before the auth user itself
USER_DATA_TABLES = ("user_usage", "user_entitlements", APPLE_CREDENTIALS_TABLE)


@dataclass(frozen=True)
class SupabaseConfig:
    """Connection settings every account function needs."""

    url: str
    anon_key: str
    service_role_key: str
    database_url: str


def load_supabase_config(get_env: EnvGetter) -> SupabaseConfig:
    """
    Read the Supabase settings.

    Raises:
        ConfigurationError: If any of them is missing.
    """
    keys = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_DATABASE_URL")
    values = {key: get_env(key) for key in keys}
    missing = [key for key, value in values.items() if not value]
    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
        raise ConfigurationError(missing=", ".join(missing))
    return SupabaseConfig(
        url=values["SUPABASE_URL"],
        anon_key=values["SUPABASE_ANON_KEY"],
        service_role_key=values["SUPABASE_SERVICE_ROLE_KEY"],
        database_url=values["SUPABASE_DATABASE_URL"],
    )


def safe_error_message(error: Any) -> str:
    """Client-facing message that does not leak internal details."""
    if isinstance(error, Exception):
        msg = str(error).lower()
        if "not found" in msg or "does not exist" in msg:
            return "Account not found or already deleted"
        if "network" in msg or "connection" in msg:
            return "Connection error. Please try again."
    return "An error occurred. Please try again."


class _UserFunction:
    """Shared plumbing: collaborators, method gate and caller lookup."""

    def __init__(
        self,
        get_env: EnvGetter = settings_env,
        create_auth_client: CreateAuthClient = create_auth_client,
        create_admin_client: CreateAdminClient = create_admin_client,
        create_apple_client: CreateAppleClient = create_apple_client,
        now: Callable[[], datetime] = utc_now,
    ):
        self.get_env = get_env
        self.create_auth_client = create_auth_client
        self.create_admin_client = create_admin_client
        self.create_apple_client = create_apple_client
        self.now = now

    @staticmethod
    def _require_post(request: Request) -> str:
        """Return the caller's Authorization header for a POST request."""
        if request.method != "POST":
            raise MethodNotAllowedError()
        authorization = request.headers.get("Authorization")
        if not authorization:
            raise AuthenticationError("No authorization header", code=ErrorCodes.AUTH_MISSING_HEADER)
        return authorization

    async def _resolve_caller(
        self,
        config: SupabaseConfig,
        authorization: str,
    ) -> tuple[SupabaseAuthClient, AuthUser]:
        auth_client = self.create_auth_client(config.url, config.anon_key, config.service_role_key)
        user = await auth_client.get_user(authorization)
        if user is None:
            raise AuthenticationError()
        return auth_client, user


class DeleteUserHandler(_UserFunction):
    """Deletes the calling user's data, Apple grant and auth record."""

    async def handle(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response(CLIENT_CORS_HEADERS)

        try:
            authorization = self._require_post(request)
            config = load_supabase_config(self.get_env)
            auth_client, user = await self._resolve_caller(config, authorization)
            admin_client = self.create_admin_client(config.database_url)

            user_prefix = redact_id(user.id)
            logger.info("Deleting user data for %s", user_prefix)

            await self._revoke_apple_grant(admin_client, user.id)

            # Data rows go first so cleanup happens even if the auth delete fails
            for table_name in USER_DATA_TABLES:
                result = await admin_client.delete(table_name, "user_id", user.id)
                if result.error is not None:
                    logger.warning(
                        "Failed to delete %s for %s: %s",
                        table_name,
                        user_prefix,
                        result.error.message,
                    )
                else:
                    logger.info("Deleted %s for %s", table_name, user_prefix)

            try:
                await auth_client.delete_user(user.id)
            except SupabaseAuthError as e:
                logger.error("Delete auth error for %s: %s", user_prefix, e)
                raise InternalError(safe_error_message(e)) from e

            logger.info("Successfully deleted user %s", user_prefix)
            return json_response(
                {"success": True, "message": "Account deleted successfully"},
                200,
                CLIENT_CORS_HEADERS,
            )
        except AppException as exc:
            return exc.to_response(CLIENT_CORS_HEADERS)
        except Exception as exc:
            logger.exception("Unexpected error deleting account")
            return InternalError(safe_error_message(exc)).to_response(CLIENT_CORS_HEADERS)

    async def _revoke_apple_grant(self, admin_client: AdminClient, user_id: str) -> None:
        """Best effort: revoke a stored Apple refresh token."""
        result = await admin_client.select_one(APPLE_CREDENTIALS_TABLE, "user_id", user_id)
        if result.error is not None:
            logger.warning("Could not read Apple credentials: %s", result.error.message)
            return

        refresh_token = (result.data or {}).get("refresh_token")
        if not refresh_token:
            return

        apple_config = AppleConfig.from_env(self.get_env)
        client_secret = try_generate_client_secret(apple_config, self.now())
        if apple_config is None or client_secret is None:
            return

        apple_client = self.create_apple_client(apple_config.client_id, client_secret)
        try:
            await apple_client.revoke_token(refresh_token)
            logger.info("Revoked Apple grant for %s", redact_id(user_id))
        except AppleAuthError as e:
            logger.warning("Apple token revocation failed for %s: %s", redact_id(user_id), e)


class AppleTokenExchangeHandler(_UserFunction):
    """Exchanges a Sign in with Apple authorization code for a refresh token."""

    async def handle(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response(CLIENT_CORS_HEADERS)

        try:
            authorization = self._require_post(request)
            authorization_code = self._read_authorization_code(await request.body())
            config = load_supabase_config(self.get_env)
            _, user = await self._resolve_caller(config, authorization)
            admin_client = self.create_admin_client(config.database_url)

            now = self.now()
            apple_config = AppleConfig.from_env(self.get_env)
            client_secret = try_generate_client_secret(apple_config, now)

            if apple_config is None or client_secret is None:
                # Keep the code so it can be exchanged once Apple is configured
                await self._store(admin_client, {
                    "user_id": user.id,
                    "authorization_code": authorization_code,
                    "updated_at": format_datetime(now),
                })
                return json_response(
                    {"success": True, "note": "Apple credentials not configured, code stored"},
                    200,
                    CLIENT_CORS_HEADERS,
                )

            apple_client = self.create_apple_client(apple_config.client_id, client_secret)
            try:
                tokens = await apple_client.exchange_code(authorization_code)
            except AppleAuthError as e:
                logger.error("Apple token exchange failed: %s", e)
                raise InternalError("Token exchange failed", code=ErrorCodes.APPLE_EXCHANGE_FAILED) from e

            await self._store(admin_client, {
                "user_id": user.id,
                "refresh_token": tokens.get("refresh_token"),
                "access_token": tokens.get("access_token"),
                "token_exchanged_at": format_datetime(now),
                "updated_at": format_datetime(now),
            })

            logger.info("Apple tokens stored for user %s", redact_id(user.id))
            return json_response({"success": True}, 200, CLIENT_CORS_HEADERS)
        except AppException as exc:
            return exc.to_response(CLIENT_CORS_HEADERS)
        except Exception:
            logger.exception("Unexpected error exchanging Apple token")
            return InternalError("An error occurred").to_response(CLIENT_CORS_HEADERS)

    @staticmethod
    def _read_authorization_code(body: bytes) -> str:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        code: Optional[Any] = payload.get("authorization_code") if isinstance(payload, dict) else None
        if not code or not isinstance(code, str):
            raise BadRequestError("Missing authorization_code")
        return code

    @staticmethod
    async def _store(admin_client: AdminClient, record: dict[str, Any]) -> None:
        result = await admin_client.upsert(APPLE_CREDENTIALS_TABLE, record, on_conflict="user_id")
        if result.error is not None:
            logger.error("Failed to store Apple credentials: %s", result.error.message)
            raise InternalError("Failed to store credentials")


def get_delete_user_handler() -> DeleteUserHandler:
    """FastAPI dependency providing the production handler."""
    return DeleteUserHandler()


def get_apple_token_exchange_handler() -> AppleTokenExchangeHandler:
    """FastAPI dependency providing the production handler."""
    return AppleTokenExchangeHandler()
