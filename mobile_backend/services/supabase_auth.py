"""
Supabase Auth Client
====================

Minimal GoTrue REST client used by the account functions:

- ``get_user``     resolves the caller from their own access token (anon key)
- ``delete_user``  removes the auth user (service-role key)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


class SupabaseAuthError(Exception):
    """GoTrue rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class AuthUser:
    """The subset of a GoTrue user the functions rely on."""

    id: str
    email: Optional[str] = None


class SupabaseAuthClient:
    """Client for one Supabase project's Auth API."""

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        service_role_key: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.base_url = f"{supabase_url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def get_user(self, authorization: str) -> Optional[AuthUser]:
        """
        Resolve the user behind an ``Authorization: Bearer <jwt>`` header.

        Returns None when the token is invalid or expired.
        """
        async with self._client() as client:
            try:
                response = await client.get(
                    f"{self.base_url}/user",
                    headers={"apikey": self.anon_key, "Authorization": authorization},
                )
            except httpx.HTTPError as e:
                logger.error("Supabase auth lookup failed: %s", e)
                return None

        if response.status_code != 200:
            logger.info("Supabase auth rejected token: status=%d", response.status_code)
            return None

        try:
            data: Any = response.json()
        except ValueError:
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            return None
        return AuthUser(id=user_id, email=data.get("email"))

    async def delete_user(self, user_id: str) -> None:
        """
        Delete the auth user.

        Raises:
            SupabaseAuthError: On any non-2xx answer or transport failure.
        """
        async with self._client() as client:
            try:
                response = await client.delete(
                    f"{self.base_url}/admin/users/{user_id}",
                    headers={
                        "apikey": self.service_role_key,
                        "Authorization": f"Bearer {self.service_role_key}",
                    },
                )
            except httpx.HTTPError as e:
                raise SupabaseAuthError(f"connection error: {e}") from e

        if response.is_success:
            return

        message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("msg") or body.get("message") or body.get("error_description")
        raise SupabaseAuthError(
            message or f"auth admin returned {response.status_code}",
            status_code=response.status_code,
        )


# Factory signature handed to handlers: (url, anon_key, service_role_key)
CreateAuthClient = Callable[[str, str, str], SupabaseAuthClient]


def create_auth_client(supabase_url: str, anon_key: str, service_role_key: str) -> SupabaseAuthClient:
    """Default factory for :class:`SupabaseAuthClient`."""
    return SupabaseAuthClient(supabase_url, anon_key, service_role_key)
