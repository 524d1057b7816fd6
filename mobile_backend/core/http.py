"""
HTTP Helpers
============

Response builders and CORS header sets shared by the edge functions.
"""

from typing import Any, Mapping

from fastapi.responses import JSONResponse, PlainTextResponse

# Server-to-server webhook: an empty origin keeps browsers out.
WEBHOOK_CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

# Functions called from the mobile app.
CLIENT_CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def json_response(
    body: dict[str, Any],
    status_code: int,
    headers: Mapping[str, str],
) -> JSONResponse:
    """Build a JSON response carrying the function's CORS headers."""
    return JSONResponse(content=body, status_code=status_code, headers=dict(headers))


def preflight_response(headers: Mapping[str, str]) -> PlainTextResponse:
    """Answer a CORS preflight with the function's headers only."""
    return PlainTextResponse("ok", status_code=200, headers=dict(headers))


def extract_bearer_secret(authorization: str | None) -> str | None:
    """
    Strip a leading ``Bearer`` and at most one whitespace character.

    RevenueCat sends ``Bearer<secret>`` with no space when the dashboard
    value is pasted that way, so the space is optional.
    """
    if authorization is None:
        return None
    if authorization.startswith("Bearer"):
        rest = authorization[len("Bearer"):]
        if rest[:1].isspace():
            rest = rest[1:]
        return rest
    return authorization
