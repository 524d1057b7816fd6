"""
Account API Endpoints
=====================

Functions the mobile app calls with the user's Supabase access token.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from mobile_backend.api.v1 import ANY_METHOD
from mobile_backend.services.account import (
    AppleTokenExchangeHandler,
    DeleteUserHandler,
    get_apple_token_exchange_handler,
    get_delete_user_handler,
)

router = APIRouter()


@router.api_route("/delete-user", methods=ANY_METHOD)
async def delete_user(
    request: Request,
    handler: Annotated[DeleteUserHandler, Depends(get_delete_user_handler)],
) -> Response:
    """Delete the caller's account and everything stored for it."""
    return await handler.handle(request)


@router.api_route("/exchange-apple-token", methods=ANY_METHOD)
async def exchange_apple_token(
    request: Request,
    handler: Annotated[AppleTokenExchangeHandler, Depends(get_apple_token_exchange_handler)],
) -> Response:
    """
    Exchange the Sign in with Apple authorization code for a refresh token.

    Called right after sign-in; the stored refresh token is revoked when the
    account is deleted.
    """
    return await handler.handle(request)
