"""
Webhooks API Endpoints
======================

Handles webhooks from external services (RevenueCat).

Authentication:
    RevenueCat sends ``Authorization: Bearer<secret>`` (space optional),
    compared against REVENUECAT_WEBHOOK_SECRET.

Idempotency:
    Each delivery performs one ``INSERT ... ON CONFLICT (user_id)`` so
    duplicate or concurrent deliveries converge on the same row without
    tracking processed event ids.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from mobile_backend.api.v1 import ANY_METHOD
from mobile_backend.services.revenuecat import (
    RevenueCatWebhookHandler,
    get_revenuecat_webhook_handler,
)

router = APIRouter()


@router.api_route("/revenuecat-webhook", methods=ANY_METHOD)
async def revenuecat_webhook(
    request: Request,
    handler: Annotated[RevenueCatWebhookHandler, Depends(get_revenuecat_webhook_handler)],
) -> Response:
    """
    Handle RevenueCat webhook events.

    Grant events: INITIAL_PURCHASE, RENEWAL, PRODUCT_CHANGE, UNCANCELLATION,
    SUBSCRIPTION_EXTENDED. Revoke events: EXPIRATION, CANCELLATION (Pro kept
    until the paid period ends), BILLING_ISSUE. Everything else is
    acknowledged without changes.

    Method gating happens inside the handler so every answer carries the
    webhook's CORS headers.
    """
    return await handler.handle(request)
