"""
Pydantic Schemas
================

Request payload models.
"""

from mobile_backend.schemas.revenuecat import (
    RevenueCatEvent,
    RevenueCatWebhookPayload,
    describe_validation_error,
)

__all__ = [
    "RevenueCatEvent",
    "RevenueCatWebhookPayload",
    "describe_validation_error",
]
