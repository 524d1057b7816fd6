"""
RevenueCat Schemas
==================

Pydantic models for inbound RevenueCat webhook payloads.

Validation is strict: required identifiers must be non-empty strings and
no type coercion happens (``"123"`` is not a number, ``1`` is not a string).
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class RevenueCatEvent(BaseModel):
    """The ``event`` object of a RevenueCat webhook."""

    model_config = ConfigDict(strict=True, extra="ignore")

    type: str = Field(min_length=1, description="Lifecycle event type, e.g. RENEWAL")
    app_user_id: str = Field(min_length=1, description="Our Supabase user id once identified")
    product_id: str = Field(min_length=1)
    original_app_user_id: str = Field(min_length=1)
    expiration_at_ms: Optional[Union[int, float]] = Field(
        default=None,
        description="Epoch milliseconds; may be omitted but not null",
    )
    aliases: Optional[list[Any]] = None

    @field_validator("expiration_at_ms", "aliases", mode="before")
    @classmethod
    def reject_explicit_null(cls, v: Any) -> Any:
        """Omitted is fine; an explicit null is a malformed event."""
        if v is None:
            raise ValueError("must not be null")
        return v


class RevenueCatWebhookPayload(BaseModel):
    """Webhook body: ``{"api_version": ..., "event": {...}}``."""

    model_config = ConfigDict(extra="ignore")

    api_version: str = "unknown"
    event: RevenueCatEvent

    @field_validator("api_version", mode="before")
    @classmethod
    def normalize_api_version(cls, v: Any) -> str:
        """Non-string versions are not worth rejecting an event over."""
        return v if isinstance(v, str) else "unknown"


def describe_validation_error(exc: ValidationError) -> str:
    """Short log-friendly reason for the first validation failure."""
    errors = exc.errors()
    if not errors:
        return "Invalid payload"

    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    if first.get("type") == "missing":
        return f"Missing {loc}" if loc else "Missing field"
    if not loc:
        return "Invalid payload root"
    return f"Invalid {loc}"
