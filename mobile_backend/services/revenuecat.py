"""
RevenueCat Service
==================

Webhook ingestion and entitlement reconciliation.

Handles:
- Shared-secret authentication of RevenueCat deliveries
- Payload validation (permanent failures are acknowledged, not retried)
- Mapping lifecycle events to the user's Pro entitlement
- A single idempotent upsert into ``user_entitlements``
- Classifying storage errors as permanent (unknown user) or transient

Every collaborator (env, clock, storage client factory) is injected so
the handler can run without network or database access.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from fastapi import Request
from fastapi.responses import Response
from pydantic import ValidationError

from mobile_backend.config import EnvGetter, settings_env
from mobile_backend.core.errors import (
    AppException,
    ConfigurationError,
    ErrorCodes,
    MethodNotAllowedError,
    PermanentPayloadError,
    ProcessingError,
    TransientStorageError,
    WebhookAuthError,
)
from mobile_backend.core.http import (
    WEBHOOK_CORS_HEADERS,
    extract_bearer_secret,
    json_response,
    preflight_response,
)
from mobile_backend.db.admin import CreateAdminClient, DbError, create_admin_client
from mobile_backend.schemas.revenuecat import (
    RevenueCatEvent,
    RevenueCatWebhookPayload,
    describe_validation_error,
)
from mobile_backend.utils.helpers import format_datetime, from_epoch_ms, is_uuid, redact_id, utc_now

logger = logging.getLogger(__name__)

ENTITLEMENTS_TABLE = "user_entitlements"
ENTITLEMENTS_CONFLICT_KEY = "user_id"
ENTITLEMENTS_FK_CONSTRAINT = "user_entitlements_user_id_fkey"

# Postgres SQLSTATE for foreign_key_violation
FOREIGN_KEY_VIOLATION = "23503"

# Event types that grant or maintain Pro access
PRO_GRANT_EVENTS = frozenset({
    "INITIAL_PURCHASE",
    "RENEWAL",
    "PRODUCT_CHANGE",
    "UNCANCELLATION",
    "SUBSCRIPTION_EXTENDED",
})

# Event types that end Pro access (CANCELLATION keeps it until expiry)
PRO_REVOKE_EVENTS = frozenset({
    "EXPIRATION",
    "CANCELLATION",
    "BILLING_ISSUE",
})

PENDING_CANCELLATION_EVENT = "CANCELLATION"


@dataclass(frozen=True)
class EntitlementState:
    """Target entitlement derived from one event."""

    is_pro: bool
    expires_at: Optional[datetime] = None


# -------------------------------------------------------------------------
# Pure decision helpers
# -------------------------------------------------------------------------

def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def parse_payload(raw: Any) -> RevenueCatWebhookPayload:
    """
    Validate a decoded JSON body.

    Raises:
        PermanentPayloadError: When the payload can never be processed.
    """
    if not isinstance(raw, dict):
        raise PermanentPayloadError("Invalid payload ignored", reason="Invalid payload root")
    if not isinstance(raw.get("event"), dict):
        raise PermanentPayloadError("Invalid payload ignored", reason="Missing event object")

    try:
        return RevenueCatWebhookPayload.model_validate(raw)
    except ValidationError as exc:
        raise PermanentPayloadError(
            "Invalid payload ignored",
            reason=describe_validation_error(exc),
        ) from exc


def derive_entitlement(event: RevenueCatEvent, now: datetime) -> Optional[EntitlementState]:
    """
    Map an event to the target entitlement.

    Returns None for event types we do not act on.
    """
    if event.type in PRO_GRANT_EVENTS:
        expires_at = from_epoch_ms(event.expiration_at_ms) if event.expiration_at_ms else None
        return EntitlementState(is_pro=True, expires_at=expires_at)

    if event.type in PRO_REVOKE_EVENTS:
        # Cancelled but not yet expired: access lasts until the period ends
        if event.type == PENDING_CANCELLATION_EVENT and event.expiration_at_ms:
            expiry = from_epoch_ms(event.expiration_at_ms)
            if expiry > now:
                return EntitlementState(is_pro=True, expires_at=expiry)
        return EntitlementState(is_pro=False)

    return None


def build_entitlement_record(
    event: RevenueCatEvent,
    state: EntitlementState,
    now: datetime,
) -> dict[str, Any]:
    """Full ``user_entitlements`` row for the upsert."""
    return {
        "user_id": event.app_user_id,
        "is_pro": state.is_pro,
        "product_id": event.product_id,
        "expires_at": format_datetime(state.expires_at) if state.expires_at else None,
        "updated_at": format_datetime(now),
        "revenuecat_app_user_id": event.original_app_user_id,
        "last_event_type": event.type,
    }


def is_unknown_user_db_error(error: Optional[DbError]) -> bool:
    """
    True when a write failed because the user no longer exists.

    That is permanent: retrying would fail identically forever.
    """
    if error is None:
        return False
    text = f"{error.message or ''} {error.details or ''}".lower()
    return (
        error.code == FOREIGN_KEY_VIOLATION
        or "foreign key" in text
        or ENTITLEMENTS_FK_CONSTRAINT in text
    )


# -------------------------------------------------------------------------
# Handler
# -------------------------------------------------------------------------

class RevenueCatWebhookHandler:
    """Handles one RevenueCat webhook delivery per ``handle`` call."""

    def __init__(
        self,
        get_env: EnvGetter = settings_env,
        create_admin_client: CreateAdminClient = create_admin_client,
        now: Callable[[], datetime] = utc_now,
    ):
        self.get_env = get_env
        self.create_admin_client = create_admin_client
        self.now = now

    async def handle(self, request: Request) -> Response:
        """
        Process a delivery and return the response RevenueCat should see.

        Never raises: permanent faults become 200 acknowledgements, transient
        ones a non-2xx status so RevenueCat redelivers.
        """
        if request.method == "OPTIONS":
            return preflight_response(WEBHOOK_CORS_HEADERS)

        try:
            if request.method != "POST":
                raise MethodNotAllowedError()
            return await self._process(request)
        except PermanentPayloadError as exc:
            logger.info("RevenueCat webhook acknowledged without changes: %s", exc.reason)
            return exc.to_response(WEBHOOK_CORS_HEADERS)
        except AppException as exc:
            return exc.to_response(WEBHOOK_CORS_HEADERS)
        except Exception:
            logger.exception("RevenueCat webhook processing error")
            return ProcessingError().to_response(WEBHOOK_CORS_HEADERS)

    def _authenticate(self, headers: Mapping[str, str]) -> None:
        webhook_secret = self.get_env("REVENUECAT_WEBHOOK_SECRET")
        if not webhook_secret:
            logger.error("REVENUECAT_WEBHOOK_SECRET not configured")
            raise ConfigurationError(
                missing="REVENUECAT_WEBHOOK_SECRET",
                code=ErrorCodes.WEBHOOK_MISCONFIGURED,
            )

        provided = extract_bearer_secret(headers.get("Authorization"))
        if provided != webhook_secret:
            logger.warning("Invalid RevenueCat webhook secret")
            raise WebhookAuthError()

    async def _process(self, request: Request) -> Response:
        self._authenticate(request.headers)

        body = await request.body()
        try:
            raw = json.loads(body, parse_constant=_reject_constant)
        except (ValueError, UnicodeDecodeError) as exc:
            raise PermanentPayloadError("Invalid JSON payload ignored", reason=str(exc)) from exc

        event = parse_payload(raw).event
        logger.info(
            "RevenueCat webhook received: type=%s app_user_id=%s product_id=%s",
            event.type,
            redact_id(event.app_user_id),
            event.product_id,
        )

        if not is_uuid(event.app_user_id):
            raise PermanentPayloadError(
                "Skipped anonymous user",
                reason=f"non-UUID app_user_id {event.app_user_id[:8]}",
            )

        now = self.now()
        state = derive_entitlement(event, now)
        if state is None:
            raise PermanentPayloadError(
                "Event type ignored",
                reason=f"unhandled event type {event.type}",
            )

        record = build_entitlement_record(event, state, now)
        admin_client = self.create_admin_client(self.get_env("SUPABASE_DATABASE_URL") or "")
        result = await admin_client.upsert(
            ENTITLEMENTS_TABLE,
            record,
            on_conflict=ENTITLEMENTS_CONFLICT_KEY,
        )

        if result.error is not None:
            logger.error(
                "Failed to upsert entitlement: code=%s message=%s",
                result.error.code,
                result.error.message,
            )
            if is_unknown_user_db_error(result.error):
                raise PermanentPayloadError(
                    "Unknown user, event ignored",
                    reason=f"user {redact_id(event.app_user_id)} does not exist",
                )
            raise TransientStorageError(details=result.error.message)

        logger.info(
            "Entitlement updated: user_id=%s is_pro=%s expires_at=%s event_type=%s",
            redact_id(event.app_user_id),
            state.is_pro,
            record["expires_at"],
            event.type,
        )
        return json_response({"success": True}, 200, WEBHOOK_CORS_HEADERS)


def get_revenuecat_webhook_handler() -> RevenueCatWebhookHandler:
    """FastAPI dependency providing the production handler."""
    return RevenueCatWebhookHandler()
