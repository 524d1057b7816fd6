"""
Entitlement Rule Tests
======================

Unit tests for the pure pieces of webhook processing: payload parsing,
event-to-entitlement mapping, storage error classification and the
Authorization header parsing.
"""

from datetime import datetime, timedelta, timezone

import pytest

from fakes import FIXED_NOW, make_env
from mobile_backend.core.errors import ConfigurationError, ErrorCodes, PermanentPayloadError
from mobile_backend.core.http import extract_bearer_secret
from mobile_backend.db.admin import DbError
from mobile_backend.schemas.revenuecat import RevenueCatEvent
from mobile_backend.services.revenuecat import (
    EntitlementState,
    RevenueCatWebhookHandler,
    build_entitlement_record,
    derive_entitlement,
    is_unknown_user_db_error,
    parse_payload,
)
from mobile_backend.utils.helpers import format_datetime, from_epoch_ms, is_uuid, redact_id

USER_ID = "7B4C1F2E-3A5D-4E6F-8A9B-0C1D2E3F4A5B"


def make_event(**overrides) -> RevenueCatEvent:
    fields = {
        "type": "RENEWAL",
        "app_user_id": USER_ID,
        "product_id": "pro_yearly",
        "original_app_user_id": "$RCAnonymousID:xyz",
    }
    fields.update(overrides)
    return RevenueCatEvent.model_validate(fields)


def ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class TestParsePayload:
    """Tests for parse_payload."""

    def test_valid_payload(self):
        payload = parse_payload({
            "api_version": "1.0",
            "event": {
                "type": "RENEWAL",
                "app_user_id": USER_ID,
                "product_id": "pro_yearly",
                "original_app_user_id": USER_ID,
                "expiration_at_ms": 1735689600000.0,
            },
        })

        assert payload.api_version == "1.0"
        assert payload.event.type == "RENEWAL"
        assert payload.event.expiration_at_ms == 1735689600000.0

    def test_api_version_defaults(self):
        payload = parse_payload({"event": make_event().model_dump(exclude_none=True)})

        assert payload.api_version == "unknown"

    @pytest.mark.parametrize("raw", [None, "event", 42, []])
    def test_non_object_root(self, raw):
        with pytest.raises(PermanentPayloadError) as exc_info:
            parse_payload(raw)

        assert exc_info.value.status_code == 200
        assert exc_info.value.content == {"success": True, "message": "Invalid payload ignored"}

    def test_missing_event(self):
        with pytest.raises(PermanentPayloadError) as exc_info:
            parse_payload({"api_version": "1.0"})

        assert exc_info.value.reason == "Missing event object"

    def test_missing_field_reason(self):
        event = make_event().model_dump(exclude_none=True)
        del event["original_app_user_id"]

        with pytest.raises(PermanentPayloadError) as exc_info:
            parse_payload({"event": event})

        assert exc_info.value.reason == "Missing event.original_app_user_id"

    def test_wrong_type_reason(self):
        event = make_event().model_dump(exclude_none=True)
        event["expiration_at_ms"] = "soon"

        with pytest.raises(PermanentPayloadError) as exc_info:
            parse_payload({"event": event})

        assert exc_info.value.reason.startswith("Invalid event.expiration_at_ms")

    @pytest.mark.parametrize("field", ["expiration_at_ms", "aliases"])
    def test_explicit_null_reason(self, field):
        event = make_event().model_dump(exclude_none=True)
        event[field] = None

        with pytest.raises(PermanentPayloadError) as exc_info:
            parse_payload({"event": event})

        assert exc_info.value.reason == f"Invalid event.{field}"

    def test_omitted_optional_fields(self):
        payload = parse_payload({"event": make_event().model_dump(exclude_none=True)})

        assert payload.event.expiration_at_ms is None
        assert payload.event.aliases is None


class TestDeriveEntitlement:
    """Tests for derive_entitlement."""

    def test_grant_with_expiration(self):
        state = derive_entitlement(make_event(expiration_at_ms=1735689600000), FIXED_NOW)

        assert state == EntitlementState(
            is_pro=True,
            expires_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

    def test_grant_without_expiration(self):
        assert derive_entitlement(make_event(), FIXED_NOW) == EntitlementState(is_pro=True)

    def test_zero_expiration_is_absent(self):
        state = derive_entitlement(make_event(expiration_at_ms=0), FIXED_NOW)

        assert state == EntitlementState(is_pro=True)

    @pytest.mark.parametrize("event_type", ["EXPIRATION", "BILLING_ISSUE"])
    def test_revoke_ignores_expiration(self, event_type):
        future = ms(FIXED_NOW + timedelta(days=30))

        state = derive_entitlement(make_event(type=event_type, expiration_at_ms=future), FIXED_NOW)

        assert state == EntitlementState(is_pro=False)

    def test_cancellation_with_future_expiry(self):
        expiry = FIXED_NOW + timedelta(days=3)

        state = derive_entitlement(make_event(type="CANCELLATION", expiration_at_ms=ms(expiry)), FIXED_NOW)

        assert state == EntitlementState(is_pro=True, expires_at=expiry)

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(days=-1)])
    def test_cancellation_at_or_after_expiry(self, offset):
        expiry = FIXED_NOW + offset

        state = derive_entitlement(make_event(type="CANCELLATION", expiration_at_ms=ms(expiry)), FIXED_NOW)

        assert state == EntitlementState(is_pro=False)

    def test_cancellation_without_expiry(self):
        state = derive_entitlement(make_event(type="CANCELLATION"), FIXED_NOW)

        assert state == EntitlementState(is_pro=False)

    @pytest.mark.parametrize("event_type", ["TEST", "TRANSFER", "renewal"])
    def test_unhandled_types(self, event_type):
        assert derive_entitlement(make_event(type=event_type), FIXED_NOW) is None


class TestBuildEntitlementRecord:
    """Tests for build_entitlement_record."""

    def test_revoked_record_clears_expiry(self):
        record = build_entitlement_record(
            make_event(type="EXPIRATION"),
            EntitlementState(is_pro=False),
            FIXED_NOW,
        )

        assert record == {
            "user_id": USER_ID,
            "is_pro": False,
            "product_id": "pro_yearly",
            "expires_at": None,
            "updated_at": "2026-01-01T00:00:00.000Z",
            "revenuecat_app_user_id": "$RCAnonymousID:xyz",
            "last_event_type": "EXPIRATION",
        }

    def test_same_inputs_same_record(self):
        event = make_event(expiration_at_ms=1735689600000)
        state = derive_entitlement(event, FIXED_NOW)

        assert build_entitlement_record(event, state, FIXED_NOW) == build_entitlement_record(
            event, state, FIXED_NOW
        )


class TestUnknownUserClassification:
    """Tests for is_unknown_user_db_error."""

    @pytest.mark.parametrize(
        "error",
        [
            DbError(message="boom", code="23503"),
            DbError(message='insert or update on table "user_entitlements" violates Foreign Key constraint'),
            DbError(message="write failed", details="USER_ENTITLEMENTS_USER_ID_FKEY"),
        ],
    )
    def test_permanent(self, error):
        assert is_unknown_user_db_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            None,
            DbError(message="connection reset", code="08006"),
            DbError(message="duplicate key value", code="23505"),
            DbError(message="timeout"),
        ],
    )
    def test_transient(self, error):
        assert is_unknown_user_db_error(error) is False


class TestExtractBearerSecret:
    """Tests for extract_bearer_secret."""

    @pytest.mark.parametrize(
        "header,expected",
        [
            (None, None),
            ("Bearer abc", "abc"),
            ("Bearerabc", "abc"),
            ("Bearer\tabc", "abc"),
            ("Bearer  abc", " abc"),
            ("abc", "abc"),
            ("", ""),
            ("bearer abc", "bearer abc"),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_secret(header) == expected


class TestHelpers:
    """Tests for the date and id helpers used by the webhook."""

    def test_format_datetime_milliseconds(self):
        dt = datetime(2025, 1, 1, 12, 30, 5, 123456, tzinfo=timezone.utc)

        assert format_datetime(dt) == "2025-01-01T12:30:05.123Z"

    def test_from_epoch_ms(self):
        assert from_epoch_ms(1735689600000) == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("7b4c1f2e-3a5d-4e6f-8a9b-0c1d2e3f4a5b", True),
            (USER_ID, True),
            ("$RCAnonymousID:abc", False),
            ("7b4c1f2e3a5d4e6f8a9b0c1d2e3f4a5b", False),
            ("7b4c1f2e-3a5d-4e6f-8a9b-0c1d2e3f4a5", False),
            ("7b4c1f2e-3a5d-4e6f-8a9b-0c1d2e3f4a5b\n", False),
            ("x7b4c1f2e-3a5d-4e6f-8a9b-0c1d2e3f4a5b", False),
        ],
    )
    def test_is_uuid(self, value, expected):
        assert is_uuid(value) is expected

    def test_redact_id(self):
        assert redact_id(USER_ID) == "7B4C1F2E..."


class TestWebhookAuthentication:
    """Tests for the shared-secret check."""

    def test_missing_secret_is_webhook_misconfiguration(self):
        handler = RevenueCatWebhookHandler(get_env=make_env({}))

        with pytest.raises(ConfigurationError) as exc_info:
            handler._authenticate({"Authorization": "Bearer anything"})

        assert exc_info.value.code == ErrorCodes.WEBHOOK_MISCONFIGURED
        assert exc_info.value.missing == "REVENUECAT_WEBHOOK_SECRET"

    def test_account_misconfiguration_keeps_server_code(self):
        assert ConfigurationError(missing="SUPABASE_URL").code == ErrorCodes.SERVER_MISCONFIGURED
