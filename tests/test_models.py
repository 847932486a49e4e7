"""Record conversion, timestamp parsing and callback body decoding."""

from datetime import datetime, timedelta, timezone

import pytest

from spyglass.core.exceptions import PayloadError
from spyglass.models.callback import InboundCallback, NotificationBody, VerificationBody
from spyglass.models.events import EVENT_PAYLOADS, StreamOffline, StreamOnline
from spyglass.models.subscription import (
    Subscription,
    SubscriptionPage,
    SubscriptionStatus,
    parse_timestamp,
)

from tests.conftest import make_subscription, online_event, page, subscription_data


def callback_with(body: bytes) -> InboundCallback:
    return InboundCallback("m", "notification", None, None, None, body)


class TestParseTimestamp:
    def test_nanoseconds_are_truncated(self):
        assert parse_timestamp("2024-05-01T12:30:45.123456789Z") == datetime(
            2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc
        )

    def test_short_fraction_and_offset(self):
        parsed = parse_timestamp("2024-05-01T12:30:45.5+02:00")

        assert parsed == datetime(2024, 5, 1, 10, 30, 45, 500000, tzinfo=timezone.utc)

    def test_without_fraction(self):
        assert parse_timestamp("2024-05-01T12:30:45Z").microsecond == 0

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-45T99:00:00Z"])
    def test_falls_back_to_now(self, value):
        parsed = parse_timestamp(value)

        assert abs(datetime.now(timezone.utc) - parsed) < timedelta(seconds=5)


class TestSubscription:
    def test_row_round_trip(self):
        original = make_subscription(status=SubscriptionStatus.ENABLED)

        restored = Subscription.from_row(original.to_row())

        assert restored == original
        assert restored.status is SubscriptionStatus.ENABLED

    def test_to_row_defaults_created_at(self):
        row = Subscription("s", "1", "stream.online", "k").to_row()

        assert row["created_at"] is not None
        assert row["status"] == "pending"

    def test_public_dict_omits_secret(self):
        public = make_subscription().to_public_dict()

        assert "secret" not in public
        assert public["created_at"] == "2024-05-01T12:00:00+00:00"


class TestSubscriptionPage:
    def test_cursor(self):
        assert SubscriptionPage.model_validate(page([], "abc")).cursor == "abc"
        assert SubscriptionPage.model_validate(page([])).cursor is None

    def test_ignores_unknown_fields(self):
        data = subscription_data("s")
        data["transport"]["secret"] = "never returned, but tolerated"
        data["extra"] = True

        parsed = SubscriptionPage.model_validate(page([data])).data[0]

        assert parsed.broadcaster_user_id == "123"
        assert parsed.transport.callback.endswith("/webhooks/callback")


class TestEventPayloads:
    def test_stream_online(self):
        event = EVENT_PAYLOADS["stream.online"].model_validate(online_event()).to_event()

        assert isinstance(event, StreamOnline)
        assert event.session_id == "9001"
        assert event.is_live

    def test_stream_offline(self):
        event = EVENT_PAYLOADS["stream.offline"].model_validate(
            {
                "broadcaster_user_id": "1",
                "broadcaster_user_login": "a",
                "broadcaster_user_name": "A",
            }
        ).to_event()

        assert event == StreamOffline("1", "a", "A")


class TestInboundCallback:
    def test_parse(self):
        body = b'{"challenge": "c", "subscription": {"id": "s", "extra": 1}}'

        parsed = callback_with(body).parse(VerificationBody)

        assert parsed.challenge == "c"
        assert parsed.subscription.id == "s"

    @pytest.mark.parametrize("body", [b"", b"{", b"\xff\xfe", b"[]"])
    def test_malformed_body(self, body: bytes):
        with pytest.raises(PayloadError):
            callback_with(body).parse(NotificationBody)

    def test_missing_field(self):
        with pytest.raises(PayloadError):
            callback_with(b'{"subscription": {"id": "s"}}').parse(NotificationBody)
