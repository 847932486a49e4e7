"""Data models for subscriptions, callbacks and stream events."""

from .callback import (
    MESSAGE_NOTIFICATION,
    MESSAGE_REVOCATION,
    MESSAGE_VERIFICATION,
    InboundCallback,
    NotificationBody,
    RevocationBody,
    VerificationBody,
)
from .events import EVENT_PAYLOADS, DomainEvent, StreamOffline, StreamOnline
from .subscription import (
    Subscription,
    SubscriptionData,
    SubscriptionPage,
    SubscriptionStatus,
    parse_timestamp,
)

__all__ = [
    "EVENT_PAYLOADS",
    "MESSAGE_NOTIFICATION",
    "MESSAGE_REVOCATION",
    "MESSAGE_VERIFICATION",
    "DomainEvent",
    "InboundCallback",
    "NotificationBody",
    "RevocationBody",
    "StreamOffline",
    "StreamOnline",
    "Subscription",
    "SubscriptionData",
    "SubscriptionPage",
    "SubscriptionStatus",
    "VerificationBody",
    "parse_timestamp",
]
