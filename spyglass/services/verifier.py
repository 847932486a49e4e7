"""Webhook callback signature verification.

Twitch signs each callback with HMAC-SHA256 over
``message_id + message_timestamp + raw_body`` keyed by the subscription's
secret, sent as ``sha256=<lowercase hex>``. Comparison is constant-time.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from spyglass.models.subscription import Subscription
from spyglass.repositories.subscription import SubscriptionRepository

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    """Return the expected ``sha256=...`` signature header value."""
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def signatures_match(expected: str, actual: str | None) -> bool:
    if not actual:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


class Verification(Enum):
    VERIFIED = "verified"
    UNKNOWN_SUBSCRIPTION = "unknown_subscription"
    SIGNATURE_MISMATCH = "signature_mismatch"


@dataclass
class VerificationResult:
    outcome: Verification
    subscription: Subscription | None = None

    def __bool__(self) -> bool:
        return self.outcome is Verification.VERIFIED


class CallbackVerifier:
    """Authenticate callbacks against the secret stored for their subscription."""

    def __init__(self, repository: SubscriptionRepository) -> None:
        self.repository = repository

    async def check(
        self,
        sub_id: str,
        message_id: str,
        timestamp: str,
        body: bytes,
        signature: str | None,
    ) -> VerificationResult:
        subscription = await self.repository.find_by_id(sub_id)
        if subscription is None:
            logger.warning(f"Request failed verification: no sub ID {sub_id} in database")
            return VerificationResult(Verification.UNKNOWN_SUBSCRIPTION)

        expected = compute_signature(subscription.secret, message_id, timestamp, body)
        if not signatures_match(expected, signature):
            logger.warning(f"Callback {message_id} for sub ID {sub_id} failed verification")
            logger.warning(f"Expected signature header: {expected}")
            logger.warning(f"Actual signature header:   {signature}")
            return VerificationResult(Verification.SIGNATURE_MISMATCH, subscription)

        return VerificationResult(Verification.VERIFIED, subscription)

    async def verify(
        self,
        sub_id: str,
        message_id: str,
        timestamp: str,
        body: bytes,
        signature: str | None,
    ) -> bool:
        return bool(await self.check(sub_id, message_id, timestamp, body, signature))
