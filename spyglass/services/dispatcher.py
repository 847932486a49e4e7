"""Webhook callback state machine.

Per subscription: ``pending -> enabled`` on a verified challenge,
``enabled -> revoked`` on a verified revocation, and notifications leave the
status unchanged. Signature verification always precedes any repository
write or Sender call; unverified requests change nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from spyglass.core.exceptions import PayloadError, RepositoryError, SenderError
from spyglass.models.callback import (
    MESSAGE_NOTIFICATION,
    MESSAGE_REVOCATION,
    MESSAGE_VERIFICATION,
    InboundCallback,
    NotificationBody,
    RevocationBody,
    VerificationBody,
)
from spyglass.models.events import EVENT_PAYLOADS, StreamOffline, StreamOnline
from spyglass.models.subscription import parse_timestamp
from spyglass.repositories.subscription import SubscriptionRepository

from .sender import Sender
from .verifier import CallbackVerifier, Verification, VerificationResult

logger = logging.getLogger(__name__)


@dataclass
class CallbackResponse:
    status_code: int
    body: str | None = None


class CallbackDispatcher:
    """Classify, authenticate and apply one inbound callback."""

    def __init__(
        self,
        verifier: CallbackVerifier,
        repository: SubscriptionRepository,
        sender: Sender,
    ) -> None:
        self.verifier = verifier
        self.repository = repository
        self.sender = sender
        self._handlers: dict[str, Callable[[InboundCallback], Awaitable[CallbackResponse]]] = {
            MESSAGE_VERIFICATION: self._handle_verification,
            MESSAGE_NOTIFICATION: self._handle_notification,
            MESSAGE_REVOCATION: self._handle_revocation,
        }

    async def handle(self, callback: InboundCallback) -> CallbackResponse:
        if not callback.message_id:
            logger.warning("Rejected callback without a message ID")
            return CallbackResponse(404)

        handler = self._handlers.get(callback.message_type or "")
        if handler is None:
            logger.warning(
                f"Ignoring callback {callback.message_id} with unknown message type "
                f"{callback.message_type!r}"
            )
            return CallbackResponse(204)

        try:
            return await handler(callback)
        except PayloadError as e:
            logger.warning(f"Rejected callback {callback.message_id}: {e}")
            return CallbackResponse(400)
        except (RepositoryError, SenderError) as e:
            logger.error(f"Callback {callback.message_id} could not be processed: {e}")
            return CallbackResponse(503)

    async def _verify(self, callback: InboundCallback, sub_id: str) -> VerificationResult:
        return await self.verifier.check(
            sub_id,
            callback.message_id or "",
            callback.timestamp or "",
            callback.body,
            callback.signature,
        )

    # ------------------------------------------------------------------
    # Message types
    # ------------------------------------------------------------------

    async def _handle_verification(self, callback: InboundCallback) -> CallbackResponse:
        body = callback.parse(VerificationBody)
        sub_id = body.subscription.id

        result = await self._verify(callback, sub_id)
        if result.outcome is Verification.UNKNOWN_SUBSCRIPTION:
            return CallbackResponse(404)
        if not result:
            return CallbackResponse(401)

        enabled = await self.repository.set_enabled(sub_id, parse_timestamp(callback.timestamp))
        if enabled is None:
            # Revoked (terminal) or removed since the lookup
            logger.warning(f"Not enabling subscription {sub_id}: revoked or no longer stored")
            return CallbackResponse(404)

        await self.repository.set_last_message_id(sub_id, callback.message_id or "")
        logger.info(f"Verified subscription with ID {sub_id}")
        return CallbackResponse(200, body.challenge)

    async def _handle_notification(self, callback: InboundCallback) -> CallbackResponse:
        body = callback.parse(NotificationBody)
        sub_id = body.subscription.id

        if not await self._verify(callback, sub_id):
            return CallbackResponse(401)

        logger.debug(f"Callback {callback.message_id} verified, handling notification")
        await self._forward(callback.subscription_type or body.subscription.type, body.event)
        await self.repository.set_last_message_id(sub_id, callback.message_id or "")
        return CallbackResponse(204)

    async def _handle_revocation(self, callback: InboundCallback) -> CallbackResponse:
        body = callback.parse(RevocationBody)
        sub_id = body.subscription.id

        if not await self._verify(callback, sub_id):
            return CallbackResponse(401)

        reason = body.subscription.status or "unknown"
        logger.warning(
            f"Received revocation request from Twitch for subscription ID {sub_id}. "
            f"Reason: {reason}"
        )
        await self.repository.set_revoked(sub_id, parse_timestamp(callback.timestamp), reason)
        await self.repository.set_last_message_id(sub_id, callback.message_id or "")
        return CallbackResponse(204)

    # ------------------------------------------------------------------
    # Event forwarding
    # ------------------------------------------------------------------

    async def _forward(self, sub_type: str, event: dict[str, Any]) -> None:
        schema = EVENT_PAYLOADS.get(sub_type)
        if schema is None:
            logger.warning(f"Received notification for subscription type {sub_type}, ignoring")
            return

        try:
            decoded = schema.model_validate(event).to_event()
        except ValidationError as e:
            raise PayloadError(f"Invalid {sub_type} event: {e.error_count()} error(s)") from e

        if isinstance(decoded, StreamOnline):
            if not decoded.is_live:
                logger.info(
                    f"Ignoring stream.online for {decoded.broadcaster_id} with type {decoded.type!r}"
                )
                return
            await self.sender.send_online_event(
                decoded.session_id, decoded.broadcaster_id, decoded.broadcaster_name
            )
        elif isinstance(decoded, StreamOffline):
            await self.sender.send_offline_event(decoded.broadcaster_id, decoded.broadcaster_name)
