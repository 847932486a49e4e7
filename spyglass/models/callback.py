"""Inbound webhook callback and its per-message-type body schemas."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from spyglass.core.exceptions import PayloadError

MESSAGE_VERIFICATION = "webhook_callback_verification"
MESSAGE_NOTIFICATION = "notification"
MESSAGE_REVOCATION = "revocation"

B = TypeVar("B", bound=BaseModel)


class CallbackSubscription(BaseModel):
    """The ``subscription`` object embedded in every callback body."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = ""
    type: str = ""
    version: str = ""


class VerificationBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    challenge: str
    subscription: CallbackSubscription


class NotificationBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subscription: CallbackSubscription
    event: dict[str, Any]


class RevocationBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subscription: CallbackSubscription


@dataclass
class InboundCallback:
    """One webhook request, as received. Lives for a single request."""

    message_id: str | None
    message_type: str | None
    timestamp: str | None
    signature: str | None
    subscription_type: str | None
    body: bytes

    def parse(self, schema: type[B]) -> B:
        """Decode the raw body into ``schema``; raises PayloadError when malformed."""
        try:
            data = json.loads(self.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PayloadError(f"Callback body is not valid JSON: {e}") from e
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise PayloadError(
                f"Callback body does not match {schema.__name__}: {e.error_count()} error(s)"
            ) from e
