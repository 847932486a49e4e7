"""Subscription records and the remote EventSub subscription schema."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

# RFC3339 with up to nanosecond precision, as Twitch sends it
_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ENABLED = "enabled"
    REVOKED = "revoked"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | None) -> datetime:
    """Parse a Twitch RFC3339 timestamp, falling back to the current UTC time.

    Fractional seconds beyond microseconds are truncated.
    """
    if not value:
        return utc_now()
    match = _RFC3339_RE.match(value.strip())
    if not match:
        return utc_now()
    frac = (match["frac"] or "0")[:6].ljust(6, "0")
    tz = "+00:00" if match["tz"] == "Z" else match["tz"]
    try:
        return datetime.fromisoformat(f"{match['base']}.{frac}{tz}")
    except ValueError:
        return utc_now()


@dataclass
class Subscription:
    """EventSub subscription record as stored in ``eventsub_subscriptions``.

    ``secret`` is the HMAC key registered with Twitch at creation time and is
    never rewritten.
    """

    sub_id: str
    broadcaster_user_id: str
    type: str
    secret: str
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    version: str = "1"
    created_at: datetime | None = None
    enabled_at: datetime | None = None
    revoked_at: datetime | None = None
    revocation_reason: str | None = None
    last_message_id: str | None = None
    cost: int | None = None

    @property
    def is_revoked(self) -> bool:
        return self.status is SubscriptionStatus.REVOKED

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Subscription:
        """Build a record from a database row."""
        data = dict(row)
        data["status"] = SubscriptionStatus(data["status"])
        return cls(**data)

    def to_row(self) -> dict[str, Any]:
        """Column values for an INSERT, in table column order."""
        return {
            "sub_id": self.sub_id,
            "broadcaster_user_id": self.broadcaster_user_id,
            "type": self.type,
            "version": self.version,
            "secret": self.secret,
            "status": self.status.value,
            "created_at": self.created_at or utc_now(),
            "enabled_at": self.enabled_at,
            "revoked_at": self.revoked_at,
            "revocation_reason": self.revocation_reason,
            "last_message_id": self.last_message_id,
            "cost": self.cost,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Serializable view for operator endpoints (secret omitted)."""
        return {
            "sub_id": self.sub_id,
            "broadcaster_user_id": self.broadcaster_user_id,
            "type": self.type,
            "version": self.version,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "enabled_at": self.enabled_at.isoformat() if self.enabled_at else None,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "revocation_reason": self.revocation_reason,
            "last_message_id": self.last_message_id,
            "cost": self.cost,
        }


# ============================================
# Remote (Helix) schema
# ============================================


class SubscriptionCondition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    broadcaster_user_id: str | None = None


class SubscriptionTransport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method: str
    callback: str | None = None


class SubscriptionData(BaseModel):
    """A subscription object as returned by the Helix EventSub endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    type: str
    version: str
    condition: SubscriptionCondition = Field(default_factory=SubscriptionCondition)
    created_at: str
    transport: SubscriptionTransport
    cost: int | None = None

    @property
    def broadcaster_user_id(self) -> str:
        return self.condition.broadcaster_user_id or ""


class SubscriptionPage(BaseModel):
    """One page of ``GET /eventsub/subscriptions``."""

    model_config = ConfigDict(extra="ignore")

    data: list[SubscriptionData] = Field(default_factory=list)
    total: int = 0
    total_cost: int = 0
    max_total_cost: int = 0
    pagination: dict[str, Any] = Field(default_factory=dict)

    @property
    def cursor(self) -> str | None:
        return self.pagination.get("cursor") or None
