"""Shared fixtures: in-memory subscription store, recording sender, scripted Twitch."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio

from spyglass.core.exceptions import RepositoryError
from spyglass.models.callback import InboundCallback
from spyglass.models.subscription import Subscription, SubscriptionStatus
from spyglass.services import (
    AccessToken,
    CallbackDispatcher,
    CallbackVerifier,
    ClientCredentials,
    EventSubClient,
    TokenManager,
    compute_signature,
)

OAUTH_URL = "https://id.test/oauth2"
HELIX_URL = "https://api.test/helix"
CALLBACK = "https://spyglass.example.com/webhooks/callback"
CREDENTIALS = ClientCredentials("client-id", "client-secret")
SECRET = "s3cr3t-for-sub-1"
TIMESTAMP = "2024-05-01T12:30:45.123456789Z"


class FakeRepository:
    """In-memory stand-in for SubscriptionRepository."""

    def __init__(self) -> None:
        self.records: dict[str, Subscription] = {}
        self.mutations: list[tuple[Any, ...]] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RepositoryError("store offline")

    async def find_by_id(self, sub_id: str) -> Subscription | None:
        self._check()
        return self.records.get(sub_id)

    async def list_all(self) -> list[Subscription]:
        self._check()
        return list(self.records.values())

    async def insert(self, subscription: Subscription) -> Subscription:
        self._check()
        if subscription.sub_id in self.records:
            raise RepositoryError("duplicate key")
        self.mutations.append(("insert", subscription.sub_id))
        self.records[subscription.sub_id] = subscription
        return subscription

    async def set_enabled(self, sub_id: str, timestamp: datetime) -> Subscription | None:
        self._check()
        current = self.records.get(sub_id)
        if current is None or current.is_revoked:
            return None
        self.mutations.append(("set_enabled", sub_id, timestamp))
        self.records[sub_id] = replace(
            current, status=SubscriptionStatus.ENABLED, enabled_at=timestamp
        )
        return self.records[sub_id]

    async def set_revoked(
        self, sub_id: str, timestamp: datetime, reason: str
    ) -> Subscription | None:
        self._check()
        current = self.records.get(sub_id)
        if current is None or current.is_revoked:
            return None
        self.mutations.append(("set_revoked", sub_id, timestamp, reason))
        self.records[sub_id] = replace(
            current,
            status=SubscriptionStatus.REVOKED,
            revoked_at=timestamp,
            revocation_reason=reason,
        )
        return self.records[sub_id]

    async def set_last_message_id(self, sub_id: str, message_id: str) -> None:
        self._check()
        if sub_id in self.records:
            self.mutations.append(("set_last_message_id", sub_id, message_id))
            self.records[sub_id] = replace(self.records[sub_id], last_message_id=message_id)

    async def delete(self, sub_id: str) -> bool:
        self._check()
        self.mutations.append(("delete", sub_id))
        return self.records.pop(sub_id, None) is not None


class RecordingSender:
    """Sender that records every published event."""

    def __init__(self) -> None:
        self.online: list[tuple[str, str, str]] = []
        self.offline: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def send_online_event(
        self, session_id: str, broadcaster_id: str, broadcaster_name: str
    ) -> None:
        if self.error:
            raise self.error
        self.online.append((session_id, broadcaster_id, broadcaster_name))

    async def send_offline_event(self, broadcaster_id: str, broadcaster_name: str) -> None:
        if self.error:
            raise self.error
        self.offline.append((broadcaster_id, broadcaster_name))

    @property
    def calls(self) -> int:
        return len(self.online) + len(self.offline)


class FakeTwitch:
    """Scripted token and Helix endpoints served through httpx.MockTransport.

    Tokens are issued as ``token-1``, ``token-2``... Helix rejects any token
    listed in ``rejected`` with 401; otherwise it serves queued responses,
    defaulting to an empty subscription page.
    """

    def __init__(self) -> None:
        self.token_calls = 0
        self.token_status = 200
        self.token_delay = 0.0
        self.rejected: set[str] = set()
        self.queue: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            self.token_calls += 1
            issued = self.token_calls
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "invalid client"})
            return httpx.Response(
                200,
                json={"access_token": f"token-{issued}", "expires_in": 3600, "token_type": "bearer"},
            )

        self.requests.append(request)
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token in self.rejected:
            return httpx.Response(401, json={"message": "Invalid OAuth token"})
        if self.queue:
            return self.queue.pop(0)
        return httpx.Response(200, json=page([]))


def subscription_data(
    sub_id: str,
    *,
    sub_type: str = "stream.online",
    broadcaster_id: str = "123",
    callback: str = CALLBACK,
    status: str = "webhook_callback_verification_pending",
) -> dict[str, Any]:
    return {
        "id": sub_id,
        "status": status,
        "type": sub_type,
        "version": "1",
        "condition": {"broadcaster_user_id": broadcaster_id},
        "created_at": "2024-05-01T12:00:00.5Z",
        "transport": {"method": "webhook", "callback": callback},
        "cost": 1,
    }


def page(data: list[dict[str, Any]], cursor: str | None = None) -> dict[str, Any]:
    return {
        "data": data,
        "total": len(data),
        "total_cost": len(data),
        "max_total_cost": 10000,
        "pagination": {"cursor": cursor} if cursor else {},
    }


def make_subscription(
    sub_id: str = "sub-1",
    *,
    status: SubscriptionStatus = SubscriptionStatus.PENDING,
    sub_type: str = "stream.online",
    secret: str = SECRET,
) -> Subscription:
    return Subscription(
        sub_id=sub_id,
        broadcaster_user_id="123",
        type=sub_type,
        secret=secret,
        status=status,
        created_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
    )


def signed_callback(
    message_type: str,
    body: dict[str, Any] | bytes,
    *,
    secret: str = SECRET,
    message_id: str = "msg-1",
    timestamp: str | None = TIMESTAMP,
    subscription_type: str | None = None,
    signature: str | None = None,
) -> InboundCallback:
    raw = body if isinstance(body, bytes) else json.dumps(body).encode()
    if signature is None:
        signature = compute_signature(secret, message_id, timestamp or "", raw)
    return InboundCallback(
        message_id=message_id,
        message_type=message_type,
        timestamp=timestamp,
        signature=signature,
        subscription_type=subscription_type,
        body=raw,
    )


def callback_subscription(sub_id: str = "sub-1", **overrides: Any) -> dict[str, Any]:
    return {
        "id": sub_id,
        "status": "enabled",
        "type": "stream.online",
        "version": "1",
        "condition": {"broadcaster_user_id": "123"},
        "transport": {"method": "webhook", "callback": CALLBACK},
        "created_at": "2024-05-01T12:00:00Z",
        **overrides,
    }


def online_event(event_type: str = "live") -> dict[str, Any]:
    return {
        "id": "9001",
        "broadcaster_user_id": "123",
        "broadcaster_user_login": "cool_user",
        "broadcaster_user_name": "Cool_User",
        "type": event_type,
        "started_at": "2024-05-01T12:30:00Z",
    }


def offline_event() -> dict[str, Any]:
    return {
        "broadcaster_user_id": "123",
        "broadcaster_user_login": "cool_user",
        "broadcaster_user_name": "Cool_User",
    }


@pytest.fixture()
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture()
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture()
def dispatcher(repository: FakeRepository, sender: RecordingSender) -> CallbackDispatcher:
    return CallbackDispatcher(CallbackVerifier(repository), repository, sender)


@pytest.fixture()
def twitch() -> FakeTwitch:
    return FakeTwitch()


@pytest_asyncio.fixture()
async def http(twitch: FakeTwitch):
    async with httpx.AsyncClient(transport=httpx.MockTransport(twitch.handler)) as client:
        yield client


@pytest.fixture()
def tokens(http: httpx.AsyncClient) -> TokenManager:
    return TokenManager(
        CREDENTIALS,
        http,
        AccessToken("token-0", 3600),
        oauth_url=OAUTH_URL,
        refresh_timeout=1.0,
    )


@pytest.fixture()
def eventsub(tokens: TokenManager, http: httpx.AsyncClient) -> EventSubClient:
    return EventSubClient(
        tokens, http, helix_url=HELIX_URL, list_retry_delay=0, list_max_attempts=3
    )
