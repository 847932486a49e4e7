"""Helix EventSub subscription API client.

Every request carries the app token and Client-Id. A 401 triggers one
token refresh and exactly one retry of the same request; a second 401 is
returned to the caller as an ordinary failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from spyglass.core.exceptions import SubscriptionListError, TokenRefreshError
from spyglass.models.subscription import SubscriptionData, SubscriptionPage

from .token_manager import AccessToken, TokenManager

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
SUBSCRIPTIONS_PATH = "eventsub/subscriptions"


class EventSubClient:
    """List / create / delete EventSub webhook subscriptions."""

    def __init__(
        self,
        tokens: TokenManager,
        http: httpx.AsyncClient,
        *,
        helix_url: str = HELIX_BASE,
        list_retry_delay: float = 30.0,
        list_max_attempts: int = 10,
    ) -> None:
        self.tokens = tokens
        self.helix_url = helix_url
        self.list_retry_delay = list_retry_delay
        self.list_max_attempts = list_max_attempts
        self._http = http

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: AccessToken) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token.value}",
            "Client-Id": self.tokens.credentials.client_id,
        }

    async def _send(
        self,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request, refreshing the token once on 401."""
        token = await self.tokens.current_token()
        response = await self._http.request(
            method,
            f"{self.helix_url}/{SUBSCRIPTIONS_PATH}",
            params=params,
            json=json,
            headers=self._headers(token),
        )
        if response.status_code != 401:
            return response

        logger.warning("Encountered 401 Unauthorized from Twitch, fetching new access token...")
        token = await self.tokens.force_refresh(stale=token)
        response = await self._http.request(
            method,
            f"{self.helix_url}/{SUBSCRIPTIONS_PATH}",
            params=params,
            json=json,
            headers=self._headers(token),
        )
        if response.status_code == 401:
            logger.error(f"Still unauthorized after token refresh: {method} {SUBSCRIPTIONS_PATH}")
        return response

    async def _fetch_page(self, params: dict[str, Any]) -> SubscriptionPage:
        """Fetch one listing page, retrying non-auth failures after a fixed delay."""
        for attempt in range(1, self.list_max_attempts + 1):
            try:
                response = await self._send("GET", params=params)
                if response.is_success:
                    return SubscriptionPage.model_validate(response.json())
                logger.error(
                    f"Failed to fetch subscriptions from Twitch. Error {response.status_code}: "
                    f"{response.text}"
                )
            except (httpx.HTTPError, TokenRefreshError) as e:
                logger.error(f"Failed to fetch subscriptions from Twitch: {type(e).__name__}: {e}")
            except ValueError as e:
                logger.error(f"Malformed subscription listing from Twitch: {e}")

            if attempt < self.list_max_attempts:
                logger.warning(
                    f"Subscription listing attempt {attempt}/{self.list_max_attempts} failed, "
                    f"retrying in {self.list_retry_delay}s"
                )
                await asyncio.sleep(self.list_retry_delay)

        raise SubscriptionListError(
            f"Could not list subscriptions after {self.list_max_attempts} attempts"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_subscriptions(
        self, *, status: str | None = None, sub_type: str | None = None
    ) -> list[SubscriptionData]:
        """Return every subscription owned by this app, following pagination.

        Raises SubscriptionListError when a page cannot be fetched.
        """
        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        if sub_type:
            params["type"] = sub_type

        subscriptions: list[SubscriptionData] = []
        while True:
            page = await self._fetch_page(params)
            subscriptions.extend(page.data)
            if not page.cursor or not page.data:
                break
            params = {**params, "after": page.cursor}

        logger.debug(f"Fetched {len(subscriptions)} subscription(s) from Twitch")
        return subscriptions

    async def create_subscription(
        self,
        broadcaster_id: str,
        sub_type: str,
        secret: str,
        callback: str,
        *,
        version: str = "1",
    ) -> SubscriptionData | None:
        """Create a webhook subscription. Returns None on failure."""
        body = {
            "type": sub_type,
            "version": version,
            "condition": {"broadcaster_user_id": broadcaster_id},
            "transport": {"method": "webhook", "callback": callback, "secret": secret},
        }
        try:
            response = await self._send("POST", json=body)
        except (httpx.HTTPError, TokenRefreshError) as e:
            logger.error(
                f"Failed to create subscription for user ID {broadcaster_id} with type {sub_type}: "
                f"{type(e).__name__}: {e}"
            )
            return None

        if not response.is_success:
            logger.error(
                f"Failed to create subscription for user ID {broadcaster_id} with type {sub_type}. "
                f"{response.status_code} {response.text}"
            )
            return None

        try:
            created = SubscriptionPage.model_validate(response.json()).data
        except ValueError as e:
            logger.error(f"Malformed create-subscription response from Twitch: {e}")
            return None
        if not created:
            logger.error(f"Twitch returned no subscription for user ID {broadcaster_id}")
            return None
        return created[0]

    async def delete_subscription(self, sub_id: str) -> bool:
        """Delete a subscription by ID. Returns False on failure."""
        try:
            response = await self._send("DELETE", params={"id": sub_id})
        except (httpx.HTTPError, TokenRefreshError) as e:
            logger.error(f"Failed to delete subscription with ID {sub_id}: {type(e).__name__}: {e}")
            return False

        if not response.is_success:
            logger.error(
                f"Failed to delete subscription with ID {sub_id}. "
                f"Error {response.status_code} {response.text}"
            )
            return False
        return True
