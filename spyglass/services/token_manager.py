"""App access token acquisition and single-flight refresh.

The token is fetched with the client-credentials grant. Reads of the
published token never block; refreshes are coalesced so that at most one
request to the token endpoint is in flight and every concurrent caller
receives the token it produced.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

import httpx

from spyglass.core.exceptions import ExitCode, FatalStartupError, TokenRefreshError

logger = logging.getLogger(__name__)

OAUTH_BASE = "https://id.twitch.tv/oauth2"


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str = field(repr=False)


@dataclass(frozen=True)
class AccessToken:
    """An app access token and when it was issued (monotonic clock)."""

    value: str
    expires_in: int
    token_type: str = "bearer"
    issued_at: float = field(default_factory=time.monotonic)

    def is_expired(self, margin: float = 0.0) -> bool:
        return time.monotonic() >= self.issued_at + self.expires_in - margin


class TokenManager:
    """Owns the app access token shared by all outbound Helix calls."""

    # Refresh this many seconds before Twitch's stated expiry, or halfway
    # through the lifetime of a shorter-lived token
    EXPIRY_MARGIN = 300.0

    def __init__(
        self,
        credentials: ClientCredentials,
        http: httpx.AsyncClient,
        token: AccessToken,
        *,
        oauth_url: str = OAUTH_BASE,
        refresh_timeout: float = 30.0,
    ) -> None:
        self.credentials = credentials
        self.oauth_url = oauth_url
        self.refresh_timeout = refresh_timeout
        self._http = http
        self._token = token
        self._refresh: asyncio.Future[AccessToken] | None = None

    @classmethod
    async def create(
        cls,
        credentials: ClientCredentials,
        http: httpx.AsyncClient,
        *,
        oauth_url: str = OAUTH_BASE,
        refresh_timeout: float = 30.0,
    ) -> TokenManager:
        """Fetch the initial token. Without one the service cannot run."""
        try:
            token = await fetch_app_token(http, credentials, oauth_url)
        except TokenRefreshError as e:
            raise FatalStartupError(
                f"Failed to fetch access token from Twitch: {e}",
                ExitCode.NO_TWITCH_ACCESS_TOKEN,
            ) from e
        logger.info(f"Obtained app access token (expires in {token.expires_in}s)")
        return cls(
            credentials, http, token, oauth_url=oauth_url, refresh_timeout=refresh_timeout
        )

    @property
    def token(self) -> AccessToken:
        """The currently published token, without any expiry check."""
        return self._token

    @property
    def refreshing(self) -> bool:
        return self._refresh is not None

    async def current_token(self) -> AccessToken:
        """Return a usable token, joining or starting a refresh when needed."""
        if self._refresh is not None:
            return await self._wait_for(self._refresh)
        token = self._token
        if token.is_expired(min(self.EXPIRY_MARGIN, token.expires_in / 2)):
            logger.info("App access token is about to expire, refreshing")
            return await self.force_refresh(stale=token)
        return token

    async def force_refresh(self, stale: AccessToken | None = None) -> AccessToken:
        """Replace the token, coalescing with any refresh already in flight.

        ``stale`` is the token the caller found invalid. If a newer, unexpired
        token has been published since, it is returned without a network call.
        """
        if self._refresh is not None:
            return await self._wait_for(self._refresh)
        if stale is not None and self._token is not stale and not self._token.is_expired():
            return self._token

        future: asyncio.Future[AccessToken] = asyncio.get_running_loop().create_future()
        self._refresh = future
        try:
            token = await fetch_app_token(self._http, self.credentials, self.oauth_url)
        except asyncio.CancelledError:
            self._fail(future, TokenRefreshError("Token refresh was cancelled"))
            raise
        except TokenRefreshError as e:
            self._fail(future, e)
            raise
        else:
            self._token = token
            future.set_result(token)
            logger.info(f"Refreshed app access token (expires in {token.expires_in}s)")
            return token
        finally:
            self._refresh = None

    async def _wait_for(self, future: asyncio.Future[AccessToken]) -> AccessToken:
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.refresh_timeout)
        except asyncio.TimeoutError as e:
            raise TokenRefreshError(
                f"Timed out after {self.refresh_timeout}s waiting for token refresh"
            ) from e

    @staticmethod
    def _fail(future: asyncio.Future[AccessToken], error: TokenRefreshError) -> None:
        future.set_exception(error)
        # Mark retrieved so a refresh without waiters does not log "never retrieved"
        future.exception()


async def fetch_app_token(
    http: httpx.AsyncClient, credentials: ClientCredentials, oauth_url: str = OAUTH_BASE
) -> AccessToken:
    """Request an app access token with the client-credentials grant."""
    try:
        response = await http.post(
            f"{oauth_url}/token",
            data={
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
                "grant_type": "client_credentials",
            },
        )
    except httpx.HTTPError as e:
        logger.error(f"Token request failed: {type(e).__name__}: {e}")
        raise TokenRefreshError(f"{type(e).__name__}: {e}") from e

    if not response.is_success:
        logger.error(f"Failed to get app token: {response.status_code} {response.text}")
        raise TokenRefreshError(f"HTTP {response.status_code}: {response.text}")

    try:
        data = response.json()
        token = AccessToken(
            value=data["access_token"],
            expires_in=int(data["expires_in"]),
            token_type=data.get("token_type", "bearer"),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise TokenRefreshError(f"Malformed token response: {e}") from e
    if token.expires_in <= 0:
        raise TokenRefreshError(f"Token response has no usable lifetime: {token.expires_in}")
    return token
