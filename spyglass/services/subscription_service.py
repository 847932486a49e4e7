"""Subscription lifecycle orchestration.

Combines the EventSub API client with the subscription repository:
creating remote subscriptions with a fresh per-subscription secret,
removing them, and reconciling local records with Twitch at startup.
"""

import logging
import secrets

from spyglass.core.exceptions import (
    ExitCode,
    FatalStartupError,
    RepositoryError,
    SubscriptionListError,
)
from spyglass.models.subscription import Subscription, SubscriptionStatus, parse_timestamp
from spyglass.repositories.subscription import SubscriptionRepository

from .eventsub_api import EventSubClient

logger = logging.getLogger(__name__)

# Twitch accepts secrets of 10-100 ASCII characters
SECRET_BYTES = 32


def generate_secret() -> str:
    return secrets.token_hex(SECRET_BYTES)


class SubscriptionService:
    """Operator-facing subscribe / unsubscribe / reconcile operations."""

    def __init__(
        self,
        client: EventSubClient,
        repository: SubscriptionRepository,
        callback: str,
        *,
        prune_orphans: bool = False,
    ) -> None:
        self.client = client
        self.repository = repository
        self.callback = callback
        self.prune_orphans = prune_orphans

    async def subscribe(self, broadcaster_id: str, sub_type: str) -> Subscription | None:
        """Create a webhook subscription and store it as pending.

        The record is stored as soon as Twitch returns its ID; the
        subscription only becomes enabled once the challenge is verified.
        If the store rejects the record, the remote subscription is deleted
        again so Twitch never holds a subscription without a stored secret.

        Twitch may deliver the challenge before the insert completes. That
        challenge is answered 404, Twitch marks the subscription
        ``webhook_callback_verification_failed``, and the stored record stays
        pending; unsubscribing and subscribing again recovers.
        """
        secret = generate_secret()
        created = await self.client.create_subscription(
            broadcaster_id, sub_type, secret, self.callback
        )
        if created is None:
            return None

        try:
            subscription = await self.repository.insert(
                Subscription(
                    sub_id=created.id,
                    broadcaster_user_id=broadcaster_id,
                    type=created.type,
                    version=created.version,
                    secret=secret,
                    status=SubscriptionStatus.PENDING,
                    created_at=parse_timestamp(created.created_at),
                    cost=created.cost,
                )
            )
        except RepositoryError:
            logger.error(f"Could not store subscription {created.id}, deleting it on Twitch")
            await self.client.delete_subscription(created.id)
            raise
        logger.info(
            f"Created {sub_type} subscription {created.id} for broadcaster {broadcaster_id}"
        )
        return subscription

    async def unsubscribe(self, sub_id: str) -> bool:
        """Delete the subscription on Twitch, then locally."""
        if not await self.client.delete_subscription(sub_id):
            return False
        await self.repository.delete(sub_id)
        logger.info(f"Deleted subscription {sub_id}")
        return True

    async def list_local(self) -> list[Subscription]:
        return await self.repository.list_all()

    async def reconcile(self) -> None:
        """Compare Twitch's subscriptions for our callback with the stored ones.

        A failed listing is fatal: the service cannot know which
        subscriptions it is responsible for.
        """
        try:
            remote = await self.client.list_subscriptions()
        except SubscriptionListError as e:
            raise FatalStartupError(str(e), ExitCode.SUBSCRIPTION_LIST_FAILED) from e

        ours = {s.id: s for s in remote if s.transport.callback == self.callback}
        local = {s.sub_id: s for s in await self.repository.list_all()}

        for sub_id, sub in local.items():
            if sub_id not in ours and not sub.is_revoked:
                logger.warning(
                    f"Stored subscription {sub_id} ({sub.type} for {sub.broadcaster_user_id}) "
                    f"is not known to Twitch"
                )

        orphans = [s for s in ours.values() if s.id not in local]
        for orphan in orphans:
            logger.warning(
                f"Twitch subscription {orphan.id} ({orphan.type} for "
                f"{orphan.broadcaster_user_id}) has no stored secret"
            )
            if self.prune_orphans:
                await self.client.delete_subscription(orphan.id)

        logger.info(
            f"Reconciled subscriptions: {len(ours)} on Twitch, {len(local)} stored, "
            f"{len(orphans)} orphaned"
        )
