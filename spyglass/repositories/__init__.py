"""Repository layer for the subscription store."""

from .subscription import SubscriptionRepository

__all__ = [
    "SubscriptionRepository",
]
