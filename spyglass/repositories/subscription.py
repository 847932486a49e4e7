"""Repository for the eventsub_subscriptions table."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import asyncpg

from spyglass.core.exceptions import RepositoryError
from spyglass.models.subscription import Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SELECT_COLS = (
    "sub_id, broadcaster_user_id, type, version, secret, status, created_at, "
    "enabled_at, revoked_at, revocation_reason, last_message_id, cost"
)

_STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _storage_op(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise storage-engine failures as RepositoryError."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except _STORAGE_ERRORS as e:
            logger.error(f"Subscription store error in {func.__name__}: {type(e).__name__}: {e}")
            raise RepositoryError(f"{func.__name__} failed: {e}") from e

    return wrapper


class SubscriptionRepository:
    """Pure SQL operations for eventsub_subscriptions.

    Every method is a single-statement operation, so each is atomic on its own.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @_storage_op
    async def find_by_id(self, sub_id: str) -> Subscription | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLS} FROM eventsub_subscriptions WHERE sub_id = $1",
                sub_id,
            )
            if not row:
                return None
            return Subscription.from_row(row)

    @_storage_op
    async def list_all(self) -> list[Subscription]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_SELECT_COLS} FROM eventsub_subscriptions ORDER BY created_at"
            )
            return [Subscription.from_row(r) for r in rows]

    @_storage_op
    async def insert(self, subscription: Subscription) -> Subscription:
        """Insert a new record. Raises RepositoryError if the ID already exists."""
        values = subscription.to_row()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO eventsub_subscriptions ({", ".join(values)})
                VALUES ({", ".join(f"${i}" for i in range(1, len(values) + 1))})
                RETURNING {_SELECT_COLS}
                """,
                *values.values(),
            )
            return Subscription.from_row(row)

    @_storage_op
    async def set_enabled(self, sub_id: str, timestamp: datetime) -> Subscription | None:
        """Mark a subscription enabled.

        Returns None when the ID is unknown or the subscription is revoked;
        revoked records are never re-enabled.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE eventsub_subscriptions
                SET status = 'enabled', enabled_at = $2
                WHERE sub_id = $1 AND status <> 'revoked'
                RETURNING {_SELECT_COLS}
                """,
                sub_id,
                timestamp,
            )
            if not row:
                return None
            return Subscription.from_row(row)

    @_storage_op
    async def set_revoked(
        self, sub_id: str, timestamp: datetime, reason: str
    ) -> Subscription | None:
        """Mark a subscription revoked. Terminal; a second revocation keeps the first."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE eventsub_subscriptions
                SET status = 'revoked', revoked_at = $2, revocation_reason = $3
                WHERE sub_id = $1 AND status <> 'revoked'
                RETURNING {_SELECT_COLS}
                """,
                sub_id,
                timestamp,
                reason,
            )
            if not row:
                return None
            return Subscription.from_row(row)

    @_storage_op
    async def set_last_message_id(self, sub_id: str, message_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE eventsub_subscriptions SET last_message_id = $2 WHERE sub_id = $1",
                sub_id,
                message_id,
            )

    @_storage_op
    async def delete(self, sub_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM eventsub_subscriptions WHERE sub_id = $1",
                sub_id,
            )
            return result.endswith(" 1")
