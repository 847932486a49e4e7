"""Outbound stream-event publishing.

Events are published with PostgreSQL ``pg_notify`` on a shared channel;
consumers ``LISTEN`` on the same channel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

import asyncpg

from spyglass.core.exceptions import SenderError

logger = logging.getLogger(__name__)


class Sender(Protocol):
    async def send_online_event(
        self, session_id: str, broadcaster_id: str, broadcaster_name: str
    ) -> None: ...

    async def send_offline_event(self, broadcaster_id: str, broadcaster_name: str) -> None: ...


class PgNotifySender:
    """Publish stream events as JSON NOTIFY payloads."""

    def __init__(self, pool: asyncpg.Pool, channel: str = "stream_events") -> None:
        self.pool = pool
        self.channel = channel

    async def send_online_event(
        self, session_id: str, broadcaster_id: str, broadcaster_name: str
    ) -> None:
        await self._notify(
            {
                "event": "stream.online",
                "session_id": session_id,
                "broadcaster_id": broadcaster_id,
                "broadcaster_name": broadcaster_name,
            }
        )

    async def send_offline_event(self, broadcaster_id: str, broadcaster_name: str) -> None:
        await self._notify(
            {
                "event": "stream.offline",
                "broadcaster_id": broadcaster_id,
                "broadcaster_name": broadcaster_name,
            }
        )

    async def _notify(self, message: dict[str, str]) -> None:
        payload = json.dumps(message, ensure_ascii=False)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("SELECT pg_notify($1, $2)", self.channel, payload)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to publish {message['event']} on '{self.channel}': {e}")
            raise SenderError(f"pg_notify failed: {e}") from e
        logger.info(f"Published {message['event']} for broadcaster {message['broadcaster_id']}")
