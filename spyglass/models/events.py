"""Domain events and their EventSub notification payloads.

Each payload schema is keyed by the EventSub subscription type it decodes,
so a notification is routed to its schema by the ``Subscription-Type`` header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class StreamOnline:
    session_id: str
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str
    type: str
    started_at: str

    @property
    def is_live(self) -> bool:
        return self.type == "live"


@dataclass(frozen=True)
class StreamOffline:
    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str


DomainEvent = Union[StreamOnline, StreamOffline]


class StreamOnlinePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    broadcaster_user_id: str
    broadcaster_user_login: str
    broadcaster_user_name: str
    type: str
    started_at: str

    def to_event(self) -> StreamOnline:
        return StreamOnline(
            session_id=self.id,
            broadcaster_id=self.broadcaster_user_id,
            broadcaster_login=self.broadcaster_user_login,
            broadcaster_name=self.broadcaster_user_name,
            type=self.type,
            started_at=self.started_at,
        )


class StreamOfflinePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    broadcaster_user_id: str
    broadcaster_user_login: str
    broadcaster_user_name: str

    def to_event(self) -> StreamOffline:
        return StreamOffline(
            broadcaster_id=self.broadcaster_user_id,
            broadcaster_login=self.broadcaster_user_login,
            broadcaster_name=self.broadcaster_user_name,
        )


EVENT_PAYLOADS: dict[str, type[StreamOnlinePayload] | type[StreamOfflinePayload]] = {
    "stream.online": StreamOnlinePayload,
    "stream.offline": StreamOfflinePayload,
}
