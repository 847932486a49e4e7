"""Operator routes for managing EventSub subscriptions"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from spyglass.core.dependencies import get_subscription_service, require_admin
from spyglass.core.exceptions import RepositoryError
from spyglass.services import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/subscriptions",
    tags=["subscriptions"],
    dependencies=[Depends(require_admin)],
)


class SubscriptionCreate(BaseModel):
    broadcaster_user_id: str
    type: Literal["stream.online", "stream.offline"]


@router.get("")
async def list_subscriptions(
    service: SubscriptionService = Depends(get_subscription_service),
) -> list[dict]:
    """List stored subscriptions (secrets omitted)."""
    try:
        return [s.to_public_dict() for s in await service.list_local()]
    except RepositoryError as e:
        raise HTTPException(status_code=503, detail="Subscription store unavailable") from e


@router.post("", status_code=201)
async def create_subscription(
    data: SubscriptionCreate,
    service: SubscriptionService = Depends(get_subscription_service),
) -> dict:
    """Subscribe to a stream event for a broadcaster."""
    try:
        subscription = await service.subscribe(data.broadcaster_user_id, data.type)
    except RepositoryError as e:
        raise HTTPException(status_code=503, detail="Subscription store unavailable") from e

    if subscription is None:
        raise HTTPException(status_code=502, detail="Twitch did not create the subscription")
    return subscription.to_public_dict()


@router.delete("/{sub_id}", status_code=204)
async def delete_subscription(
    sub_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
) -> Response:
    """Unsubscribe on Twitch and drop the stored record."""
    try:
        deleted = await service.unsubscribe(sub_id)
    except RepositoryError as e:
        raise HTTPException(status_code=503, detail="Subscription store unavailable") from e

    if not deleted:
        raise HTTPException(status_code=502, detail="Twitch did not delete the subscription")
    return Response(status_code=204)
