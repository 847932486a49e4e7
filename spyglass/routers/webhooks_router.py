"""EventSub webhook callback route"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from spyglass.core.config import CALLBACK_PATH
from spyglass.core.dependencies import get_dispatcher
from spyglass.models.callback import InboundCallback
from spyglass.services import CallbackDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

# Twitch header first, then the short alias
HEADER_MESSAGE_ID = ("Twitch-Eventsub-Message-Id", "X-Message-Id")
HEADER_MESSAGE_TYPE = ("Twitch-Eventsub-Message-Type", "X-Message-Type")
HEADER_TIMESTAMP = ("Twitch-Eventsub-Message-Timestamp", "X-Message-Timestamp")
HEADER_SIGNATURE = ("Twitch-Eventsub-Message-Signature", "X-Message-Signature")
HEADER_SUBSCRIPTION_TYPE = ("Twitch-Eventsub-Subscription-Type", "X-Subscription-Type")


def _header(request: Request, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = request.headers.get(name)
        if value is not None:
            return value
    return None


@router.post(CALLBACK_PATH)
async def handle_callback(
    request: Request,
    dispatcher: CallbackDispatcher = Depends(get_dispatcher),
) -> Response:
    """Receive a Twitch EventSub webhook callback."""
    callback = InboundCallback(
        message_id=_header(request, HEADER_MESSAGE_ID),
        message_type=_header(request, HEADER_MESSAGE_TYPE),
        timestamp=_header(request, HEADER_TIMESTAMP),
        signature=_header(request, HEADER_SIGNATURE),
        subscription_type=_header(request, HEADER_SUBSCRIPTION_TYPE),
        body=await request.body(),
    )
    logger.debug(f"Callback received: {callback.message_type} {callback.message_id}")

    result = await dispatcher.handle(callback)
    if result.body is not None:
        return PlainTextResponse(result.body, status_code=result.status_code)
    return Response(status_code=result.status_code)
