"""Dependency injection utilities for FastAPI.

Components are built once by the process entry point and attached to
``app.state``; routes reach them through these getters.
"""

import hmac
import logging

from fastapi import Header, HTTPException, Request

from spyglass.services import CallbackDispatcher, SubscriptionService

logger = logging.getLogger(__name__)


def get_dispatcher(request: Request) -> CallbackDispatcher:
    """Get the shared CallbackDispatcher"""
    return request.app.state.dispatcher


def get_subscription_service(request: Request) -> SubscriptionService:
    """Get the shared SubscriptionService"""
    service = getattr(request.app.state, "subscriptions", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Subscription service not ready")
    return service


async def require_admin(
    request: Request,
    authorization: str | None = Header(None),
) -> None:
    """Require ``Authorization: Bearer <admin_token>`` for operator endpoints"""
    expected = request.app.state.settings.admin_token
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("Operator request without bearer token")
        raise HTTPException(status_code=401, detail="Not authorized")

    provided = authorization.removeprefix("Bearer ")
    if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Operator request with invalid bearer token")
        raise HTTPException(status_code=401, detail="Not authorized")
