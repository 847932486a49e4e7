"""FastAPI application factory"""

import logging
import time

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from spyglass import __version__
from spyglass.core.config import Settings
from spyglass.core.database import DatabaseManager
from spyglass.routers import subscriptions_router, webhooks_router
from spyglass.services import CallbackDispatcher, SubscriptionService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    *,
    dispatcher: CallbackDispatcher,
    subscriptions: SubscriptionService | None = None,
    db_manager: DatabaseManager | None = None,
) -> FastAPI:
    """Create the FastAPI application around already-constructed components.

    The caller owns the components' lifecycle (HTTP client, database pool).
    """
    start_time = time.time()

    app = FastAPI(
        title="Spyglass",
        description="Twitch EventSub webhook bridge",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.subscriptions = subscriptions
    app.state.db_manager = db_manager

    app.include_router(webhooks_router.router)
    if settings.admin_token:
        app.include_router(subscriptions_router.router)
        logger.info("Operator endpoints enabled at /subscriptions")

    @app.get("/health")
    async def health():
        """Liveness check (no DB dependency)"""
        return {"status": "healthy", "uptime_seconds": int(time.time() - start_time)}

    @app.get("/status")
    async def status():
        """Readiness / status endpoint including DB health"""
        db_ok = db_manager is not None and await db_manager.check_health()
        return {
            "service": "spyglass",
            "version": __version__,
            "uptime_seconds": int(time.time() - start_time),
            "db_connected": db_ok,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    return app
