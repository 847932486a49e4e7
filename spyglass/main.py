"""Process entry point: bootstrap components, serve callbacks, exit on fatal errors."""

import asyncio
import logging
import sys

import httpx
import uvicorn
from pydantic import ValidationError

from spyglass.app import create_app
from spyglass.core.config import Settings, load_settings
from spyglass.core.database import DatabaseManager
from spyglass.core.exceptions import ExitCode, FatalStartupError, RepositoryError
from spyglass.core.logging import setup_logging
from spyglass.migrations.runner import MigrationRunner
from spyglass.repositories import SubscriptionRepository
from spyglass.services import (
    CallbackDispatcher,
    CallbackVerifier,
    ClientCredentials,
    EventSubClient,
    PgNotifySender,
    SubscriptionService,
    TokenManager,
)

logger = logging.getLogger("spyglass")


async def _connect_database(settings: Settings) -> DatabaseManager:
    db_manager = DatabaseManager(settings.database_url)
    try:
        await db_manager.connect()
        await MigrationRunner(db_manager.pool).run_pending()
    except ValueError as e:
        await db_manager.disconnect()
        raise FatalStartupError(
            f"Invalid database connection string: {e}", ExitCode.INVALID_DB_CONNECTION_STRING
        ) from e
    except Exception as e:
        await db_manager.disconnect()
        raise FatalStartupError(
            f"Database unreachable: {type(e).__name__}: {e}", ExitCode.DB_UNREACHABLE
        ) from e
    return db_manager


async def serve(settings: Settings) -> None:
    """Build every component, reconcile subscriptions, then serve until stopped."""
    db_manager = await _connect_database(settings)
    http = httpx.AsyncClient(timeout=settings.http_timeout)
    try:
        tokens = await TokenManager.create(
            ClientCredentials(settings.client_id, settings.client_secret),
            http,
            oauth_url=settings.oauth_url,
            refresh_timeout=settings.token_refresh_timeout,
        )
        client = EventSubClient(
            tokens,
            http,
            helix_url=settings.helix_url,
            list_retry_delay=settings.list_retry_delay,
            list_max_attempts=settings.list_max_attempts,
        )
        repository = SubscriptionRepository(db_manager.pool)
        subscriptions = SubscriptionService(
            client,
            repository,
            settings.webhook_callback,
            prune_orphans=settings.prune_orphans,
        )

        try:
            await subscriptions.reconcile()
        except RepositoryError as e:
            raise FatalStartupError(str(e), ExitCode.DB_UNREACHABLE) from e

        dispatcher = CallbackDispatcher(
            CallbackVerifier(repository),
            repository,
            PgNotifySender(db_manager.pool, settings.notify_channel),
        )
        app = create_app(
            settings,
            dispatcher=dispatcher,
            subscriptions=subscriptions,
            db_manager=db_manager,
        )

        logger.info(f"Receiving callbacks at {settings.webhook_callback}")
        server = uvicorn.Server(
            uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
        )
        await server.serve()
    finally:
        await http.aclose()
        await db_manager.disconnect()


def run() -> None:
    setup_logging()
    try:
        settings = load_settings()
    except ValidationError as e:
        logger.critical(f"Environment validation failed: {e}")
        sys.exit(int(ExitCode.MISSING_ENV_VAR))
    except FatalStartupError as e:
        logger.critical(f"{e} (exit code {int(e.exit_code)})")
        sys.exit(int(e.exit_code))

    setup_logging(settings.log_level)

    try:
        asyncio.run(serve(settings))
    except FatalStartupError as e:
        logger.critical(f"{e} (exit code {int(e.exit_code)})")
        sys.exit(int(e.exit_code))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    run()
