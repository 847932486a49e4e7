"""Exit codes and the exception taxonomy shared by all components."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes, one per fatal startup cause."""

    MISSING_ENV_VAR = 1
    MISSING_CONFIG_FILE = 2
    NO_TWITCH_ACCESS_TOKEN = 3
    INVALID_DB_CONNECTION_STRING = 4
    DB_UNREACHABLE = 5
    SUBSCRIPTION_LIST_FAILED = 6


class SpyglassError(Exception):
    """Base class for all service errors."""


class FatalStartupError(SpyglassError):
    """The process cannot operate and must exit with ``exit_code``."""

    def __init__(self, message: str, exit_code: ExitCode) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class TokenRefreshError(SpyglassError):
    """The credential endpoint did not issue a token."""


class SubscriptionListError(SpyglassError):
    """Listing remote subscriptions failed on every attempt."""


class RepositoryError(SpyglassError):
    """The subscription store could not complete an operation."""


class SenderError(SpyglassError):
    """A domain event could not be published to the bus."""


class PayloadError(SpyglassError):
    """A callback body was not valid JSON or did not match its schema."""
