"""Services layer - token management, Twitch API access and callback handling.

Services are constructed with their dependencies by the process entry point
and reached from routes through dependency injection.
"""

from .dispatcher import CallbackDispatcher, CallbackResponse
from .eventsub_api import EventSubClient
from .sender import PgNotifySender, Sender
from .subscription_service import SubscriptionService
from .token_manager import AccessToken, ClientCredentials, TokenManager
from .verifier import CallbackVerifier, Verification, compute_signature

__all__ = [
    "AccessToken",
    "CallbackDispatcher",
    "CallbackResponse",
    "CallbackVerifier",
    "ClientCredentials",
    "EventSubClient",
    "PgNotifySender",
    "Sender",
    "SubscriptionService",
    "TokenManager",
    "Verification",
    "compute_signature",
]
