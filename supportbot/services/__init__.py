"""Services package - business logic layer."""
from supportbot.services.catalog_service import CatalogService
from supportbot.services.chat_session_service import ChatSessionService
from supportbot.services.command_router import BotReply, CommandRouter
from supportbot.services.correlator import SessionCorrelator
from supportbot.services.customer_service import CustomerService
from supportbot.services.notification_service import NotificationService, SweepResult
from supportbot.services.sender import OutboundSender
from supportbot.services.subscription_service import SubscriptionService

__all__ = [
    "BotReply",
    "CatalogService",
    "ChatSessionService",
    "CommandRouter",
    "CustomerService",
    "NotificationService",
    "OutboundSender",
    "SessionCorrelator",
    "SubscriptionService",
    "SweepResult",
]
