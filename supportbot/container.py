"""Service container - wires configuration, the Bot API sender, and domain services."""
import logging
from dataclasses import dataclass

from aiogram import Bot

from supportbot.config import Config
from supportbot.services.catalog_service import CatalogService
from supportbot.services.chat_session_service import ChatSessionService
from supportbot.services.command_router import CommandRouter
from supportbot.services.correlator import SessionCorrelator
from supportbot.services.customer_service import CustomerService
from supportbot.services.notification_service import NotificationService
from supportbot.services.sender import OutboundSender
from supportbot.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Simple dependency container to share services across handlers and HTTP routes."""

    config: Config
    sender: OutboundSender
    customers: CustomerService
    catalog: CatalogService
    subscriptions: SubscriptionService
    chat_sessions: ChatSessionService
    correlator: SessionCorrelator
    command_router: CommandRouter
    notifications: NotificationService

    @classmethod
    async def create(cls, config: Config, bot: Bot) -> "ServiceContainer":
        """
        Build the service container with all dependencies.

        Args:
            config: Loaded Config instance
            bot: Bot API client every outbound message goes through
        """
        logger.info("Building service container...")

        sender = OutboundSender(bot)
        customers = CustomerService()
        catalog = CatalogService()
        subscriptions = SubscriptionService()
        chat_sessions = ChatSessionService(sender, config.admin_chat_id)
        correlator = SessionCorrelator(chat_sessions, config.admin_chat_id)
        command_router = CommandRouter(config, customers, catalog, subscriptions)
        notifications = NotificationService(config, sender, catalog, customers, chat_sessions)

        logger.info("Service container ready")

        return cls(
            config=config,
            sender=sender,
            customers=customers,
            catalog=catalog,
            subscriptions=subscriptions,
            chat_sessions=chat_sessions,
            correlator=correlator,
            command_router=command_router,
            notifications=notifications,
        )
