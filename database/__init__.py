"""Database package - models and connection management."""
from database.db import Database, db
from database.models import (
    AbandonedCart,
    AccountUser,
    Base,
    ChatMessage,
    ChatSession,
    Order,
    OrderNotification,
    OrderStatusHistory,
    OrderTracking,
    Product,
    ProductSubscription,
    TelegramCustomer,
    TelegramSupportMessage,
)

__all__ = [
    "Database",
    "db",
    "Base",
    "ChatSession",
    "ChatMessage",
    "TelegramCustomer",
    "TelegramSupportMessage",
    "Product",
    "ProductSubscription",
    "AbandonedCart",
    "Order",
    "OrderTracking",
    "OrderStatusHistory",
    "AccountUser",
    "OrderNotification",
]
