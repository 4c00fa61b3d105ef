"""Database models - support chat relay, bot customers, and the storefront tables it reads."""
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from supportbot.utils.datetime_utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def default_notification_preferences() -> dict:
    return {"orders": True, "promotions": False, "stock_alerts": False}


class ChatSession(Base):
    """A website visitor's support conversation, relayed to the staff chat."""

    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    visitor_name = Column(String, nullable=True)
    visitor_email = Column(String, nullable=True)
    visitor_phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")  # active|waiting|closed
    started_at = Column(DateTime, default=utcnow)
    ended_at = Column(DateTime, nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    # Message id of the first relay post in the staff chat. Write-once join key for replies.
    telegram_thread_id = Column(String, nullable=True, unique=True)

    category = Column(String, nullable=True)
    priority = Column(String, nullable=True)  # low|medium|high|urgent
    assigned_to = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    is_starred = Column(Boolean, nullable=False, default=False)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)

    current_page = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_chat_sessions_status", "status", "last_message_at"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_chat_sessions_rating"),
    )

    def __repr__(self):
        return f"<ChatSession(id={self.id}, status={self.status}, thread={self.telegram_thread_id})>"


class ChatMessage(Base):
    """A single message inside a chat session."""

    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), ForeignKey("chat_sessions.id"), nullable=False)
    sender_type = Column(String, nullable=False)  # visitor|admin
    message_text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    is_read = Column(Boolean, nullable=False, default=False)
    attachment_url = Column(String, nullable=True)
    telegram_message_id = Column(String, nullable=True)  # Staff-chat copy, used for chained replies

    __table_args__ = (
        Index("idx_chat_messages_session", "session_id", "created_at"),
        Index("idx_chat_messages_tg", "telegram_message_id"),
    )


class TelegramCustomer(Base):
    """Bot-linked shopper identity (one row per private chat)."""

    __tablename__ = "telegram_customers"

    chat_id = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True)  # Normalised (trimmed, lower-case)
    phone = Column(String, nullable=True)

    notification_preferences = Column(JSON, nullable=False, default=default_notification_preferences)
    preferences = Column(JSON, nullable=True)
    conversation_state = Column(String, nullable=False, default="idle")

    created_at = Column(DateTime, default=utcnow)
    last_interaction = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_telegram_customers_email", "email"),
    )

    def __repr__(self):
        return f"<TelegramCustomer(chat_id={self.chat_id}, state={self.conversation_state})>"


class TelegramSupportMessage(Base):
    """Free text from the bot that was handed to a human."""

    __tablename__ = "telegram_support_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(BigInteger, nullable=False)
    username = Column(String, nullable=True)
    message_text = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending|answered
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_support_messages_status", "status", "created_at"),
    )


class Product(Base):
    """Storefront catalog row (maintained by the shop, read by the bot)."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class ProductSubscription(Base):
    """Back-in-stock request. `notified_at` NULL means the notification is pending."""

    __tablename__ = "product_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    telegram_chat_id = Column(BigInteger, nullable=True)
    customer_email = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    notified_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("uq_product_subscription", "product_id", "telegram_chat_id", unique=True),
        Index("idx_product_subscriptions_pending", "notified_at"),
    )


class AbandonedCart(Base):
    """Cart snapshot captured by the storefront when checkout is not completed."""

    __tablename__ = "abandoned_carts"

    id = Column(String(36), primary_key=True, default=_uuid)
    cart_items = Column(JSON, nullable=False, default=list)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    telegram_chat_id = Column(BigInteger, nullable=True)
    total_amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utcnow)
    reminded_at = Column(DateTime, nullable=True)
    recovered = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_abandoned_carts_pending", "recovered", "reminded_at", "created_at"),
    )


class Order(Base):
    """Storefront order (read-only here)."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=True)
    delivery_method = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    payment_status = Column(String, nullable=True)
    total_amount = Column(Float, nullable=False, default=0.0)
    telegram_chat_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_orders_email", "customer_email", "created_at"),
    )


class OrderTracking(Base):
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    courier = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True)
    estimated_delivery_date = Column(DateTime, nullable=True)
    last_location = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    old_status = Column(String, nullable=True)
    new_status = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime, default=utcnow)


class AccountUser(Base):
    """Mirror of hosted auth accounts (id -> email) used to resolve account-link codes."""

    __tablename__ = "account_users"

    id = Column(String(36), primary_key=True)
    email = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class OrderNotification(Base):
    """Log of order status messages sent to customers."""

    __tablename__ = "telegram_order_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), nullable=False)
    chat_id = Column(BigInteger, nullable=False)
    notification_type = Column(String, nullable=False, default="status_update")
    message_text = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=utcnow)
