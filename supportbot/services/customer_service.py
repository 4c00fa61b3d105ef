"""Customer service - bot-linked shoppers, their conversation state and notification flags."""

from __future__ import annotations

import logging

from sqlalchemy import select

from database.db import db
from database.models import AccountUser, TelegramCustomer, TelegramSupportMessage, default_notification_preferences
from supportbot.services.conversation import ConversationState
from supportbot.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

PREFERENCE_KEYS = ("orders", "promotions", "stock_alerts")


def normalize_email(email: str | None) -> str | None:
    email = (email or "").strip().lower()
    return email or None


def _customer_dict(c: TelegramCustomer) -> dict:
    return {
        "chat_id": int(c.chat_id),
        "username": c.username,
        "first_name": c.first_name,
        "last_name": c.last_name,
        "email": c.email,
        "phone": c.phone,
        "notification_preferences": _merged_preferences(c.notification_preferences),
        "conversation_state": ConversationState.parse(c.conversation_state),
        "created_at": c.created_at,
        "last_interaction": c.last_interaction,
    }


def _merged_preferences(stored: dict | None) -> dict:
    prefs = default_notification_preferences()
    if isinstance(stored, dict):
        for key in PREFERENCE_KEYS:
            if key in stored:
                prefs[key] = bool(stored[key])
    return prefs


class CustomerService:
    async def touch(
        self,
        *,
        chat_id: int,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> dict:
        """Upsert the customer for an inbound interaction and bump `last_interaction`."""
        now = utcnow()
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            if not customer:
                customer = TelegramCustomer(
                    chat_id=int(chat_id),
                    username=username,
                    first_name=first_name,
                    last_name=last_name,
                    notification_preferences=default_notification_preferences(),
                    conversation_state=ConversationState.IDLE.value,
                    created_at=now,
                    last_interaction=now,
                )
                session.add(customer)
                await session.flush()
                return _customer_dict(customer)

            if username is not None:
                customer.username = username
            if first_name is not None:
                customer.first_name = first_name
            if last_name is not None:
                customer.last_name = last_name
            customer.last_interaction = now
            return _customer_dict(customer)

    async def get(self, chat_id: int) -> dict | None:
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            return _customer_dict(customer) if customer else None

    async def get_state(self, chat_id: int) -> ConversationState:
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            if not customer:
                return ConversationState.IDLE
            return ConversationState.parse(customer.conversation_state)

    async def set_state(self, chat_id: int, state: ConversationState) -> None:
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            if not customer:
                customer = TelegramCustomer(
                    chat_id=int(chat_id),
                    notification_preferences=default_notification_preferences(),
                    created_at=utcnow(),
                    last_interaction=utcnow(),
                )
                session.add(customer)
            customer.conversation_state = ConversationState(state).value

    async def get_preferences(self, chat_id: int) -> dict:
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            return _merged_preferences(customer.notification_preferences if customer else None)

    async def toggle_preference(self, chat_id: int, key: str) -> dict:
        """
        Flip one notification flag and return the flags as written.

        Unknown keys leave the stored flags untouched.
        """
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            if not customer:
                customer = TelegramCustomer(
                    chat_id=int(chat_id),
                    notification_preferences=default_notification_preferences(),
                    conversation_state=ConversationState.IDLE.value,
                    created_at=utcnow(),
                    last_interaction=utcnow(),
                )
                session.add(customer)

            prefs = _merged_preferences(customer.notification_preferences)
            if key not in PREFERENCE_KEYS:
                logger.debug(f"Ignoring unknown preference key {key!r} for chat {chat_id}")
                return prefs

            prefs[key] = not prefs[key]
            # Assign a new dict so the JSON column is flagged dirty.
            customer.notification_preferences = dict(prefs)
            return prefs

    async def link_email(self, chat_id: int, email: str) -> str:
        email = normalize_email(email)
        if not email:
            raise ValueError("Email is required")
        async with db.session() as session:
            customer = await session.get(TelegramCustomer, int(chat_id))
            if not customer:
                customer = TelegramCustomer(
                    chat_id=int(chat_id),
                    notification_preferences=default_notification_preferences(),
                    conversation_state=ConversationState.IDLE.value,
                    created_at=utcnow(),
                )
                session.add(customer)
            customer.email = email
            customer.last_interaction = utcnow()
        return email

    async def link_account(self, chat_id: int, account_id: str) -> str:
        """
        Attach the email of a storefront account to this chat.

        Raises:
            ValueError: If the account does not exist
        """
        async with db.session() as session:
            account = await session.get(AccountUser, str(account_id))
            if account is None or not account.email:
                raise ValueError("Unknown account")
            email = account.email
        linked = await self.link_email(chat_id, email)
        logger.info(f"Linked chat {chat_id} to account {account_id}")
        return linked

    async def find_chat_ids_by_email(self, email: str) -> list[int]:
        email = normalize_email(email)
        if not email:
            return []
        async with db.session() as session:
            result = await session.execute(
                select(TelegramCustomer.chat_id).where(TelegramCustomer.email == email)
            )
            return [int(r[0]) for r in result.all()]

    async def list_customers(self, *, limit: int = 5000) -> list[dict]:
        limit = max(1, min(int(limit or 5000), 20000))
        async with db.session() as session:
            result = await session.execute(
                select(TelegramCustomer).order_by(TelegramCustomer.last_interaction.desc()).limit(limit)
            )
            return [_customer_dict(c) for c in result.scalars().all()]

    async def add_support_message(self, *, chat_id: int, text: str, username: str | None = None) -> int:
        """Queue free text for a human; returns the stored row id."""
        async with db.session() as session:
            row = TelegramSupportMessage(
                chat_id=int(chat_id),
                username=username,
                message_text=text,
                status="pending",
                created_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return int(row.id)
