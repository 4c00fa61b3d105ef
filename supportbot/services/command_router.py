"""Command router - turns private-chat text and button presses into exactly one bot reply."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from aiogram.types import InlineKeyboardMarkup

from supportbot.config import Config
from supportbot.services.catalog_service import CatalogService
from supportbot.services.conversation import (
    ConversationState,
    Intent,
    Transition,
    callback_transition,
    text_transition,
)
from supportbot.services.customer_service import CustomerService, normalize_email
from supportbot.services.subscription_service import SubscriptionService
from supportbot.utils import keyboards, messages
from supportbot.utils.linking import decode_link_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BotReply:
    text: str
    reply_markup: Optional[InlineKeyboardMarkup] = None
    # Callback replies re-render the pressed message instead of posting a new one.
    edit_in_place: bool = False
    # Short toast shown on the button press.
    notice: Optional[str] = None


class CommandRouter:
    def __init__(
        self,
        config: Config,
        customers: CustomerService,
        catalog: CatalogService,
        subscriptions: SubscriptionService,
    ):
        self.config = config
        self.customers = customers
        self.catalog = catalog
        self.subscriptions = subscriptions

    async def handle_text(
        self,
        *,
        chat_id: int,
        text: str,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> BotReply:
        customer = await self.customers.touch(
            chat_id=chat_id, username=username, first_name=first_name, last_name=last_name
        )
        state = customer["conversation_state"]
        transition = text_transition(state, text)
        logger.debug(f"chat={chat_id} state={state.value} intent={transition.intent.value}")

        reply, hit = await self._dispatch(chat_id, transition, customer)
        await self._store_state(chat_id, state, transition.next_state if hit else state)
        return reply

    async def handle_callback(
        self,
        *,
        chat_id: int,
        data: str,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Optional[BotReply]:
        """Returns None for callbacks that only need acknowledging (`noop`, stale buttons)."""
        customer = await self.customers.touch(
            chat_id=chat_id, username=username, first_name=first_name, last_name=last_name
        )
        state = customer["conversation_state"]
        transition = callback_transition(state, data)
        if transition.intent == Intent.NOOP:
            return None

        reply, hit = await self._dispatch(chat_id, transition, customer)
        await self._store_state(chat_id, state, transition.next_state if hit else state)
        return BotReply(text=reply.text, reply_markup=reply.reply_markup, edit_in_place=True, notice=reply.notice)

    async def _store_state(
        self, chat_id: int, current: ConversationState, next_state: ConversationState
    ) -> None:
        if next_state != current:
            await self.customers.set_state(chat_id, next_state)

    async def _dispatch(self, chat_id: int, transition: Transition, customer: dict) -> tuple[BotReply, bool]:
        """Returns the reply and whether the intent succeeded (a miss keeps the pending question)."""
        intent = transition.intent
        arg = transition.argument or ""
        site = self.config.website_url

        if intent == Intent.WELCOME:
            return BotReply(messages.welcome_message(), keyboards.main_menu_keyboard(site)), True

        if intent == Intent.LINK_ACCOUNT:
            return await self._link_account(chat_id, arg), True

        if intent == Intent.PRODUCTS:
            return await self._products(int(arg) if arg.isdigit() else 0), True

        if intent == Intent.ASK_EMAIL:
            return BotReply(messages.ask_email_message(), keyboards.back_to_menu_keyboard()), True

        if intent == Intent.ORDERS_BY_EMAIL:
            return await self._orders_by_email(chat_id, arg)

        if intent == Intent.ASK_ORDER_ID:
            return BotReply(messages.ask_order_id_message(), keyboards.ask_order_id_keyboard()), True

        if intent == Intent.TRACK_ORDER:
            return await self._track_order(arg)

        if intent == Intent.SUPPORT:
            return BotReply(messages.support_message(), keyboards.support_keyboard()), True

        if intent == Intent.SUBSCRIBE_LIST:
            products = await self.catalog.subscription_candidates(threshold=self.config.low_stock_threshold)
            return (
                BotReply(messages.subscribe_candidates_message(products), keyboards.subscribe_keyboard(products)),
                True,
            )

        if intent == Intent.SUBSCRIBE:
            return await self._subscribe(chat_id, arg, customer.get("email")), True

        if intent == Intent.PREFERENCES:
            prefs = await self.customers.get_preferences(chat_id)
            return BotReply(messages.preferences_message(prefs), keyboards.preferences_keyboard(prefs)), True

        if intent == Intent.TOGGLE_PREFERENCE:
            prefs = await self.customers.toggle_preference(chat_id, arg)
            return (
                BotReply(
                    messages.preferences_message(prefs),
                    keyboards.preferences_keyboard(prefs),
                    notice="✅ Preference updated!",
                ),
                True,
            )

        if intent == Intent.CATEGORIES:
            categories = await self.catalog.categories()
            return (
                BotReply(messages.categories_message(categories), keyboards.categories_keyboard(categories)),
                True,
            )

        if intent == Intent.CATEGORY_PRODUCTS:
            products = await self.catalog.products_in_category(arg)
            return (
                BotReply(messages.category_products_message(arg, products), keyboards.category_products_keyboard()),
                True,
            )

        # FORWARD_TO_SUPPORT
        await self.customers.add_support_message(chat_id=chat_id, text=arg, username=customer.get("username"))
        logger.info(f"Forwarded message from chat {chat_id} to the support inbox")
        return BotReply(messages.forwarded_to_support_message(), keyboards.main_menu_keyboard(site)), True

    async def _link_account(self, chat_id: int, code: str) -> BotReply:
        try:
            account_id = decode_link_code(code)
            email = await self.customers.link_account(chat_id, account_id)
        except ValueError as e:
            logger.info(f"Account link failed for chat {chat_id}: {e}")
            return BotReply(messages.link_failed_message(), keyboards.back_to_menu_keyboard())
        return BotReply(messages.link_success_message(email), keyboards.main_menu_keyboard(self.config.website_url))

    async def _products(self, page: int) -> BotReply:
        result = await self.catalog.products_page(page=page, page_size=self.config.products_page_size)
        if not result["products"]:
            return BotReply(messages.no_products_message(), keyboards.back_to_menu_keyboard())
        return BotReply(
            messages.products_page_message(result["products"]),
            keyboards.products_keyboard(result["page"], result["total_pages"], self.config.website_url),
        )

    async def _orders_by_email(self, chat_id: int, raw_email: str) -> tuple[BotReply, bool]:
        email = normalize_email(raw_email)
        orders = await self.catalog.orders_by_email(email or "")
        if not orders:
            return BotReply(messages.no_orders_message(), keyboards.back_to_menu_keyboard()), False
        await self.customers.link_email(chat_id, email)
        return (
            BotReply(messages.orders_list_message(orders), keyboards.orders_keyboard(email, self.config.website_url)),
            True,
        )

    async def _track_order(self, prefix: str) -> tuple[BotReply, bool]:
        lookup = await self.catalog.find_order_by_prefix(prefix)
        if lookup.status == "ambiguous":
            return BotReply(messages.order_ambiguous_message(prefix.strip()), keyboards.ask_order_id_keyboard()), False
        if lookup.status == "missing":
            return BotReply(messages.order_not_found_message(), keyboards.ask_order_id_keyboard()), False
        order = lookup.order
        return BotReply(messages.order_detail_message(order), keyboards.order_detail_keyboard(order["id"])), True

    async def _subscribe(self, chat_id: int, product_id: str, email: str | None) -> BotReply:
        try:
            result = await self.subscriptions.subscribe(chat_id=chat_id, product_id=product_id, email=email)
        except ValueError:
            return BotReply(messages.product_missing_message(), keyboards.back_to_menu_keyboard())
        return BotReply(
            messages.subscribed_message(result["product_name"]),
            keyboards.back_to_menu_keyboard(),
            notice="🔔 Subscribed!",
        )
