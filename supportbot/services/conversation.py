"""Conversation state for the shop bot: what the bot last asked a chat, and pure transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from supportbot.utils.linking import extract_link_code


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_EMAIL = "awaiting_email"
    AWAITING_ORDER_ID = "awaiting_order_id"

    @classmethod
    def parse(cls, value: str | None) -> "ConversationState":
        try:
            return cls(value or cls.IDLE.value)
        except ValueError:
            return cls.IDLE


class Intent(str, Enum):
    WELCOME = "welcome"
    LINK_ACCOUNT = "link_account"
    PRODUCTS = "products"
    ASK_EMAIL = "ask_email"
    ORDERS_BY_EMAIL = "orders_by_email"
    ASK_ORDER_ID = "ask_order_id"
    TRACK_ORDER = "track_order"
    SUPPORT = "support"
    SUBSCRIBE_LIST = "subscribe_list"
    SUBSCRIBE = "subscribe"
    PREFERENCES = "preferences"
    TOGGLE_PREFERENCE = "toggle_preference"
    CATEGORIES = "categories"
    CATEGORY_PRODUCTS = "category_products"
    FORWARD_TO_SUPPORT = "forward_to_support"
    NOOP = "noop"


@dataclass(frozen=True)
class Transition:
    """
    Result of feeding one input to the state machine.

    `next_state` is the state to store once the intent is handled. Lookups that miss
    (unknown email, unknown order id) keep the current state instead so the user can retry.
    """

    intent: Intent
    argument: Optional[str] = None
    next_state: ConversationState = ConversationState.IDLE


_SIMPLE_COMMANDS = {
    "/help": Intent.WELCOME,
    "/products": Intent.PRODUCTS,
    "/support": Intent.SUPPORT,
    "/subscribe": Intent.SUBSCRIBE_LIST,
    "/notifications": Intent.PREFERENCES,
    "/categories": Intent.CATEGORIES,
}

_MENU_CALLBACKS = {
    "menu_main": Intent.WELCOME,
    "menu_support": Intent.SUPPORT,
    "menu_subscribe": Intent.SUBSCRIBE_LIST,
    "menu_notifications": Intent.PREFERENCES,
    "menu_categories": Intent.CATEGORIES,
}

_PREFIX_CALLBACKS = (
    ("orders_", Intent.ORDERS_BY_EMAIL),
    ("track_", Intent.TRACK_ORDER),
    ("subscribe_", Intent.SUBSCRIBE),
    ("toggle_", Intent.TOGGLE_PREFERENCE),
    ("category_", Intent.CATEGORY_PRODUCTS),
)


def _command_name(text: str) -> str:
    head = text.split(maxsplit=1)[0].lower()
    # /track@ShopBot -> /track
    return head.split("@", 1)[0]


def text_transition(state: ConversationState, text: str) -> Transition:
    """Map a private-chat text message to an intent. Any slash command drops the pending question."""
    text = (text or "").strip()

    if text.startswith("/"):
        command = _command_name(text)
        if command == "/start":
            code = extract_link_code(text)
            if code:
                return Transition(Intent.LINK_ACCOUNT, code)
            return Transition(Intent.WELCOME)
        if command == "/myorders":
            return Transition(Intent.ASK_EMAIL, next_state=ConversationState.AWAITING_EMAIL)
        if command == "/track":
            return Transition(Intent.ASK_ORDER_ID, next_state=ConversationState.AWAITING_ORDER_ID)
        if command in _SIMPLE_COMMANDS:
            return Transition(_SIMPLE_COMMANDS[command])
        return Transition(Intent.FORWARD_TO_SUPPORT, text)

    if state == ConversationState.AWAITING_EMAIL:
        if "@" in text:
            return Transition(Intent.ORDERS_BY_EMAIL, text)
        return Transition(Intent.FORWARD_TO_SUPPORT, text, ConversationState.AWAITING_EMAIL)

    if state == ConversationState.AWAITING_ORDER_ID:
        return Transition(Intent.TRACK_ORDER, text)

    return Transition(Intent.FORWARD_TO_SUPPORT, text)


def callback_transition(state: ConversationState, data: str) -> Transition:
    """Map inline-button callback data to an intent. Unknown data is a no-op that keeps state."""
    data = (data or "").strip()

    if data == "noop" or not data:
        return Transition(Intent.NOOP, next_state=state)
    if data in _MENU_CALLBACKS:
        return Transition(_MENU_CALLBACKS[data])
    if data == "menu_products":
        return Transition(Intent.PRODUCTS, "0")
    if data == "menu_orders":
        return Transition(Intent.ASK_EMAIL, next_state=ConversationState.AWAITING_EMAIL)
    if data == "menu_track":
        return Transition(Intent.ASK_ORDER_ID, next_state=ConversationState.AWAITING_ORDER_ID)
    if data.startswith("products_"):
        page = data[len("products_"):]
        return Transition(Intent.PRODUCTS, page if page.isdigit() else "0")

    for prefix, intent in _PREFIX_CALLBACKS:
        if data.startswith(prefix):
            argument = data[len(prefix):]
            if not argument:
                break
            return Transition(intent, argument)

    return Transition(Intent.NOOP, next_state=state)
