from supportbot.services.conversation import (
    ConversationState,
    Intent,
    Transition,
    callback_transition,
    text_transition,
)

IDLE = ConversationState.IDLE
AWAITING_EMAIL = ConversationState.AWAITING_EMAIL
AWAITING_ORDER_ID = ConversationState.AWAITING_ORDER_ID


def test_start_and_help_show_welcome():
    assert text_transition(IDLE, "/start") == Transition(Intent.WELCOME)
    assert text_transition(IDLE, "/help") == Transition(Intent.WELCOME)
    assert text_transition(IDLE, "/start@ShopBot").intent == Intent.WELCOME


def test_start_with_link_payload():
    t = text_transition(IDLE, "/start link_YWJjLTEyMw")
    assert t.intent == Intent.LINK_ACCOUNT
    assert t.argument == "YWJjLTEyMw"


def test_myorders_asks_for_email():
    t = text_transition(IDLE, "/myorders")
    assert t.intent == Intent.ASK_EMAIL
    assert t.next_state == AWAITING_EMAIL


def test_email_while_awaiting_email():
    t = text_transition(AWAITING_EMAIL, "  Test@Example.com ")
    assert t.intent == Intent.ORDERS_BY_EMAIL
    assert t.argument == "Test@Example.com"
    assert t.next_state == IDLE


def test_non_email_while_awaiting_email_keeps_question():
    t = text_transition(AWAITING_EMAIL, "what is this?")
    assert t.intent == Intent.FORWARD_TO_SUPPORT
    assert t.next_state == AWAITING_EMAIL


def test_slash_command_resets_pending_question():
    assert text_transition(AWAITING_EMAIL, "/products").next_state == IDLE
    t = text_transition(AWAITING_ORDER_ID, "/myorders")
    assert t.intent == Intent.ASK_EMAIL
    assert t.next_state == AWAITING_EMAIL


def test_order_id_while_awaiting_order_id():
    t = text_transition(AWAITING_ORDER_ID, "ab12cd")
    assert t.intent == Intent.TRACK_ORDER
    assert t.argument == "ab12cd"


def test_free_text_when_idle_goes_to_support():
    t = text_transition(IDLE, "Do you ship to Durban?")
    assert t.intent == Intent.FORWARD_TO_SUPPORT
    assert t.argument == "Do you ship to Durban?"


def test_unknown_command_goes_to_support():
    assert text_transition(AWAITING_EMAIL, "/whatever").intent == Intent.FORWARD_TO_SUPPORT


def test_menu_callbacks():
    assert callback_transition(IDLE, "menu_main").intent == Intent.WELCOME
    assert callback_transition(IDLE, "menu_products") == Transition(Intent.PRODUCTS, "0")
    t = callback_transition(IDLE, "menu_track")
    assert (t.intent, t.next_state) == (Intent.ASK_ORDER_ID, AWAITING_ORDER_ID)


def test_prefixed_callbacks():
    assert callback_transition(IDLE, "products_3") == Transition(Intent.PRODUCTS, "3")
    assert callback_transition(IDLE, "products_x") == Transition(Intent.PRODUCTS, "0")
    assert callback_transition(IDLE, "toggle_stock_alerts") == Transition(Intent.TOGGLE_PREFERENCE, "stock_alerts")
    assert callback_transition(IDLE, "orders_a@b.co") == Transition(Intent.ORDERS_BY_EMAIL, "a@b.co")
    assert callback_transition(IDLE, "category_Shoes") == Transition(Intent.CATEGORY_PRODUCTS, "Shoes")


def test_noop_and_unknown_callbacks_keep_state():
    assert callback_transition(AWAITING_EMAIL, "noop") == Transition(Intent.NOOP, next_state=AWAITING_EMAIL)
    assert callback_transition(AWAITING_ORDER_ID, "bogus").next_state == AWAITING_ORDER_ID
    assert callback_transition(IDLE, "track_").intent == Intent.NOOP


def test_state_parse_falls_back_to_idle():
    assert ConversationState.parse(None) == IDLE
    assert ConversationState.parse("garbage") == IDLE
    assert ConversationState.parse("awaiting_email") == AWAITING_EMAIL
