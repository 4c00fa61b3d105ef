"""Inline keyboards for the shop bot. Callback data stays within the 64-byte platform limit."""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from supportbot.utils.messages import PREFERENCE_LABELS

CALLBACK_DATA_LIMIT = 64


def fits_callback(data: str) -> bool:
    return len(data.encode("utf-8")) <= CALLBACK_DATA_LIMIT


def _main_menu_button() -> list[InlineKeyboardButton]:
    return [InlineKeyboardButton(text="🏠 Main Menu", callback_data="menu_main")]


def main_menu_keyboard(website_url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="🛍️ Browse Products", callback_data="menu_products"),
                InlineKeyboardButton(text="📦 My Orders", callback_data="menu_orders"),
            ],
            [
                InlineKeyboardButton(text="🔍 Track Order", callback_data="menu_track"),
                InlineKeyboardButton(text="💬 Support", callback_data="menu_support"),
            ],
            [
                InlineKeyboardButton(text="📂 Categories", callback_data="menu_categories"),
                InlineKeyboardButton(text="🔔 Notifications", callback_data="menu_notifications"),
            ],
            [InlineKeyboardButton(text="🌐 Visit Website", url=website_url)],
        ]
    )


def back_to_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[_main_menu_button()])


def products_keyboard(page: int, total_pages: int, website_url: str) -> InlineKeyboardMarkup:
    nav: list[InlineKeyboardButton] = []
    if page > 0:
        nav.append(InlineKeyboardButton(text="⬅️ Previous", callback_data=f"products_{page - 1}"))
    nav.append(InlineKeyboardButton(text=f"📄 {page + 1}/{total_pages}", callback_data="noop"))
    if page < total_pages - 1:
        nav.append(InlineKeyboardButton(text="Next ➡️", callback_data=f"products_{page + 1}"))
    return InlineKeyboardMarkup(
        inline_keyboard=[
            nav,
            [
                InlineKeyboardButton(text="🌐 View Full Catalog", url=f"{website_url}/shop"),
                *_main_menu_button(),
            ],
        ]
    )


def orders_keyboard(email: str, website_url: str) -> InlineKeyboardMarkup:
    rows = []
    refresh = f"orders_{email}"
    if fits_callback(refresh):
        rows.append([InlineKeyboardButton(text="🔄 Refresh Orders", callback_data=refresh)])
    rows.append(
        [
            InlineKeyboardButton(text="🌐 View on Website", url=f"{website_url}/my-orders"),
            *_main_menu_button(),
        ]
    )
    return InlineKeyboardMarkup(inline_keyboard=rows)


def ask_order_id_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📦 View All My Orders", callback_data="menu_orders")],
            _main_menu_button(),
        ]
    )


def order_detail_keyboard(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="🔄 Refresh Status", callback_data=f"track_{order_id}"),
                InlineKeyboardButton(text="💬 Contact Support", callback_data="menu_support"),
            ],
            _main_menu_button(),
        ]
    )


def support_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="📦 Track Order", callback_data="menu_track"),
                InlineKeyboardButton(text="🛍️ Browse Products", callback_data="menu_products"),
            ],
            _main_menu_button(),
        ]
    )


def subscribe_keyboard(products: list[dict]) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(text=f"🔔 {p['name']}", callback_data=f"subscribe_{p['id']}")]
        for p in products
        if fits_callback(f"subscribe_{p['id']}")
    ]
    rows.append(_main_menu_button())
    return InlineKeyboardMarkup(inline_keyboard=rows)


def preferences_keyboard(prefs: dict) -> InlineKeyboardMarkup:
    rows = []
    for key, label in PREFERENCE_LABELS.items():
        name = label.split(" ", 1)[1]
        text = f"🔕 Disable {name}" if prefs.get(key) else f"🔔 Enable {name}"
        rows.append([InlineKeyboardButton(text=text, callback_data=f"toggle_{key}")])
    rows.append(_main_menu_button())
    return InlineKeyboardMarkup(inline_keyboard=rows)


def categories_keyboard(categories: list[str]) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(text=f"📁 {c}", callback_data=f"category_{c}")]
        for c in categories
        if fits_callback(f"category_{c}")
    ]
    rows.append(_main_menu_button())
    return InlineKeyboardMarkup(inline_keyboard=rows)


def category_products_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔙 All Categories", callback_data="menu_categories")],
            _main_menu_button(),
        ]
    )


def back_in_stock_keyboard(product_id: str, website_url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🛒 View Product", url=f"{website_url}/product/{product_id}")],
            [InlineKeyboardButton(text="🛍️ Shop Now", url=website_url)],
        ]
    )


def order_update_keyboard(order_id: str, website_url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="📦 Track Order", callback_data=f"track_{order_id}"),
                InlineKeyboardButton(text="💬 Support", callback_data="menu_support"),
            ],
            [InlineKeyboardButton(text="🌐 View on Website", url=f"{website_url}/my-orders")],
        ]
    )
