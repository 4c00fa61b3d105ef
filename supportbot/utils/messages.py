"""Message templates for the shop bot and the staff relay (HTML parse mode)."""
from html import escape

STATUS_EMOJI = {
    "pending": "⏳",
    "processing": "⚙️",
    "confirmed": "✅",
    "shipped": "🚚",
    "out_for_delivery": "📦",
    "delivered": "🎉",
    "cancelled": "❌",
    "refunded": "💰",
}

STATUS_TEXT = {
    "pending": "Your order has been received and is awaiting processing.",
    "processing": "Great news! Your order is being prepared for shipment.",
    "confirmed": "Your order has been confirmed and will ship soon.",
    "shipped": "Your order is on its way!",
    "out_for_delivery": "Your order is out for delivery and will arrive soon!",
    "delivered": "Your order has been delivered! Enjoy your products!",
    "cancelled": "Your order has been cancelled.",
    "refunded": "Your order has been refunded.",
}

PREFERENCE_LABELS = {
    "orders": "📦 Order Updates",
    "promotions": "🎁 Promotions",
    "stock_alerts": "📢 Stock Alerts",
}


def _money(value) -> str:
    return f"R{float(value or 0):.2f}"


def _date(value) -> str:
    return value.strftime("%Y/%m/%d") if value else "-"


def short_id(value: str) -> str:
    return str(value)[:8]


def status_emoji(status: str) -> str:
    return STATUS_EMOJI.get(str(status or ""), "📦")


def _status_label(status: str) -> str:
    return escape(str(status or "unknown").upper().replace("_", " "))


# ---- bot replies ----

def welcome_message() -> str:
    """Welcome text for /start, /help and the main menu."""
    return """🔥 <b>Welcome to our shop!</b>

I'm your personal shopping assistant.

<b>What I can help you with:</b>
🛍️ Browse our product catalog
📦 Track and manage your orders
💬 Get instant customer support
🔔 Receive order status updates

Choose an option below to get started:"""


def link_success_message(email: str) -> str:
    return (
        "✅ <b>Account Successfully Linked!</b>\n\n"
        f"Your Telegram account is now connected to {escape(email)}\n\n"
        "You'll receive:\n🔔 Order status updates\n📦 Shipping notifications\n"
        "🎁 Exclusive promotions\n📢 Stock alerts\n\nUse the menu below to get started:"
    )


def link_failed_message() -> str:
    return "❌ Failed to link account. Please try again or contact support."


def no_products_message() -> str:
    return "😔 No products available at the moment. Check back soon!"


def products_page_message(products: list[dict]) -> str:
    lines = ["🛍️ <b>Our Products</b>", ""]
    for index, product in enumerate(products, start=1):
        stock = int(product.get("stock_quantity") or 0)
        lines.append(f"{index}. <b>{escape(product['name'])}</b>")
        lines.append(f"   💰 <b>{_money(product.get('price'))}</b>")
        lines.append(f"   ✅ Stock: {stock}" if stock > 0 else "   ❌ Out of Stock")
        if product.get("category"):
            lines.append(f"   📁 {escape(product['category'])}")
        lines.append("")
    return "\n".join(lines).rstrip()


def ask_email_message() -> str:
    return """📧 <b>Track Your Orders</b>

Please enter your email address to view your order history.

Format: your-email@example.com"""


def no_orders_message() -> str:
    return (
        "📭 No orders found for this email address.\n\n"
        "Make sure you used the same email when placing your order."
    )


def orders_list_message(orders: list[dict]) -> str:
    lines = ["📦 <b>Your Orders</b>", ""]
    for index, order in enumerate(orders, start=1):
        lines.append(f"{index}. <b>Order #{short_id(order['id'])}</b>")
        lines.append(f"   {status_emoji(order['status'])} Status: <b>{_status_label(order['status'])}</b>")
        lines.append(f"   💰 Total: {_money(order.get('total_amount'))}")
        lines.append(f"   💳 Payment: {escape(str(order.get('payment_status') or '-'))}")
        lines.append(f"   📅 {_date(order.get('created_at'))}")
        if order.get("tracking_number"):
            lines.append(f"   🔢 Tracking: {escape(order['tracking_number'])}")
        lines.append("")
    return "\n".join(lines).rstrip()


def ask_order_id_message() -> str:
    return """🔍 <b>Track Your Order</b>

Please send me your order number.

You can find it in your confirmation email.
Format: Just the order ID (e.g., 12345abc)"""


def order_not_found_message() -> str:
    return "❌ Order not found.\n\nPlease check your order ID and try again."


def order_ambiguous_message(prefix: str) -> str:
    return (
        f"🤔 More than one order starts with <code>{escape(prefix)}</code>.\n\n"
        "Please send a few more characters of your order ID."
    )


def order_detail_message(order: dict) -> str:
    lines = [
        f"📦 <b>Order #{short_id(order['id'])}</b>",
        "",
        f"{status_emoji(order['status'])} <b>Status: {_status_label(order['status'])}</b>",
        "",
        "<b>Order Details:</b>",
        f"💰 Total: {_money(order.get('total_amount'))}",
        f"💳 Payment: {escape(str(order.get('payment_status') or '-'))}",
        f"📅 Ordered: {_date(order.get('created_at'))}",
    ]

    tracking = order.get("tracking")
    if tracking:
        lines += ["", "<b>🚚 Shipping Information:</b>"]
        if tracking.get("courier"):
            lines.append(f"📮 Courier: {escape(tracking['courier'])}")
        if tracking.get("tracking_number"):
            lines.append(f"🔢 Tracking: {escape(tracking['tracking_number'])}")
        if tracking.get("estimated_delivery_date"):
            lines.append(f"📅 Estimated Delivery: {_date(tracking['estimated_delivery_date'])}")
        if tracking.get("last_location"):
            lines.append(f"📍 Last Location: {escape(tracking['last_location'])}")

    history = order.get("history") or []
    if history:
        lines += ["", "<b>📝 Status History:</b>"]
        for entry in history:
            lines.append(f"• {escape(str(entry['new_status']))} - {_date(entry.get('changed_at'))}")

    return "\n".join(lines)


def support_message() -> str:
    return """💬 <b>Customer Support</b>

Our support team is here to help!

<b>Quick Actions:</b>
• Ask a question (just type your message)
• Track an order
• Check delivery info
• Product inquiries

Just send me your message and our team will respond as soon as possible!"""


def forwarded_to_support_message() -> str:
    return (
        "✅ Thank you for your message!\n\n"
        "Our support team has been notified and will respond shortly.\n\n"
        "In the meantime, you can:"
    )


def subscribe_candidates_message(products: list[dict]) -> str:
    if not products:
        return "✅ All products are currently in stock!"
    lines = [
        "🔔 <b>Subscribe to Product Alerts</b>",
        "",
        "Tap a product to be notified when it is back in stock:",
        "",
    ]
    for product in products:
        lines.append(f"• {escape(product['name'])} ({int(product.get('stock_quantity') or 0)} left)")
    return "\n".join(lines)


def subscribed_message(product_name: str) -> str:
    return f"🔔 You'll be notified as soon as <b>{escape(product_name)}</b> is back in stock."


def product_missing_message() -> str:
    return "❌ That product is no longer available."


def preferences_message(prefs: dict) -> str:
    lines = ["🔔 <b>Notification Preferences</b>", ""]
    for key, label in PREFERENCE_LABELS.items():
        lines.append(f"{label}: {'✅ Enabled' if prefs.get(key) else '❌ Disabled'}")
    return "\n".join(lines)


def categories_message(categories: list[str]) -> str:
    if not categories:
        return "📂 No product categories yet."
    return "📂 <b>Product Categories</b>\n\nChoose a category to browse:"


def category_products_message(category: str, products: list[dict]) -> str:
    lines = [f"📁 <b>{escape(category)}</b>", ""]
    if not products:
        lines.append("No products in this category.")
    for index, product in enumerate(products, start=1):
        in_stock = int(product.get("stock_quantity") or 0) > 0
        lines.append(f"{index}. <b>{escape(product['name'])}</b>")
        lines.append(f"   💰 {_money(product.get('price'))}")
        lines.append(f"   {'✅ In Stock' if in_stock else '❌ Out of Stock'}")
        lines.append("")
    return "\n".join(lines).rstrip()


# ---- staff relay ----

def new_chat_header(
    *,
    session_id: str,
    message: str,
    visitor_name: str | None,
    visitor_email: str | None,
    visitor_phone: str | None = None,
    current_page: str | None = None,
) -> str:
    """First relay post for a widget session; its message id becomes the session's correlation id."""
    lines = [
        "🆕 <b>New Support Chat</b>",
        "",
        f"👤 <b>Name:</b> {escape(visitor_name or 'Anonymous')}",
        f"📧 <b>Email:</b> {escape(visitor_email or 'Not provided')}",
    ]
    if visitor_phone:
        lines.append(f"📱 <b>Phone:</b> {escape(visitor_phone)}")
    if current_page:
        lines.append(f"🔗 <b>Page:</b> {escape(current_page)}")
    lines += [
        "💬 <b>Message:</b>",
        escape(message),
        "",
        f"<i>Session ID: {short_id(session_id)}</i>",
        "<i>Reply to this message to answer the visitor.</i>",
    ]
    return "\n".join(lines)


def visitor_followup(visitor_name: str | None, message: str) -> str:
    return f"💬 <b>{escape(visitor_name or 'Visitor')}:</b>\n{escape(message)}"


def admin_reply_message(message: str) -> str:
    return f"💬 <b>Support Team:</b>\n{escape(message)}"


# ---- notifications ----

def abandoned_cart_message(customer_name: str | None, items: list, total_amount) -> str:
    lines = [
        "🛒 <b>You left items in your cart!</b>",
        "",
        f"Hi {escape(customer_name or 'there')}! 👋",
        "",
        f"You have {len(items)} item(s) waiting for you:",
        "",
    ]
    for item in items:
        if not isinstance(item, dict):
            continue
        name = escape(str(item.get("name") or "Item"))
        lines.append(f"• {name} x{item.get('quantity', 1)} - {_money(item.get('price'))}")
    lines += ["", f"💰 Total: {_money(total_amount)}", "", "Complete your order now before it sells out!"]
    return "\n".join(lines)


def low_stock_alert_message(products: list[dict]) -> str:
    lines = ["⚠️ <b>Low Stock Alert</b>", "", "The following products are running low:", ""]
    for product in products:
        lines.append(f"• <b>{escape(product['name'])}</b>")
        lines.append(f"  Stock: {int(product['stock_quantity'])} units")
        lines.append(f"  Price: {_money(product.get('price'))}")
        lines.append("")
    lines.append("Please restock soon to avoid out-of-stock situations.")
    return "\n".join(lines)


def back_in_stock_message(product: dict) -> str:
    return (
        "🎉 <b>Great News!</b>\n\n"
        f"<b>{escape(product['name'])}</b> is now back in stock!\n\n"
        f"💰 Price: {_money(product.get('price'))}\n📦 Available Now\n\n"
        "Don't miss out - get yours today!"
    )


def order_status_update_message(order: dict) -> str:
    status = str(order.get("status") or "")
    lines = [
        f"{status_emoji(status)} <b>Order Update</b>",
        "",
        f"<b>Order #{short_id(order['id'])}</b>",
        f"Status: <b>{_status_label(status)}</b>",
        "",
        STATUS_TEXT.get(status, "Your order status has been updated."),
    ]
    tracking = order.get("tracking")
    if tracking and tracking.get("tracking_number"):
        lines += ["", f"🔢 Tracking Number: <code>{escape(tracking['tracking_number'])}</code>"]
    if tracking and tracking.get("estimated_delivery_date"):
        lines.append(f"📅 Estimated Delivery: {_date(tracking['estimated_delivery_date'])}")
    return "\n".join(lines)
