"""Notification dispatcher - batch sweeps (carts, stock) and order status messages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, update

from database.db import db
from database.models import AbandonedCart, OrderNotification, Product, ProductSubscription
from supportbot.config import Config
from supportbot.services.catalog_service import CatalogService
from supportbot.services.chat_session_service import ChatSessionService
from supportbot.services.customer_service import CustomerService
from supportbot.services.sender import OutboundSender
from supportbot.utils import keyboards, messages
from supportbot.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

ABANDONED_CART_BATCH = 50
BACK_IN_STOCK_BATCH = 200


@dataclass(frozen=True)
class SweepResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def is_cart_eligible(cart, *, now: datetime, threshold_minutes: int) -> bool:
    """Python mirror of the abandoned-cart candidate query."""
    created_at = getattr(cart, "created_at", None)
    return (
        getattr(cart, "reminded_at", None) is None
        and not bool(getattr(cart, "recovered", False))
        and getattr(cart, "telegram_chat_id", None) is not None
        and created_at is not None
        and created_at < now - timedelta(minutes=int(threshold_minutes))
    )


class NotificationService:
    """
    Every sweep sends sequentially with a fixed pause between sends, counts per-candidate
    failures without stopping, and writes its processed marker only after a successful send.
    A crash between send and marker means the candidate is retried on the next run.
    """

    def __init__(
        self,
        config: Config,
        sender: OutboundSender,
        catalog: CatalogService,
        customers: CustomerService,
        chat_sessions: ChatSessionService,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.sender = sender
        self.catalog = catalog
        self.customers = customers
        self.chat_sessions = chat_sessions
        self._sleep = sleep

    async def _pause(self, index: int) -> None:
        if index > 0 and self.config.sweep_send_delay > 0:
            await self._sleep(self.config.sweep_send_delay)

    # ---- abandoned carts ----

    async def run_abandoned_cart_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        cutoff = now - timedelta(minutes=self.config.abandoned_cart_minutes)

        async with db.session() as session:
            result = await session.execute(
                select(AbandonedCart)
                .where(
                    AbandonedCart.reminded_at.is_(None),
                    AbandonedCart.recovered.is_(False),
                    AbandonedCart.telegram_chat_id.is_not(None),
                    AbandonedCart.created_at < cutoff,
                )
                .order_by(AbandonedCart.created_at.asc())
                .limit(ABANDONED_CART_BATCH)
            )
            carts = [
                {
                    "id": str(c.id),
                    "chat_id": int(c.telegram_chat_id),
                    "customer_name": c.customer_name,
                    "items": list(c.cart_items or []) if isinstance(c.cart_items, list) else [],
                    "total_amount": c.total_amount,
                }
                for c in result.scalars().all()
            ]

        succeeded = failed = 0
        for index, cart in enumerate(carts):
            await self._pause(index)
            try:
                text = messages.abandoned_cart_message(cart["customer_name"], cart["items"], cart["total_amount"])
                await self.sender.send(cart["chat_id"], text)
                async with db.session() as session:
                    await session.execute(
                        update(AbandonedCart)
                        .where(AbandonedCart.id == cart["id"], AbandonedCart.reminded_at.is_(None))
                        .values(reminded_at=utcnow())
                    )
                succeeded += 1
            except Exception as e:
                failed += 1
                logger.warning(f"Abandoned-cart reminder failed cart={cart['id']} chat={cart['chat_id']}: {e}")

        sweep = SweepResult(attempted=len(carts), succeeded=succeeded, failed=failed)
        logger.info(f"Abandoned-cart sweep: {sweep}")
        return sweep

    # ---- low stock (staff digest) ----

    async def run_low_stock_alert(self) -> SweepResult:
        products = await self.catalog.low_stock_products(threshold=self.config.low_stock_threshold)
        if not products:
            return SweepResult()
        if self.config.admin_chat_id is None:
            logger.warning(f"{len(products)} products are low on stock but TELEGRAM_CHAT_ID is not set")
            return SweepResult()

        try:
            await self.sender.send(self.config.admin_chat_id, messages.low_stock_alert_message(products))
        except Exception as e:
            logger.warning(f"Low-stock alert failed: {e}")
            return SweepResult(attempted=1, succeeded=0, failed=1)
        logger.info(f"Low-stock alert sent for {len(products)} products")
        return SweepResult(attempted=1, succeeded=1, failed=0)

    # ---- back in stock ----

    async def run_back_in_stock_sweep(self, product_id: Optional[str] = None) -> SweepResult:
        """Notify pending subscribers of in-stock products, optionally for one product only."""
        async with db.session() as session:
            query = (
                select(ProductSubscription, Product)
                .join(Product, Product.id == ProductSubscription.product_id)
                .where(
                    ProductSubscription.notified_at.is_(None),
                    ProductSubscription.telegram_chat_id.is_not(None),
                    Product.is_active.is_(True),
                    Product.stock_quantity > 0,
                )
            )
            if product_id is not None:
                query = query.where(Product.id == str(product_id))
            result = await session.execute(query.order_by(ProductSubscription.id.asc()).limit(BACK_IN_STOCK_BATCH))
            pending = [
                {
                    "id": int(sub.id),
                    "chat_id": int(sub.telegram_chat_id),
                    "product": {"id": str(product.id), "name": str(product.name), "price": float(product.price or 0)},
                }
                for sub, product in result.all()
            ]

        succeeded = failed = 0
        for index, item in enumerate(pending):
            await self._pause(index)
            product = item["product"]
            try:
                await self.sender.send(
                    item["chat_id"],
                    messages.back_in_stock_message(product),
                    reply_markup=keyboards.back_in_stock_keyboard(product["id"], self.config.website_url),
                )
                async with db.session() as session:
                    await session.execute(
                        update(ProductSubscription)
                        .where(ProductSubscription.id == item["id"], ProductSubscription.notified_at.is_(None))
                        .values(notified_at=utcnow())
                    )
                succeeded += 1
            except Exception as e:
                failed += 1
                logger.warning(f"Back-in-stock notice failed sub={item['id']} chat={item['chat_id']}: {e}")

        sweep = SweepResult(attempted=len(pending), succeeded=succeeded, failed=failed)
        logger.info(f"Back-in-stock sweep (product={product_id or 'all'}): {sweep}")
        return sweep

    # ---- idle chat sessions ----

    async def run_idle_session_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        closed = await self.chat_sessions.close_idle_sessions(
            idle_minutes=self.config.session_idle_minutes, now=now
        )
        return SweepResult(attempted=closed, succeeded=closed, failed=0)

    async def run_all(self) -> dict[str, SweepResult]:
        """Run every sweep once; one failing sweep does not stop the others."""
        results: dict[str, SweepResult] = {}
        for name in SWEEPS:
            try:
                results[name] = await self.run_sweep(name)
            except Exception as e:
                logger.error(f"Sweep {name} crashed: {e}", exc_info=True)
        return results

    async def run_sweep(self, name: str) -> SweepResult:
        if name == "abandoned-carts":
            return await self.run_abandoned_cart_sweep()
        if name == "low-stock":
            return await self.run_low_stock_alert()
        if name == "back-in-stock":
            return await self.run_back_in_stock_sweep()
        if name == "idle-sessions":
            return await self.run_idle_session_sweep()
        raise ValueError(f"Unknown sweep: {name}")

    # ---- order status ----

    async def notify_order_status(self, order_id: str) -> dict:
        """
        Send the order's current status to every linked chat that wants order updates.

        Platform errors propagate (the admin triggered this and should see the failure).

        Raises:
            ValueError: If the order does not exist
        """
        order = await self.catalog.get_order(order_id)
        if order is None:
            raise ValueError(f"Order {order_id} not found")

        chat_ids = await self.customers.find_chat_ids_by_email(order["customer_email"] or "")
        if order["telegram_chat_id"] is not None and order["telegram_chat_id"] not in chat_ids:
            chat_ids.append(order["telegram_chat_id"])

        text = messages.order_status_update_message(order)
        markup = keyboards.order_update_keyboard(order["id"], self.config.website_url)
        sent_to: list[int] = []
        skipped: list[int] = []
        for chat_id in chat_ids:
            prefs = await self.customers.get_preferences(chat_id)
            if not prefs.get("orders", True):
                skipped.append(chat_id)
                continue
            await self.sender.send(chat_id, text, reply_markup=markup)
            async with db.session() as session:
                session.add(
                    OrderNotification(
                        order_id=order["id"],
                        chat_id=int(chat_id),
                        notification_type="status_update",
                        message_text=text,
                        sent_at=utcnow(),
                    )
                )
            sent_to.append(chat_id)

        logger.info(f"Order {order['id']} status '{order['status']}' sent to {len(sent_to)} chats")
        return {"order_id": order["id"], "status": order["status"], "sent_to": sent_to, "skipped": skipped}


SWEEPS = ("abandoned-carts", "low-stock", "back-in-stock", "idle-sessions")
