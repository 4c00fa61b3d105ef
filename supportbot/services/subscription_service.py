"""Back-in-stock subscriptions keyed by (product, chat)."""

from __future__ import annotations

import logging

from sqlalchemy import select

from database.db import db
from database.models import Product, ProductSubscription
from supportbot.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class SubscriptionService:
    async def subscribe(self, *, chat_id: int, product_id: str, email: str | None = None) -> dict:
        """
        Upsert a subscription. Re-subscribing after a notification makes it pending again.

        Raises:
            ValueError: If the product does not exist or is inactive
        """
        now = utcnow()
        async with db.session() as session:
            product = await session.get(Product, str(product_id))
            if product is None or not product.is_active:
                raise ValueError("Unknown product")

            result = await session.execute(
                select(ProductSubscription).where(
                    ProductSubscription.product_id == str(product_id),
                    ProductSubscription.telegram_chat_id == int(chat_id),
                )
            )
            sub = result.scalar_one_or_none()
            if sub is None:
                sub = ProductSubscription(
                    product_id=str(product_id),
                    telegram_chat_id=int(chat_id),
                    customer_email=email,
                    created_at=now,
                    notified_at=None,
                )
                session.add(sub)
                created = True
            else:
                sub.notified_at = None
                if email:
                    sub.customer_email = email
                created = False

        logger.info(f"Chat {chat_id} subscribed to product {product_id} (new={created})")
        return {"product_id": str(product_id), "product_name": str(product.name), "created": created}

    async def pending_for_product(self, product_id: str) -> list[dict]:
        async with db.session() as session:
            result = await session.execute(
                select(ProductSubscription)
                .where(
                    ProductSubscription.product_id == str(product_id),
                    ProductSubscription.notified_at.is_(None),
                )
                .order_by(ProductSubscription.id.asc())
            )
            return [
                {"id": int(s.id), "telegram_chat_id": s.telegram_chat_id, "notified_at": s.notified_at}
                for s in result.scalars().all()
            ]
