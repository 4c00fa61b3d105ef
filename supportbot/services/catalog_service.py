"""Catalog service - read-only queries over storefront products and orders."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import func, select

from database.db import db
from database.models import Order, OrderStatusHistory, OrderTracking, Product
from supportbot.services.customer_service import normalize_email

logger = logging.getLogger(__name__)

ORDERS_BY_EMAIL_LIMIT = 10
CATEGORY_PRODUCTS_LIMIT = 10
STATUS_HISTORY_LIMIT = 3


@dataclass(frozen=True)
class OrderLookup:
    status: str  # found|ambiguous|missing
    order: dict | None = None


def _product_dict(p: Product) -> dict:
    return {
        "id": str(p.id),
        "name": str(p.name),
        "description": p.description,
        "category": p.category,
        "price": float(p.price or 0),
        "stock_quantity": int(p.stock_quantity or 0),
        "is_active": bool(p.is_active),
    }


def _order_dict(o: Order) -> dict:
    return {
        "id": str(o.id),
        "customer_name": o.customer_name,
        "customer_email": o.customer_email,
        "status": str(o.status or "pending"),
        "payment_status": o.payment_status,
        "total_amount": float(o.total_amount or 0),
        "delivery_method": o.delivery_method,
        "telegram_chat_id": int(o.telegram_chat_id) if o.telegram_chat_id is not None else None,
        "created_at": o.created_at,
    }


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogService:
    async def products_page(self, *, page: int, page_size: int) -> dict:
        """
        One page of active products ordered by name.

        The page count is recomputed on every call and `page` is clamped into range,
        so stale buttons from an older render still land on a real page.
        """
        page_size = max(1, int(page_size))
        async with db.session() as session:
            total = await session.execute(
                select(func.count()).select_from(Product).where(Product.is_active.is_(True))
            )
            count = int(total.scalar() or 0)
            total_pages = max(1, math.ceil(count / page_size))
            page = max(0, min(int(page), total_pages - 1))

            result = await session.execute(
                select(Product)
                .where(Product.is_active.is_(True))
                .order_by(Product.name.asc(), Product.id.asc())
                .offset(page * page_size)
                .limit(page_size)
            )
            products = [_product_dict(p) for p in result.scalars().all()]
        return {"products": products, "page": page, "total_pages": total_pages, "total": count}

    async def categories(self) -> list[str]:
        async with db.session() as session:
            result = await session.execute(
                select(Product.category)
                .where(Product.category.is_not(None), Product.is_active.is_(True))
                .distinct()
                .order_by(Product.category.asc())
            )
            return [str(r[0]) for r in result.all() if r[0]]

    async def products_in_category(self, category: str, *, limit: int = CATEGORY_PRODUCTS_LIMIT) -> list[dict]:
        async with db.session() as session:
            result = await session.execute(
                select(Product)
                .where(Product.category == category, Product.is_active.is_(True))
                .order_by(Product.name.asc())
                .limit(limit)
            )
            return [_product_dict(p) for p in result.scalars().all()]

    async def low_stock_products(self, *, threshold: int) -> list[dict]:
        """Active products with 0 < stock <= threshold."""
        async with db.session() as session:
            result = await session.execute(
                select(Product)
                .where(
                    Product.is_active.is_(True),
                    Product.stock_quantity > 0,
                    Product.stock_quantity <= int(threshold),
                )
                .order_by(Product.stock_quantity.asc(), Product.name.asc())
            )
            return [_product_dict(p) for p in result.scalars().all()]

    async def subscription_candidates(self, *, threshold: int, limit: int = 20) -> list[dict]:
        """Active products that are sold out or nearly so."""
        async with db.session() as session:
            result = await session.execute(
                select(Product)
                .where(Product.is_active.is_(True), Product.stock_quantity <= int(threshold))
                .order_by(Product.stock_quantity.asc(), Product.name.asc())
                .limit(limit)
            )
            return [_product_dict(p) for p in result.scalars().all()]

    async def orders_by_email(self, email: str, *, limit: int = ORDERS_BY_EMAIL_LIMIT) -> list[dict]:
        """Most recent orders for an email, compared case-insensitively."""
        email = normalize_email(email)
        if not email:
            return []
        async with db.session() as session:
            result = await session.execute(
                select(Order)
                .where(func.lower(func.trim(Order.customer_email)) == email)
                .order_by(Order.created_at.desc())
                .limit(limit)
            )
            orders = [_order_dict(o) for o in result.scalars().all()]
            for order in orders:
                tracking = await self._latest_tracking(session, order["id"])
                order["tracking_number"] = tracking["tracking_number"] if tracking else None
        return orders

    async def find_order_by_prefix(self, prefix: str) -> OrderLookup:
        """Case-insensitive prefix match on the order id; more than one hit is ambiguous."""
        prefix = (prefix or "").strip().lstrip("#").lower()
        if not prefix:
            return OrderLookup("missing")
        async with db.session() as session:
            result = await session.execute(
                select(Order)
                .where(func.lower(Order.id).like(f"{_escape_like(prefix)}%", escape="\\"))
                .order_by(Order.created_at.desc())
                .limit(2)
            )
            matches = list(result.scalars().all())
            if not matches:
                return OrderLookup("missing")
            if len(matches) > 1:
                return OrderLookup("ambiguous")
            return OrderLookup("found", await self._order_detail(session, matches[0]))

    async def get_order(self, order_id: str) -> dict | None:
        async with db.session() as session:
            order = await session.get(Order, str(order_id))
            if order is None:
                return None
            return await self._order_detail(session, order)

    async def _order_detail(self, session, order: Order) -> dict:
        detail = _order_dict(order)
        detail["tracking"] = await self._latest_tracking(session, detail["id"])
        result = await session.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == detail["id"])
            .order_by(OrderStatusHistory.changed_at.desc(), OrderStatusHistory.id.desc())
            .limit(STATUS_HISTORY_LIMIT)
        )
        detail["history"] = [
            {"old_status": h.old_status, "new_status": h.new_status, "changed_at": h.changed_at}
            for h in result.scalars().all()
        ]
        return detail

    async def _latest_tracking(self, session, order_id: str) -> dict | None:
        result = await session.execute(
            select(OrderTracking)
            .where(OrderTracking.order_id == str(order_id))
            .order_by(OrderTracking.created_at.desc(), OrderTracking.id.desc())
            .limit(1)
        )
        t = result.scalar_one_or_none()
        if t is None:
            return None
        return {
            "courier": t.courier,
            "tracking_number": t.tracking_number,
            "estimated_delivery_date": t.estimated_delivery_date,
            "last_location": t.last_location,
        }
