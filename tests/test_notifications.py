from dataclasses import replace
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from aiogram.exceptions import TelegramForbiddenError
from sqlalchemy import select

from conftest import STAFF_CHAT_ID, sent_messages
from database.db import db
from database.models import AbandonedCart, Order, OrderNotification, Product, ProductSubscription, TelegramCustomer
from supportbot.services.notification_service import NotificationService, SweepResult, is_cart_eligible
from supportbot.utils.datetime_utils import utcnow


async def _add(*rows):
    async with db.session() as session:
        session.add_all(rows)


def _cart(chat_id, *, minutes_old, now, recovered=False, **kwargs):
    return AbandonedCart(
        cart_items=[{"name": "Mug", "quantity": 1, "price": 99}],
        customer_name="Sam",
        telegram_chat_id=chat_id,
        total_amount=99,
        created_at=now - timedelta(minutes=minutes_old),
        recovered=recovered,
        **kwargs,
    )


def _blocked(chat_ids):
    """send_message side effect that fails for the given chats."""
    counter = iter(range(2000, 3000))

    async def _send(**kwargs):
        if kwargs["chat_id"] in chat_ids:
            raise TelegramForbiddenError(method=MagicMock(), message="Forbidden: bot was blocked by the user")
        return MagicMock(message_id=next(counter))

    return _send


def test_cart_eligibility_boundary():
    now = utcnow()
    cart = SimpleNamespace(reminded_at=None, recovered=False, telegram_chat_id=1)
    assert not is_cart_eligible(
        SimpleNamespace(**vars(cart), created_at=now - timedelta(minutes=59)), now=now, threshold_minutes=60
    )
    assert is_cart_eligible(
        SimpleNamespace(**vars(cart), created_at=now - timedelta(minutes=61)), now=now, threshold_minutes=60
    )
    assert not is_cart_eligible(
        SimpleNamespace(**vars(cart), created_at=now - timedelta(minutes=60)), now=now, threshold_minutes=60
    )
    recovered = SimpleNamespace(reminded_at=None, recovered=True, telegram_chat_id=1, created_at=now - timedelta(days=1))
    assert not is_cart_eligible(recovered, now=now, threshold_minutes=60)


async def test_abandoned_cart_sweep_respects_threshold(container, bot):
    now = utcnow()
    await _add(
        _cart(101, minutes_old=59, now=now),
        _cart(102, minutes_old=61, now=now),
        _cart(103, minutes_old=61, now=now, recovered=True),
        _cart(None, minutes_old=300, now=now),
        _cart(104, minutes_old=300, now=now, reminded_at=now - timedelta(minutes=10)),
    )

    result = await container.notifications.run_abandoned_cart_sweep(now=now)

    assert result == SweepResult(attempted=1, succeeded=1, failed=0)
    assert [chat for chat, _ in sent_messages(bot)] == [102]
    async with db.session() as session:
        stamped = (
            await session.execute(select(AbandonedCart.telegram_chat_id).where(AbandonedCart.reminded_at.is_not(None)))
        ).scalars().all()
    assert sorted(stamped) == [102, 104]

    again = await container.notifications.run_abandoned_cart_sweep(now=now)
    assert again.attempted == 0


async def test_partial_batch_failure_is_counted_and_retried(container, bot):
    now = utcnow()
    await _add(*[_cart(chat, minutes_old=90 + chat, now=now) for chat in (1, 2, 3)])
    bot.send_message.side_effect = _blocked({2})

    result = await container.notifications.run_abandoned_cart_sweep(now=now)

    assert result == SweepResult(attempted=3, succeeded=2, failed=1)
    async with db.session() as session:
        pending = (
            await session.execute(select(AbandonedCart.telegram_chat_id).where(AbandonedCart.reminded_at.is_(None)))
        ).scalars().all()
    assert pending == [2]


async def test_back_in_stock_notifies_at_most_once(container, bot):
    await _add(Product(id="p-1", name="Kettle", price=300, stock_quantity=0))
    await container.subscriptions.subscribe(chat_id=501, product_id="p-1")

    assert (await container.notifications.run_back_in_stock_sweep()).attempted == 0

    async with db.session() as session:
        (await session.get(Product, "p-1")).stock_quantity = 4

    first = await container.notifications.run_back_in_stock_sweep()
    second = await container.notifications.run_back_in_stock_sweep()

    assert first == SweepResult(attempted=1, succeeded=1, failed=0)
    assert second.attempted == 0
    assert [chat for chat, _ in sent_messages(bot)] == [501]
    assert await container.subscriptions.pending_for_product("p-1") == []


async def test_back_in_stock_single_product_trigger(container, bot):
    await _add(
        Product(id="p-1", name="Kettle", price=300, stock_quantity=2),
        Product(id="p-2", name="Toaster", price=400, stock_quantity=2),
    )
    await container.subscriptions.subscribe(chat_id=501, product_id="p-1")
    await container.subscriptions.subscribe(chat_id=502, product_id="p-2")

    result = await container.notifications.run_back_in_stock_sweep("p-2")

    assert result.succeeded == 1
    assert [chat for chat, _ in sent_messages(bot)] == [502]
    assert len(await container.subscriptions.pending_for_product("p-1")) == 1


async def test_failed_restock_notice_stays_pending(container, bot):
    await _add(Product(id="p-1", name="Kettle", price=300, stock_quantity=1))
    await container.subscriptions.subscribe(chat_id=501, product_id="p-1")
    await container.subscriptions.subscribe(chat_id=502, product_id="p-1")
    bot.send_message.side_effect = _blocked({501})

    result = await container.notifications.run_back_in_stock_sweep()

    assert result == SweepResult(attempted=2, succeeded=1, failed=1)
    pending = await container.subscriptions.pending_for_product("p-1")
    assert [p["telegram_chat_id"] for p in pending] == [501]


async def test_low_stock_digest_goes_to_staff_chat(container, bot):
    await _add(
        Product(name="Almost gone", price=10, stock_quantity=2),
        Product(name="Sold out", price=10, stock_quantity=0),
        Product(name="Plenty", price=10, stock_quantity=50),
    )
    result = await container.notifications.run_low_stock_alert()

    assert result == SweepResult(attempted=1, succeeded=1, failed=0)
    ((chat_id, text),) = sent_messages(bot)
    assert chat_id == STAFF_CHAT_ID
    assert "Almost gone" in text
    assert "Sold out" not in text
    assert "Plenty" not in text


async def test_low_stock_with_nothing_low_sends_nothing(container, bot):
    await _add(Product(name="Plenty", price=10, stock_quantity=50))
    assert await container.notifications.run_low_stock_alert() == SweepResult()
    bot.send_message.assert_not_awaited()


async def test_order_status_respects_order_preference(container, bot):
    await _add(
        Order(id="o-1", customer_name="Jo", customer_email=" Jo@Example.com", status="shipped", telegram_chat_id=903),
        TelegramCustomer(chat_id=901, email="jo@example.com"),
        TelegramCustomer(
            chat_id=902,
            email="jo@example.com",
            notification_preferences={"orders": False, "promotions": False, "stock_alerts": False},
        ),
    )

    result = await container.notifications.notify_order_status("o-1")

    assert sorted(result["sent_to"]) == [901, 903]
    assert result["skipped"] == [902]
    assert "SHIPPED" in sent_messages(bot)[0][1]
    async with db.session() as session:
        logged = (await session.execute(select(OrderNotification.chat_id))).scalars().all()
    assert sorted(logged) == [901, 903]


async def test_order_status_unknown_order(container):
    with pytest.raises(ValueError):
        await container.notifications.notify_order_status("missing")


async def test_run_sweep_by_name(container):
    assert (await container.notifications.run_sweep("idle-sessions")).attempted == 0
    with pytest.raises(ValueError):
        await container.notifications.run_sweep("bogus")
    results = await container.notifications.run_all()
    assert set(results) == {"abandoned-carts", "low-stock", "back-in-stock", "idle-sessions"}


async def test_sweep_pauses_between_sends(container, config, bot):
    now = utcnow()
    await _add(*[_cart(chat, minutes_old=90 + chat, now=now) for chat in (1, 2, 3)])
    slept = []

    async def _record(seconds):
        slept.append(seconds)

    notifications = NotificationService(
        replace(config, sweep_send_delay_ms=200),
        container.sender,
        container.catalog,
        container.customers,
        container.chat_sessions,
        sleep=_record,
    )
    result = await notifications.run_abandoned_cart_sweep(now=now)

    assert result.succeeded == 3
    assert slept == [0.2, 0.2]
