from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.core.errors import NotFoundError, PermissionDeniedError
from app.core.security import AuthSession
from app.models.enums import OrderStatus
from app.models.order import Order
from app.services.orders import get_order, query_orders, wait_for_order_settlement
from tests.conftest import make_subscription, make_user


def _fetcher(*statuses):
    orders = [SimpleNamespace(id=1, payment_status=s) if s else None for s in statuses]
    return AsyncMock(side_effect=orders)


async def test_settles_after_a_few_polls():
    fetch = _fetcher("pending", "pending", "succeeded")
    sleep = AsyncMock()

    outcome = await wait_for_order_settlement(fetch, interval=2.0, max_attempts=10, sleep=sleep)

    assert outcome["state"] == "success"
    assert fetch.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(2.0)


async def test_gives_up_after_max_attempts():
    fetch = _fetcher(*["pending"] * 4)
    sleep = AsyncMock()

    outcome = await wait_for_order_settlement(fetch, interval=1.0, max_attempts=3, sleep=sleep)

    assert outcome["state"] == "review"
    assert outcome["order"].payment_status == "pending"
    assert fetch.await_count == 4
    assert sleep.await_count == 3


async def test_failed_payment_needs_review_immediately():
    sleep = AsyncMock()
    outcome = await wait_for_order_settlement(_fetcher("failed"), interval=1.0, max_attempts=3, sleep=sleep)
    assert outcome["state"] == "review"
    assert sleep.await_count == 0


async def test_missing_order():
    outcome = await wait_for_order_settlement(_fetcher(None), sleep=AsyncMock())
    assert outcome == {"state": "missing", "order": None}


async def _order(db, subscription, **fields):
    values = dict(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        amount=100.0,
        status=OrderStatus.paid,
        payment_status="succeeded",
    )
    values.update(fields)
    order = Order(**values)
    db.add(order)
    await db.flush()
    return order


async def test_query_orders_filters(db, user):
    first = await make_subscription(db, user)
    second = await make_subscription(db, user, metal="silver")
    await _order(db, first, stripe_invoice_id="in_a")
    await _order(db, first, stripe_invoice_id="in_b", status=OrderStatus.pending, payment_status="pending")
    await _order(db, second, stripe_invoice_id="in_c", stripe_checkout_session_id="cs_1")

    assert len(await query_orders(db, user_id=user.id)) == 3
    assert len(await query_orders(db, subscription_id=first.id)) == 2
    assert len(await query_orders(db, status=OrderStatus.pending)) == 1
    assert len(await query_orders(db, checkout_session_id="cs_1")) == 1
    assert len(await query_orders(db, limit=1)) == 1


async def test_get_order_checks_owner(db, user, user_session):
    subscription = await make_subscription(db, user)
    order = await _order(db, subscription)

    assert (await get_order(db, order.id, user_session)).id == order.id

    stranger = await make_user(db, email="other@example.com")
    with pytest.raises(PermissionDeniedError):
        await get_order(db, order.id, AuthSession(stranger, "t"))
    with pytest.raises(NotFoundError):
        await get_order(db, 12345)
