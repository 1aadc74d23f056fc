"""
PharaohVault — Order Service
Read-only access to payment records and the post-checkout settlement poll.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFoundError
from app.core.security import AuthSession, ensure_owner_or_admin
from app.models.enums import OrderStatus
from app.models.order import Order

logger = logging.getLogger(__name__)


async def get_order(db: AsyncSession, order_id: int, session: Optional[AuthSession] = None) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    if session is not None:
        ensure_owner_or_admin(session, order.user_id)
    return order


async def query_orders(
    db: AsyncSession,
    user_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    checkout_session_id: Optional[str] = None,
    limit: int = 100,
) -> List[Order]:
    query = select(Order).order_by(Order.created_at.desc()).limit(limit)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if subscription_id is not None:
        query = query.where(Order.subscription_id == subscription_id)
    if status is not None:
        query = query.where(Order.status == status)
    if checkout_session_id is not None:
        query = query.where(Order.stripe_checkout_session_id == checkout_session_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def wait_for_order_settlement(
    fetch_order: Callable[[], Awaitable[Optional[Order]]],
    interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """Poll an order on a fixed interval until its payment settles.

    Returns {"state": "success" | "review" | "missing", "order": order}.
    An order still pending after `max_attempts` extra polls needs review.
    """
    interval = settings.ORDER_POLL_INTERVAL_SECONDS if interval is None else interval
    max_attempts = settings.ORDER_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts

    attempt = 0
    while True:
        order = await fetch_order()
        if order is None:
            return {"state": "missing", "order": None}
        if order.payment_status == "pending" and attempt < max_attempts:
            attempt += 1
            await sleep(interval)
            continue
        if order.payment_status == "succeeded":
            return {"state": "success", "order": order}
        logger.info(f"Order {order.id} unsettled after {attempt} polls; flagged for review")
        return {"state": "review", "order": order}
