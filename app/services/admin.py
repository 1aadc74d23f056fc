"""
PharaohVault — Admin Aggregation Service
Read-only rollups over users, subscriptions and orders. Nothing is cached:
every call re-reads and re-aggregates.
"""
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import Metal, OrderStatus, SubscriptionStatus
from app.models.order import Order
from app.models.subscription import Subscription
from app.models.user import User
from app.utils.units import convert_weight, trade_unit_for

# Subscriptions counted as active on dashboards. past_due is excluded until
# Stripe either recovers it to active or gives up on it.
ACTIVE_STATUSES = (
    SubscriptionStatus.active,
    SubscriptionStatus.trialing,
    SubscriptionStatus.canceling,
)


async def list_users_with_subscriptions(db: AsyncSession) -> List[dict]:
    users = (await db.execute(select(User).order_by(User.created_at.desc()))).scalars().all()
    subscriptions = (
        await db.execute(select(Subscription).order_by(Subscription.created_at.desc()))
    ).scalars().all()

    by_user: Dict[int, list] = {}
    for subscription in subscriptions:
        by_user.setdefault(subscription.user_id, []).append(subscription)
    return [{"user": user, "subscriptions": by_user.get(user.id, [])} for user in users]


async def _paid_total(db: AsyncSession, user_id=None) -> float:
    query = select(func.coalesce(func.sum(Order.amount), 0.0)).where(Order.status == OrderStatus.paid)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    return float((await db.execute(query)).scalar() or 0.0)


async def _accumulated_total(db: AsyncSession) -> float:
    query = select(func.coalesce(func.sum(Subscription.accumulated_value), 0.0))
    return float((await db.execute(query)).scalar() or 0.0)


async def _monthly_total(db: AsyncSession, user_id=None) -> float:
    query = select(
        func.coalesce(func.sum(Subscription.monthly_investment * Subscription.quantity), 0.0)
    ).where(Subscription.status.in_(ACTIVE_STATUSES))
    if user_id is not None:
        query = query.where(Subscription.user_id == user_id)
    return float((await db.execute(query)).scalar() or 0.0)


async def dashboard_stats(db: AsyncSession) -> dict:
    """Platform totals. total_invested is the value accumulated across every
    subscription; total_paid is what settled invoices brought in."""
    user_count = (await db.execute(select(func.count(User.id)))).scalar() or 0
    active_count = (
        await db.execute(
            select(func.count(Subscription.id)).where(Subscription.status.in_(ACTIVE_STATUSES))
        )
    ).scalar() or 0
    pending_count = (
        await db.execute(
            select(func.count(Subscription.id)).where(
                Subscription.status == SubscriptionStatus.pending_payment
            )
        )
    ).scalar() or 0

    return {
        "total_invested": round(await _accumulated_total(db), 2),
        "total_paid": round(await _paid_total(db), 2),
        "monthly_invested": round(await _monthly_total(db), 2),
        "user_count": user_count,
        "active_subscriptions": active_count,
        "pending_subscriptions": pending_count,
    }


async def user_stats(db: AsyncSession, user_id: int) -> dict:
    subscriptions = (
        await db.execute(select(Subscription).where(Subscription.user_id == user_id))
    ).scalars().all()

    accumulated_weight = {metal.value: 0.0 for metal in Metal}
    accumulated_value = 0.0
    for subscription in subscriptions:
        trade_unit = trade_unit_for(subscription.metal)
        accumulated_weight[subscription.metal.value] += convert_weight(
            subscription.accumulated_weight or 0.0, subscription.target_unit, trade_unit
        )
        accumulated_value += subscription.accumulated_value or 0.0

    return {
        "total_invested": round(accumulated_value, 2),
        "total_paid": round(await _paid_total(db, user_id), 2),
        "monthly_invested": round(await _monthly_total(db, user_id), 2),
        "accumulated_value": round(accumulated_value, 2),
        "accumulated_gold_grams": round(accumulated_weight[Metal.gold.value], 4),
        "accumulated_silver_ounces": round(accumulated_weight[Metal.silver.value], 4),
        "subscription_count": len(subscriptions),
        "active_subscriptions": sum(1 for s in subscriptions if s.status in ACTIVE_STATUSES),
    }
