"""
PharaohVault — Subscription Service
Queries and admin edits, monthly-investment changes, the pending-row
reconciliation sweep, best-effort Stripe sync and Stripe event handling.
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AppError, NotFoundError, StateConflictError, ValidationError
from app.core.security import AuthSession, ensure_owner_or_admin
from app.models.enums import OrderStatus, SubscriptionStatus
from app.models.order import Order
from app.models.subscription import Subscription
from app.services import billing
from app.services.lifecycle import can_modify, transition, validate_monthly_investment

logger = logging.getLogger(__name__)

# Stripe subscription statuses that map one-to-one onto ours
_STRIPE_STATUSES = {
    "incomplete": SubscriptionStatus.incomplete,
    "incomplete_expired": SubscriptionStatus.incomplete_expired,
    "trialing": SubscriptionStatus.trialing,
    "active": SubscriptionStatus.active,
    "past_due": SubscriptionStatus.past_due,
    "unpaid": SubscriptionStatus.unpaid,
    "canceled": SubscriptionStatus.canceled,
}


async def list_subscriptions(
    db: AsyncSession,
    user_id: Optional[int] = None,
    status: Optional[SubscriptionStatus] = None,
    metal: Optional[str] = None,
) -> List[Subscription]:
    query = select(Subscription).order_by(Subscription.created_at.desc())
    if user_id is not None:
        query = query.where(Subscription.user_id == user_id)
    if status is not None:
        query = query.where(Subscription.status == status)
    if metal is not None:
        query = query.where(Subscription.metal == metal)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_subscription(db: AsyncSession, subscription_id: int, session: Optional[AuthSession] = None) -> Subscription:
    result = await db.execute(select(Subscription).where(Subscription.id == subscription_id))
    subscription = result.scalar_one_or_none()
    if not subscription:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    if session is not None:
        ensure_owner_or_admin(session, subscription.user_id)
    return subscription


def _finite(raw, field: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: '{raw}'")
    if not math.isfinite(value):
        raise ValidationError(f"Invalid {field}: '{raw}'")
    return value


async def update_subscription(db: AsyncSession, subscription: Subscription, updates: dict) -> Subscription:
    """Admin edit. Status changes go through the transition graph and
    accumulation totals may never go negative or shrink on a live plan."""
    updates = dict(updates)
    new_status = updates.pop("status", None)

    for field in ("accumulated_value", "accumulated_weight"):
        if field not in updates or updates[field] is None:
            continue
        value = _finite(updates[field], field)
        if value < 0:
            raise ValidationError(f"{field} cannot be negative")
        if subscription.status == SubscriptionStatus.active and value < (getattr(subscription, field) or 0.0):
            raise ValidationError(f"{field} cannot decrease while the subscription is active")
        updates[field] = value

    if "target_weight" in updates and updates["target_weight"] is not None:
        updates["target_weight"] = _finite(updates["target_weight"], "target_weight")
        if updates["target_weight"] <= 0:
            raise ValidationError("Target weight must be greater than zero")
    if "monthly_investment" in updates and updates["monthly_investment"] is not None:
        updates["monthly_investment"] = validate_monthly_investment(updates["monthly_investment"])

    for field, value in updates.items():
        setattr(subscription, field, value)
    if new_status is not None:
        transition(subscription, new_status, reason="admin update")

    await db.flush()
    await db.refresh(subscription)
    return subscription


async def delete_subscription(db: AsyncSession, subscription: Subscription) -> None:
    await db.delete(subscription)
    await db.flush()


async def modify_monthly_investment(db: AsyncSession, subscription: Subscription, amount) -> Subscription:
    """Change the monthly contribution from the next billing cycle on."""
    if not can_modify(
        subscription.status,
        has_pending_cancellation=subscription.cancellation_request_id is not None,
        has_pending_withdrawal=subscription.withdrawal_request_id is not None,
    ):
        raise StateConflictError(
            "Cannot modify this subscription in its current state",
            details={"status": SubscriptionStatus(subscription.status).value},
        )
    value = validate_monthly_investment(amount)

    if subscription.stripe_subscription_id:
        await billing.update_subscription_amount(subscription.stripe_subscription_id, value)

    subscription.monthly_investment = value
    await db.flush()
    await db.refresh(subscription)
    logger.info(f"Subscription {subscription.id} monthly investment set to ${value:.2f} from next cycle")
    return subscription


def _pending_cutoff(older_than_hours: Optional[int], now: Optional[datetime]) -> Optional[datetime]:
    if older_than_hours is None:
        return None
    return (now or datetime.now(timezone.utc)) - timedelta(hours=older_than_hours)


async def delete_pending(db: AsyncSession, older_than_hours: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Bulk-delete `pending_payment` rows, optionally only those older than a cutoff."""
    query = delete(Subscription).where(Subscription.status == SubscriptionStatus.pending_payment)
    cutoff = _pending_cutoff(older_than_hours, now)
    if cutoff is not None:
        query = query.where(Subscription.created_at < cutoff)
    result = await db.execute(query)
    await db.flush()
    logger.info(f"Deleted {result.rowcount} pending subscriptions")
    return result.rowcount or 0


async def reconcile_pending(db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
    """Expire checkout attempts that never reached the payment processor's
    webhook within PENDING_SUBSCRIPTION_MAX_AGE_HOURS."""
    cutoff = _pending_cutoff(settings.PENDING_SUBSCRIPTION_MAX_AGE_HOURS, now)
    result = await db.execute(
        select(Subscription).where(
            Subscription.status == SubscriptionStatus.pending_payment,
            Subscription.stripe_subscription_id.is_(None),
            Subscription.created_at < cutoff,
        )
    )
    expired = []
    for subscription in result.scalars().all():
        transition(subscription, SubscriptionStatus.incomplete_expired, reason="checkout abandoned")
        expired.append(subscription.id)
    await db.flush()
    if expired:
        logger.info(f"Expired {len(expired)} abandoned checkouts: {expired}")
    return expired


def _timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _period_end(data: dict) -> Optional[datetime]:
    end = data.get("current_period_end")
    if not end:
        items = (data.get("items") or {}).get("data") or []
        if items:
            end = items[0].get("current_period_end")
    return _timestamp(end)


def map_stripe_status(stripe_status: str, cancel_at_period_end: bool = False) -> Optional[SubscriptionStatus]:
    status = _STRIPE_STATUSES.get(stripe_status)
    if status in (SubscriptionStatus.active, SubscriptionStatus.trialing) and cancel_at_period_end:
        return SubscriptionStatus.canceling
    return status


def apply_stripe_status(subscription: Subscription, stripe_status: str, cancel_at_period_end: bool = False) -> bool:
    """Apply a Stripe-reported status; False when it can't be applied."""
    status = map_stripe_status(stripe_status, cancel_at_period_end)
    if status is None:
        logger.warning(f"Ignoring unmapped Stripe status '{stripe_status}' for subscription {subscription.id}")
        return False
    try:
        transition(subscription, status, reason="stripe")
    except StateConflictError as e:
        logger.warning(f"Stripe update rejected: {e.message}")
        return False
    return True


async def sync_user_subscriptions(db: AsyncSession, user_id: int) -> dict:
    """Refresh statuses from Stripe. Never raises: a failed sync must not
    break the dashboard load."""
    synced, failed = 0, 0
    try:
        subscriptions = await list_subscriptions(db, user_id=user_id)
        for subscription in subscriptions:
            if not subscription.stripe_subscription_id:
                continue
            try:
                remote = await billing.get_subscription(subscription.stripe_subscription_id)
            except AppError as e:
                failed += 1
                logger.warning(f"Stripe sync failed for subscription {subscription.id}: {e.message}")
                continue
            apply_stripe_status(subscription, remote["status"], remote.get("cancel_at_period_end", False))
            period_end = _timestamp(remote.get("current_period_end"))
            if period_end:
                subscription.current_period_end = period_end
            synced += 1
        await db.flush()
    except Exception as e:
        logger.warning(f"Stripe sync for user {user_id} aborted: {e}", exc_info=True)
    return {"synced": synced, "failed": failed}


async def _find_for_stripe_object(db: AsyncSession, stripe_subscription_id: Optional[str], metadata: Optional[dict]) -> Optional[Subscription]:
    pending_id = (metadata or {}).get("pending_subscription_id")
    if pending_id:
        result = await db.execute(select(Subscription).where(Subscription.id == int(pending_id)))
        subscription = result.scalar_one_or_none()
        if subscription:
            return subscription
    if stripe_subscription_id:
        result = await db.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()
    return None


async def _record_invoice(db: AsyncSession, invoice: dict, paid: bool) -> Optional[Order]:
    stripe_subscription_id = invoice.get("subscription")
    if not stripe_subscription_id:
        parent = (invoice.get("parent") or {}).get("subscription_details") or {}
        stripe_subscription_id = parent.get("subscription")
    subscription = await _find_for_stripe_object(db, stripe_subscription_id, None)

    result = await db.execute(select(Order).where(Order.stripe_invoice_id == invoice.get("id")))
    order = result.scalar_one_or_none()
    if order is None:
        order = Order(
            stripe_invoice_id=invoice.get("id"),
            amount=(invoice.get("amount_paid" if paid else "amount_due") or 0) / 100,
            currency=invoice.get("currency") or "usd",
            subscription_id=subscription.id if subscription else None,
            user_id=subscription.user_id if subscription else None,
            product_metadata={"metal": subscription.metal.value} if subscription else None,
            status=OrderStatus.pending,
        )
        db.add(order)
    if subscription and not order.stripe_checkout_session_id:
        order.stripe_checkout_session_id = subscription.stripe_checkout_session_id

    if not paid and order.status == OrderStatus.paid:
        logger.warning(f"Ignoring payment failure for already paid invoice {invoice.get('id')}")
        return order

    order.invoice_status = invoice.get("status")
    order.stripe_payment_intent_id = invoice.get("payment_intent")
    order.receipt_url = invoice.get("hosted_invoice_url")
    # A failed attempt leaves the order open; Stripe retries the invoice
    if paid:
        order.status = OrderStatus.paid
    order.payment_status = "succeeded" if paid else "failed"
    await db.flush()
    return order


async def handle_stripe_event(db: AsyncSession, event: dict) -> Optional[Subscription]:
    """Fold a verified Stripe event into our records."""
    event_type = event["type"]
    data = event["data"]

    if event_type == "checkout.session.completed":
        subscription = await _find_for_stripe_object(db, data.get("subscription"), data.get("metadata"))
        if not subscription:
            logger.warning(f"Checkout session {data.get('id')} has no matching subscription")
            return None
        subscription.stripe_subscription_id = data.get("subscription") or subscription.stripe_subscription_id
        subscription.stripe_checkout_session_id = data.get("id")
        if data.get("payment_status") in ("paid", "no_payment_required"):
            apply_stripe_status(subscription, "active")
        await db.flush()
        return subscription

    if event_type in ("customer.subscription.created", "customer.subscription.updated", "customer.subscription.deleted"):
        subscription = await _find_for_stripe_object(db, data.get("id"), data.get("metadata"))
        if not subscription:
            logger.warning(f"Stripe subscription {data.get('id')} has no matching subscription")
            return None
        subscription.stripe_subscription_id = data.get("id")
        stripe_status = "canceled" if event_type == "customer.subscription.deleted" else data.get("status")
        apply_stripe_status(subscription, stripe_status, bool(data.get("cancel_at_period_end")))
        period_end = _period_end(data)
        if period_end:
            subscription.current_period_end = period_end
        await db.flush()
        return subscription

    if event_type in ("invoice.paid", "invoice.payment_failed"):
        await _record_invoice(db, data, paid=event_type == "invoice.paid")
        return None

    logger.debug(f"Unhandled Stripe event type: {event_type}")
    return None
