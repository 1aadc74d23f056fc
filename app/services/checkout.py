"""
PharaohVault — Checkout Orchestrator
Validates a purchase request, resolves the Stripe customer, records a
pending subscription and opens a Stripe Checkout session for it.

The pending subscription is committed before Stripe is contacted, so every
attempt leaves an auditable row. Rows whose payment never completes are
expired by the reconciliation sweep in app.services.subscriptions.
"""
import logging
import math
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFoundError, PersistenceError, ValidationError
from app.models.enums import Metal, SubscriptionStatus, WeightUnit
from app.models.subscription import Subscription
from app.models.user import User
from app.services import billing

logger = logging.getLogger(__name__)


def _parse_whole_dollars(value) -> Optional[int]:
    """Parse an investment amount into whole dollars, or None if it isn't a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def validate_checkout_request(
    user_id,
    user_email,
    metal,
    target_weight,
    target_unit,
    investment_amount,
) -> dict:
    """Check a checkout request and return its normalized fields.

    Raises ValidationError before any side effect takes place.
    """
    required = {
        "userId": user_id,
        "userEmail": user_email,
        "targetWeight": target_weight,
        "targetUnit": target_unit,
        "metal": metal,
        "investmentAmount": investment_amount,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ValidationError(
            "Missing required parameters in the request body.",
            details={"missing": missing},
        )

    amount = _parse_whole_dollars(investment_amount)
    if amount is None or amount < settings.CHECKOUT_MIN_INVESTMENT:
        raise ValidationError(
            f"Invalid investment amount: '{investment_amount}'. "
            f"Must be a whole number >= {settings.CHECKOUT_MIN_INVESTMENT}."
        )

    try:
        metal = Metal(metal)
    except ValueError:
        raise ValidationError(f"Unsupported metal: '{metal}'")
    try:
        target_unit = WeightUnit(target_unit)
    except ValueError:
        raise ValidationError(f"Unsupported target unit: '{target_unit}'")

    try:
        weight = float(target_weight)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid target weight: '{target_weight}'")
    if not math.isfinite(weight) or weight <= 0:
        raise ValidationError("Target weight must be greater than zero")

    return {
        "user_id": int(user_id),
        "user_email": str(user_email),
        "metal": metal,
        "target_weight": weight,
        "target_unit": target_unit,
        "investment_amount": amount,
    }


async def resolve_customer(db: AsyncSession, user: User, email: str) -> str:
    """Return the user's Stripe customer id, creating and saving one if needed.

    Failing to save a freshly created id only logs a warning; checkout
    proceeds with the new customer.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer_id = await billing.create_customer(email=email, user_id=user.id, name=user.full_name)
    try:
        async with db.begin_nested():
            user.stripe_customer_id = customer_id
            await db.flush()
    except SQLAlchemyError as e:
        logger.warning(f"Could not persist Stripe customer id for user {user.id}: {e}")
    return customer_id


async def create_checkout_session(
    db: AsyncSession,
    user_id,
    user_email,
    metal,
    target_weight,
    target_unit,
    investment_amount,
    ui_mode: Optional[str] = None,
) -> dict:
    """Run the checkout flow and return the client secret or redirect URL."""
    fields = validate_checkout_request(
        user_id, user_email, metal, target_weight, target_unit, investment_amount
    )
    logger.info(
        f"Checkout requested by user {fields['user_id']}: {fields['metal'].value} "
        f"{fields['target_weight']}{fields['target_unit'].value} at ${fields['investment_amount']}/month"
    )

    try:
        result = await db.execute(select(User).where(User.id == fields["user_id"]))
        user = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Database error fetching user: {e}")
    if not user:
        raise NotFoundError(f"User {fields['user_id']} not found")

    customer_id = await resolve_customer(db, user, fields["user_email"])

    subscription = Subscription(
        user_id=user.id,
        metal=fields["metal"],
        plan_name=billing.plan_name_for(fields["metal"].value),
        target_weight=fields["target_weight"],
        target_unit=fields["target_unit"],
        target_price=0.0,
        monthly_investment=float(fields["investment_amount"]),
        quantity=1,
        accumulated_value=0.0,
        accumulated_weight=0.0,
        status=SubscriptionStatus.pending_payment,
        stripe_customer_id=customer_id,
    )
    try:
        db.add(subscription)
        await db.flush()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError(f"Database error creating subscription: {e}")
    logger.info(f"Pending subscription {subscription.id} recorded for user {user.id}")

    session = await billing.create_checkout_session(
        customer_id=customer_id,
        metal=fields["metal"].value,
        investment_amount=fields["investment_amount"],
        user_id=user.id,
        pending_subscription_id=subscription.id,
        ui_mode=ui_mode,
    )

    subscription.stripe_checkout_session_id = session["session_id"]
    await db.flush()
    logger.info(f"Checkout session {session['session_id']} opened for subscription {subscription.id}")

    return {
        "subscription_id": subscription.id,
        "session_id": session["session_id"],
        "client_secret": session.get("client_secret"),
        "url": session.get("url"),
    }
