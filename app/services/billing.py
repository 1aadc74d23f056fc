"""
PharaohVault Backend — Billing Service
Stripe dual-mode (test/live) integration: customers, embedded or hosted
checkout sessions, subscription management and webhook verification.
"""
import logging
from typing import Optional

import stripe

from app.core.config import settings
from app.core.errors import UpstreamServiceError, ValidationError

logger = logging.getLogger(__name__)


def _init_stripe():
    """Initialize Stripe with the active mode key."""
    stripe.api_key = settings.active_stripe_secret_key


_init_stripe()


def get_stripe_mode() -> str:
    """Return the current Stripe mode."""
    return settings.STRIPE_MODE


def _upstream_error(action: str, e: Exception) -> UpstreamServiceError:
    message = getattr(e, "user_message", None) or str(e)
    logger.error(f"Stripe {action} failed: {message}")
    return UpstreamServiceError(
        f"Payment processor error during {action}: {message}",
        details={"code": getattr(e, "code", None)},
        error_type=type(e).__name__,
    )


def plan_name_for(metal: str) -> str:
    return f"{metal.capitalize()} Plan"


async def create_customer(email: str, user_id: int, name: Optional[str] = None) -> str:
    """Create a Stripe customer and return the customer ID."""
    _init_stripe()
    try:
        customer = stripe.Customer.create(
            email=email,
            name=name or None,
            metadata={
                "app": "pharaohvault",
                "user_id": str(user_id),
                "stripe_mode": settings.STRIPE_MODE,
            },
        )
        return customer.id
    except stripe.StripeError as e:
        raise _upstream_error("customer creation", e)


async def create_checkout_session(
    customer_id: str,
    metal: str,
    investment_amount: int,
    user_id: int,
    pending_subscription_id: int,
    ui_mode: Optional[str] = None,
) -> dict:
    """Create a monthly Stripe Checkout session for a metal plan.

    The pending subscription id travels in the subscription metadata so the
    webhook can tie the paid Stripe subscription back to our record.
    """
    _init_stripe()
    ui_mode = ui_mode or settings.CHECKOUT_UI_MODE
    plan_name = plan_name_for(metal)

    payload = {
        "customer": customer_id,
        "mode": "subscription",
        "line_items": [{
            "price_data": {
                "currency": "usd",
                "product_data": {
                    "name": f"{plan_name} Subscription",
                    "description": f"A dynamic monthly investment of ${investment_amount}.",
                },
                "unit_amount": investment_amount * 100,
                "recurring": {"interval": "month"},
            },
            "quantity": 1,
        }],
        "subscription_data": {
            "metadata": {
                "user_id": str(user_id),
                "pending_subscription_id": str(pending_subscription_id),
            },
        },
        "metadata": {
            "app": "pharaohvault",
            "pending_subscription_id": str(pending_subscription_id),
            "stripe_mode": settings.STRIPE_MODE,
        },
    }
    if ui_mode == "embedded":
        payload["ui_mode"] = "embedded"
        payload["return_url"] = f"{settings.SITE_URL}/return?session_id={{CHECKOUT_SESSION_ID}}"
    elif ui_mode == "hosted":
        payload["success_url"] = f"{settings.SITE_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"
        payload["cancel_url"] = f"{settings.SITE_URL}/checkout/cancel"
    else:
        raise ValidationError(f"Unsupported checkout mode '{ui_mode}'")

    try:
        session = stripe.checkout.Session.create(
            idempotency_key=f"checkout-{pending_subscription_id}",
            **payload,
        )
    except stripe.StripeError as e:
        raise _upstream_error("checkout creation", e)

    result = {
        "session_id": session.id,
        "client_secret": getattr(session, "client_secret", None),
        "url": getattr(session, "url", None),
    }
    if ui_mode == "embedded" and not result["client_secret"]:
        raise UpstreamServiceError(
            "Stripe session created, but client_secret was missing from the response.",
            error_type="MissingClientSecret",
        )
    if ui_mode == "hosted" and not result["url"]:
        raise UpstreamServiceError(
            "Stripe session created, but url was missing from the response.",
            error_type="MissingRedirectUrl",
        )
    return result


async def get_checkout_session(session_id: str) -> dict:
    """Get the status of a checkout session for the return page."""
    _init_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        raise _upstream_error("checkout session retrieval", e)
    customer_details = getattr(session, "customer_details", None)
    return {
        "status": session.status,
        "payment_status": session.payment_status,
        "customer_email": getattr(customer_details, "email", None) if customer_details else None,
        "subscription": getattr(session, "subscription", None),
        "metadata": dict(session.metadata or {}),
    }


async def get_subscription(subscription_id: str) -> dict:
    """Get subscription details from Stripe."""
    _init_stripe()
    try:
        subscription = stripe.Subscription.retrieve(subscription_id)
        return {
            "id": subscription.id,
            "status": subscription.status,
            "cancel_at_period_end": subscription.cancel_at_period_end,
            "current_period_end": subscription.get("current_period_end"),
        }
    except stripe.StripeError as e:
        raise _upstream_error("subscription retrieval", e)


async def update_subscription_amount(subscription_id: str, investment_amount: float) -> dict:
    """Change the monthly amount from the next billing cycle, without proration."""
    _init_stripe()
    try:
        subscription = stripe.Subscription.retrieve(subscription_id)
        item = subscription["items"]["data"][0]
        updated = stripe.Subscription.modify(
            subscription_id,
            items=[{
                "id": item["id"],
                "price_data": {
                    "currency": "usd",
                    "product": item["price"]["product"],
                    "unit_amount": int(round(investment_amount * 100)),
                    "recurring": {"interval": "month"},
                },
            }],
            proration_behavior="none",
        )
        return {"id": updated.id, "status": updated.status}
    except stripe.StripeError as e:
        raise _upstream_error("subscription update", e)


def handle_webhook_event(payload: bytes, sig_header: str) -> dict:
    """Process a Stripe webhook event using the active webhook secret."""
    _init_stripe()
    webhook_secret = settings.active_stripe_webhook_secret
    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
    except ValueError:
        raise ValidationError("Invalid payload")
    except stripe.SignatureVerificationError:
        raise ValidationError("Invalid signature")
    return {"type": event["type"], "data": event["data"]["object"]}
