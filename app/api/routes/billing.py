"""
PharaohVault Backend — Billing Routes
Stripe configuration for the frontend and the Stripe webhook receiver.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.schemas.schemas import BillingConfigResponse
from app.services.billing import handle_webhook_event
from app.services.subscriptions import handle_stripe_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/config",
    response_model=BillingConfigResponse,
    summary="Get billing config",
    description="Get the current Stripe configuration (publishable key and mode).",
)
async def get_billing_config():
    """Return the publishable key and mode for frontend Stripe.js."""
    return BillingConfigResponse(
        stripe_mode=settings.STRIPE_MODE,
        publishable_key=settings.active_stripe_publishable_key,
        checkout_ui_mode=settings.CHECKOUT_UI_MODE,
    )


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Handle Stripe webhook events (works for both test and live modes)."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    event = handle_webhook_event(payload, sig_header)
    logger.info(f"Stripe webhook ({settings.STRIPE_MODE}): {event['type']}")

    await handle_stripe_event(db, event)
    return {"status": "ok"}
