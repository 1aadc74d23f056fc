"""
PharaohVault — Checkout Routes
Opens a Stripe Checkout session for a new metal plan.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session
from app.schemas.schemas import CheckoutRequest, CheckoutResponse, CheckoutSessionStatus
from app.services import billing
from app.services.checkout import create_checkout_session

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/create-session",
    response_model=CheckoutResponse,
    summary="Create checkout session",
    description=(
        "Record a pending subscription and open a Stripe Checkout session. "
        "Returns a client secret (embedded) or a redirect URL (hosted)."
    ),
)
async def create_session(
    request: CheckoutRequest,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    # The caller may only buy for themselves
    result = await create_checkout_session(
        db,
        user_id=session.user_id,
        user_email=request.user_email or session.user.email,
        metal=request.metal,
        target_weight=request.target_weight,
        target_unit=request.target_unit,
        investment_amount=request.investment_amount,
        ui_mode=request.ui_mode,
    )
    return CheckoutResponse(**result)


@router.get(
    "/session-status",
    response_model=CheckoutSessionStatus,
    summary="Get checkout session status",
)
async def session_status(
    session_id: str = Query(description="Stripe Checkout session id"),
    _: AuthSession = Depends(get_current_session),
):
    details = await billing.get_checkout_session(session_id)
    return CheckoutSessionStatus(
        status=details["status"],
        payment_status=details["payment_status"],
        customer_email=details["customer_email"],
    )
