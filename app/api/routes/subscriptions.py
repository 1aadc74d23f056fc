"""
PharaohVault — Subscription Routes
Subscriber views and investment changes, plus admin maintenance:
edits, deletes, the bulk "delete pending" action and the abandoned
checkout sweep.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session, require_admin
from app.models.enums import Metal, SubscriptionStatus
from app.schemas.schemas import (
    DeletePendingResponse,
    ModifyInvestmentRequest,
    ReconcileResponse,
    SubscriptionResponse,
    SubscriptionUpdate,
    SyncResponse,
)
from app.services import subscriptions as subscription_service
from app.services.metal_prices import get_spot_prices

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "",
    response_model=List[SubscriptionResponse],
    summary="List subscriptions",
    description="Your subscriptions, or any user's for admins.",
)
async def list_subscriptions(
    user_id: Optional[int] = Query(default=None, alias="userId"),
    status: Optional[SubscriptionStatus] = None,
    metal: Optional[Metal] = None,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    if not session.is_admin:
        user_id = session.user_id
    subscriptions = await subscription_service.list_subscriptions(db, user_id=user_id, status=status, metal=metal)
    prices = await get_spot_prices(db)
    return [SubscriptionResponse.from_subscription(s, prices.get(s.metal)) for s in subscriptions]


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Refresh statuses from Stripe",
    description="Best effort; failures are logged and never fail the request.",
)
async def sync_subscriptions(
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return SyncResponse(**await subscription_service.sync_user_subscriptions(db, session.user_id))


@router.delete(
    "/pending",
    response_model=DeletePendingResponse,
    summary="Delete pending subscriptions",
    description="Remove checkout attempts that never completed payment.",
)
async def delete_pending(
    older_than_hours: Optional[int] = Query(default=None, alias="olderThanHours", ge=0),
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    deleted = await subscription_service.delete_pending(db, older_than_hours=older_than_hours)
    logger.info(f"Admin {session.user_id} deleted {deleted} pending subscriptions")
    return DeletePendingResponse(deleted=deleted)


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Expire abandoned checkouts",
)
async def reconcile_pending(
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return ReconcileResponse(expired=await subscription_service.reconcile_pending(db))


@router.get("/{subscription_id}", response_model=SubscriptionResponse, summary="Get a subscription")
async def get_subscription(
    subscription_id: int,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    subscription = await subscription_service.get_subscription(db, subscription_id, session)
    prices = await get_spot_prices(db)
    return SubscriptionResponse.from_subscription(subscription, prices.get(subscription.metal))


@router.put("/{subscription_id}", response_model=SubscriptionResponse, summary="Update a subscription")
async def update_subscription(
    subscription_id: int,
    updates: SubscriptionUpdate,
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subscription = await subscription_service.get_subscription(db, subscription_id)
    subscription = await subscription_service.update_subscription(
        db, subscription, updates.model_dump(exclude_unset=True)
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.patch(
    "/{subscription_id}/investment",
    response_model=SubscriptionResponse,
    summary="Change the monthly investment",
    description="Takes effect from the next billing cycle; nothing is charged now.",
)
async def modify_investment(
    subscription_id: int,
    payload: ModifyInvestmentRequest,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    subscription = await subscription_service.get_subscription(db, subscription_id, session)
    subscription = await subscription_service.modify_monthly_investment(db, subscription, payload.monthly_investment)
    return SubscriptionResponse.from_subscription(subscription)


@router.delete("/{subscription_id}", summary="Delete a subscription")
async def delete_subscription(
    subscription_id: int,
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subscription = await subscription_service.get_subscription(db, subscription_id)
    await subscription_service.delete_subscription(db, subscription)
    return {"message": "Subscription deleted"}
