"""
PharaohVault — Order Routes
Read-only payment history.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session
from app.models.enums import OrderStatus
from app.schemas.schemas import OrderResponse, OrderSettlementResponse
from app.services import orders as order_service
from app.services.subscriptions import get_subscription

router = APIRouter()


@router.get("", response_model=List[OrderResponse], summary="Query orders")
async def query_orders(
    user_id: Optional[int] = Query(default=None, alias="userId"),
    subscription_id: Optional[int] = Query(default=None, alias="subscriptionId"),
    status: Optional[OrderStatus] = None,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    limit: int = Query(default=100, ge=1, le=500),
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    if not session.is_admin:
        user_id = session.user_id
    orders = await order_service.query_orders(
        db,
        user_id=user_id,
        subscription_id=subscription_id,
        status=status,
        checkout_session_id=session_id,
        limit=limit,
    )
    return [OrderResponse.model_validate(o) for o in orders]


@router.get(
    "/subscription/{subscription_id}",
    response_model=List[OrderResponse],
    summary="Orders for a subscription",
)
async def orders_for_subscription(
    subscription_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    await get_subscription(db, subscription_id, session)
    orders = await order_service.query_orders(db, subscription_id=subscription_id, limit=limit)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(
    order_id: int,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return OrderResponse.model_validate(await order_service.get_order(db, order_id, session))


@router.get(
    "/{order_id}/settlement",
    response_model=OrderSettlementResponse,
    summary="Wait for an order to settle",
    description="Polls on a fixed interval; a still-pending order is reported as needing review.",
)
async def wait_for_settlement(
    order_id: int,
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id, session)

    async def fetch():
        await db.refresh(order)
        return order

    outcome = await order_service.wait_for_order_settlement(fetch)
    return OrderSettlementResponse(
        state=outcome["state"],
        order=OrderResponse.model_validate(outcome["order"]) if outcome["order"] else None,
    )
