"""
PharaohVault — Dashboard Routes
Admin rollups and the subscriber's own totals.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, get_current_session, require_admin
from app.schemas.schemas import (
    DashboardStats,
    SubscriptionResponse,
    UserResponse,
    UserStats,
    UserWithSubscriptions,
)
from app.services import admin as admin_service
from app.services.metal_prices import get_spot_prices

router = APIRouter()


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Get dashboard statistics",
    description="Totals invested, monthly run-rate and user count across the platform.",
)
async def get_dashboard_stats(
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return DashboardStats(**await admin_service.dashboard_stats(db))


@router.get("/user-stats", response_model=UserStats, summary="Get your statistics")
async def get_user_stats(
    session: AuthSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return UserStats(**await admin_service.user_stats(db, session.user_id))


@router.get(
    "/users",
    response_model=List[UserWithSubscriptions],
    summary="Users with their subscriptions",
)
async def get_users_with_subscriptions(
    _: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    prices = await get_spot_prices(db)
    return [
        UserWithSubscriptions(
            user=UserResponse.model_validate(row["user"]),
            subscriptions=[
                SubscriptionResponse.from_subscription(s, prices.get(s.metal)) for s in row["subscriptions"]
            ],
        )
        for row in await admin_service.list_users_with_subscriptions(db)
    ]
