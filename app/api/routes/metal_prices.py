"""
PharaohVault — Metal Price Routes
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import AuthSession, require_admin
from app.schemas.schemas import MetalPriceResponse
from app.services.metal_prices import list_prices, sync_prices

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[MetalPriceResponse], summary="Latest spot prices")
async def get_prices(db: AsyncSession = Depends(get_db)):
    return [MetalPriceResponse.model_validate(p) for p in await list_prices(db)]


@router.post(
    "/sync",
    response_model=List[MetalPriceResponse],
    summary="Refresh spot prices",
    description="Fetch gold and silver quotes from GoldAPI and store them per troy ounce.",
)
async def sync(
    session: AuthSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await sync_prices(db)
    logger.info(f"Metal prices synced by admin {session.user_id}")
    return [MetalPriceResponse.model_validate(p) for p in rows]
