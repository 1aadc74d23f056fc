"""
PharaohVault — Metal Price Service
Pulls gold and silver spot quotes from GoldAPI and stores them per troy ounce.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import PersistenceError, UpstreamServiceError
from app.models.enums import Metal
from app.models.metal_price import MetalPrice
from app.utils.units import GRAMS_PER_TROY_OUNCE

logger = logging.getLogger(__name__)


async def fetch_spot_prices(client: Optional[httpx.AsyncClient] = None) -> Dict[Metal, float]:
    """Fetch 24k per-gram quotes and return USD per troy ounce for each metal."""
    if not settings.GOLD_API_KEY:
        raise UpstreamServiceError("Gold API key is not configured", error_type="configuration")

    headers = {"x-access-token": settings.GOLD_API_KEY, "Content-Type": "application/json"}
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.GOLD_API_TIMEOUT_SECONDS)
    try:
        response = await client.get(settings.GOLD_API_URL, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"Gold API request failed: {e}")
        raise UpstreamServiceError(f"Gold API request failed: {e}", error_type="api_error")
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        try:
            message = response.json().get("error") or ""
        except ValueError:
            message = ""
        if "monthly quota" in message.lower():
            logger.error("Gold API monthly quota exceeded")
            raise UpstreamServiceError(
                "Monthly API quota exceeded. Please upgrade your Gold API plan.",
                error_type="quota_exceeded",
            )
        message = message or f"Gold API request failed with status {response.status_code}."
        logger.error(message)
        raise UpstreamServiceError(message, details={"status": response.status_code}, error_type="api_error")

    try:
        quotes = response.json()
        gold = float(quotes.get("price_gram_24k_usd") or 0) * GRAMS_PER_TROY_OUNCE
        silver = float(quotes.get("xag_price_gram_24k_usd") or 0) * GRAMS_PER_TROY_OUNCE
    except (ValueError, TypeError, AttributeError):
        gold, silver = 0.0, 0.0
    if not gold or not silver:
        raise UpstreamServiceError("Invalid price data received from Gold API.", error_type="invalid_response")

    return {Metal.gold: gold, Metal.silver: silver}


async def upsert_prices(db: AsyncSession, prices: Dict[Metal, float]) -> List[MetalPrice]:
    """Insert or update one row per metal symbol."""
    now = datetime.now(timezone.utc)
    rows = []
    try:
        result = await db.execute(select(MetalPrice).where(MetalPrice.metal_symbol.in_(list(prices))))
        existing = {row.metal_symbol: row for row in result.scalars().all()}
        for metal, price in prices.items():
            row = existing.get(metal)
            if row is None:
                row = MetalPrice(metal_symbol=metal, price=price, last_updated=now)
                db.add(row)
            else:
                row.price = price
                row.last_updated = now
            rows.append(row)
        await db.flush()
    except SQLAlchemyError as e:
        logger.error(f"Metal price update failed: {e}")
        raise PersistenceError(f"Database update failed: {e}")
    return rows


async def sync_prices(db: AsyncSession, client: Optional[httpx.AsyncClient] = None) -> List[MetalPrice]:
    prices = await fetch_spot_prices(client)
    rows = await upsert_prices(db, prices)
    logger.info(
        "Metal prices updated: "
        + ", ".join(f"{metal.value}=${price:.2f}/oz" for metal, price in prices.items())
    )
    return rows


async def list_prices(db: AsyncSession) -> List[MetalPrice]:
    result = await db.execute(select(MetalPrice).order_by(MetalPrice.metal_symbol))
    return list(result.scalars().all())


async def get_spot_prices(db: AsyncSession) -> Dict[Metal, float]:
    """Latest USD per troy ounce keyed by metal; metals without a quote are absent."""
    return {row.metal_symbol: row.price for row in await list_prices(db)}
