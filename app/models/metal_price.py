"""
PharaohVault — MetalPrice Model
Latest spot price per metal, in USD per troy ounce.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, DateTime, Float

from app.core.database import Base
from app.models.enums import Metal, enum_column


class MetalPrice(Base):
    __tablename__ = "metal_prices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    metal_symbol = Column(enum_column(Metal, length=20), unique=True, nullable=False)
    price = Column(Float, nullable=False)
    last_updated = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<MetalPrice(metal='{self.metal_symbol}', price={self.price})>"
