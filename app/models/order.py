"""
PharaohVault — Order Model
Payment record for one invoice of a subscription.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Float, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.enums import OrderStatus, enum_column


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Float, nullable=False)  # USD
    currency = Column(String(10), default="usd", nullable=False)
    status = Column(enum_column(OrderStatus), default=OrderStatus.pending, nullable=False)
    payment_status = Column(String(50), default="pending", nullable=False)  # pending, succeeded, failed
    invoice_status = Column(String(50), nullable=True)  # draft, open, paid, void, uncollectible
    product_metadata = Column(JSON, nullable=True)
    stripe_invoice_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True, index=True)
    receipt_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    subscription = relationship("Subscription", back_populates="orders")

    def __repr__(self):
        return f"<Order(id={self.id}, amount={self.amount}, status='{self.status}')>"
