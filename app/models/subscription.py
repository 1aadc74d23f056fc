"""
PharaohVault — Subscription Model
One recurring metal accumulation plan, tracked against its Stripe subscription.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.enums import Metal, SubscriptionStatus, WeightUnit, enum_column


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metal = Column(enum_column(Metal, length=20), nullable=False)
    plan_name = Column(String(255), nullable=False)
    target_weight = Column(Float, nullable=False)
    target_unit = Column(enum_column(WeightUnit, length=10), nullable=False)
    target_price = Column(Float, default=0.0, nullable=False)
    monthly_investment = Column(Float, nullable=False)  # USD
    quantity = Column(Integer, default=1, nullable=False)
    accumulated_value = Column(Float, default=0.0, nullable=False)  # USD
    accumulated_weight = Column(Float, default=0.0, nullable=False)  # in target_unit
    status = Column(enum_column(SubscriptionStatus), default=SubscriptionStatus.pending_payment, nullable=False, index=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True)
    # Outstanding requests, cleared when the request reaches a terminal status
    cancellation_request_id = Column(Integer, nullable=True)
    withdrawal_request_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="subscriptions")
    orders = relationship("Order", back_populates="subscription", cascade="all, delete-orphan", passive_deletes=True)
    cancellation_requests = relationship("CancellationRequest", back_populates="subscription", cascade="all, delete-orphan", passive_deletes=True)
    withdrawal_requests = relationship("WithdrawalRequest", back_populates="subscription", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Subscription(id={self.id}, metal='{self.metal}', status='{self.status}')>"
