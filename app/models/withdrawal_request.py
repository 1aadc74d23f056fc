"""
PharaohVault — WithdrawalRequest Model
Physical delivery of accumulated metal, reviewed and fulfilled by an admin.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, DateTime, Float, Text, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.enums import Metal, WeightUnit, WithdrawalRequestStatus, enum_column


_OPEN_STATUSES = "status IN ('pending', 'approved', 'processing', 'out_for_delivery')"


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        # At most one open request per subscription
        Index(
            "uq_withdrawal_requests_open",
            "subscription_id",
            unique=True,
            postgresql_where=text(_OPEN_STATUSES),
            sqlite_where=text(_OPEN_STATUSES),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metal = Column(enum_column(Metal, length=20), nullable=False)
    requested_weight = Column(Float, nullable=False)
    requested_unit = Column(enum_column(WeightUnit, length=10), nullable=False)
    estimated_value = Column(Float, default=0.0, nullable=False)  # USD at request time
    notes = Column(Text, nullable=True)
    status = Column(enum_column(WithdrawalRequestStatus), default=WithdrawalRequestStatus.pending, nullable=False, index=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="withdrawal_requests")

    def __repr__(self):
        return f"<WithdrawalRequest(id={self.id}, weight={self.requested_weight}{self.requested_unit}, status='{self.status}')>"
