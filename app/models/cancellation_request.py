"""
PharaohVault — CancellationRequest Model
Subscriber-initiated cancellation, reviewed by an admin.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, DateTime, Date, Text, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.enums import CancellationRequestStatus, enum_column


class CancellationRequest(Base):
    __tablename__ = "cancellation_requests"
    __table_args__ = (
        # At most one open request per subscription
        Index(
            "uq_cancellation_requests_open",
            "subscription_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_review', 'approved')"),
            sqlite_where=text("status IN ('pending', 'in_review', 'approved')"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    details = Column(Text, nullable=True)
    preferred_cancellation_date = Column(Date, nullable=True)
    status = Column(enum_column(CancellationRequestStatus), default=CancellationRequestStatus.pending, nullable=False, index=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="cancellation_requests")

    def __repr__(self):
        return f"<CancellationRequest(id={self.id}, subscription_id={self.subscription_id}, status='{self.status}')>"
