"""Enums for database models."""
import enum

from sqlalchemy import Enum as SAEnum


class UserRole(str, enum.Enum):
    """User role types."""
    user = "user"
    admin = "admin"


class Metal(str, enum.Enum):
    gold = "gold"
    silver = "silver"


class WeightUnit(str, enum.Enum):
    """Weight units; `oz` is always the troy ounce."""
    g = "g"
    oz = "oz"


class SubscriptionStatus(str, enum.Enum):
    """Subscription lifecycle states, mirrored from the payment processor."""
    pending_payment = "pending_payment"
    incomplete = "incomplete"
    incomplete_expired = "incomplete_expired"
    trialing = "trialing"
    active = "active"
    past_due = "past_due"
    unpaid = "unpaid"
    canceling = "canceling"
    canceled = "canceled"


class CancellationRequestStatus(str, enum.Enum):
    pending = "pending"
    in_review = "in_review"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class WithdrawalRequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    processing = "processing"
    out_for_delivery = "out_for_delivery"
    delivered = "delivered"
    rejected = "rejected"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    cancelled = "cancelled"
    refunded = "refunded"


def enum_column(enum_cls, length: int = 50) -> SAEnum:
    """Store an enum by value in a VARCHAR column."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
