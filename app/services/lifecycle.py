"""
PharaohVault — Subscription Lifecycle Service
Status transition graph, per-status action eligibility, and the
display labels for every status enum.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from app.core.config import settings
from app.core.errors import StateConflictError, ValidationError
from app.models.enums import (
    CancellationRequestStatus,
    Metal,
    OrderStatus,
    SubscriptionStatus,
    WeightUnit,
    WithdrawalRequestStatus,
)
from app.utils.units import convert_weight

logger = logging.getLogger(__name__)

S = SubscriptionStatus

TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    S.pending_payment: frozenset({S.active, S.trialing, S.incomplete, S.incomplete_expired}),
    S.incomplete: frozenset({S.active, S.incomplete_expired}),
    S.trialing: frozenset({S.active, S.canceling, S.canceled}),
    S.active: frozenset({S.canceling, S.canceled, S.past_due}),
    S.canceling: frozenset({S.active, S.trialing, S.canceled}),
    S.past_due: frozenset({S.active, S.unpaid, S.canceled}),
    S.unpaid: frozenset({S.active, S.canceled}),
    S.canceled: frozenset(),
    S.incomplete_expired: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.canceled, S.incomplete_expired})
ACTIONABLE_STATUSES = frozenset({S.active, S.trialing})

OPEN_CANCELLATION_STATUSES = frozenset({
    CancellationRequestStatus.pending,
    CancellationRequestStatus.in_review,
    CancellationRequestStatus.approved,
})
OPEN_WITHDRAWAL_STATUSES = frozenset({
    WithdrawalRequestStatus.pending,
    WithdrawalRequestStatus.approved,
    WithdrawalRequestStatus.processing,
    WithdrawalRequestStatus.out_for_delivery,
})

SUBSCRIPTION_STATUS_LABELS: Dict[SubscriptionStatus, str] = {
    S.pending_payment: "Pending Payment",
    S.incomplete: "Incomplete",
    S.incomplete_expired: "Expired",
    S.trialing: "Trialing",
    S.active: "Active",
    S.past_due: "Past Due",
    S.unpaid: "Unpaid",
    S.canceling: "Canceling",
    S.canceled: "Canceled",
}

CANCELLATION_STATUS_LABELS: Dict[CancellationRequestStatus, str] = {
    CancellationRequestStatus.pending: "Pending",
    CancellationRequestStatus.in_review: "In Review",
    CancellationRequestStatus.approved: "Approved",
    CancellationRequestStatus.rejected: "Rejected",
    CancellationRequestStatus.completed: "Completed",
}

WITHDRAWAL_STATUS_LABELS: Dict[WithdrawalRequestStatus, str] = {
    WithdrawalRequestStatus.pending: "Pending",
    WithdrawalRequestStatus.approved: "Approved",
    WithdrawalRequestStatus.processing: "Processing",
    WithdrawalRequestStatus.out_for_delivery: "Out For Delivery",
    WithdrawalRequestStatus.delivered: "Delivered",
    WithdrawalRequestStatus.rejected: "Rejected",
}

ORDER_STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.pending: "Pending",
    OrderStatus.paid: "Paid",
    OrderStatus.cancelled: "Cancelled",
    OrderStatus.refunded: "Refunded",
}

_LABEL_TABLES = {
    SubscriptionStatus: SUBSCRIPTION_STATUS_LABELS,
    CancellationRequestStatus: CANCELLATION_STATUS_LABELS,
    WithdrawalRequestStatus: WITHDRAWAL_STATUS_LABELS,
    OrderStatus: ORDER_STATUS_LABELS,
}

for _enum_cls, _labels in _LABEL_TABLES.items():
    _missing = set(_enum_cls) - set(_labels)
    if _missing:
        raise RuntimeError(f"No label for {_enum_cls.__name__} members: {sorted(m.value for m in _missing)}")


def status_label(status) -> str:
    """Human-readable label for any status enum member."""
    return _LABEL_TABLES[type(status)][status]


@dataclass
class SubscriptionActions:
    """Which subscriber actions the current state allows."""
    can_cancel: bool
    can_modify: bool
    can_withdraw: bool
    has_pending_cancellation: bool
    has_pending_withdrawal: bool


def is_terminal(status) -> bool:
    return SubscriptionStatus(status) in TERMINAL_STATUSES


def can_transition(current, new) -> bool:
    current, new = SubscriptionStatus(current), SubscriptionStatus(new)
    if current == new:
        return True
    return new in TRANSITIONS[current]


def transition(subscription, new_status, reason: Optional[str] = None):
    """Move `subscription` to `new_status` if the graph allows it.

    Re-applying the current status is a no-op so repeated processor
    events stay idempotent.
    """
    new_status = SubscriptionStatus(new_status)
    current = SubscriptionStatus(subscription.status)
    if current == new_status:
        return subscription
    if not can_transition(current, new_status):
        raise StateConflictError(
            f"Cannot move subscription from '{current.value}' to '{new_status.value}'",
            details={"subscription_id": subscription.id, "from": current.value, "to": new_status.value},
        )
    logger.info(
        f"Subscription {subscription.id}: {current.value} -> {new_status.value}"
        + (f" ({reason})" if reason else "")
    )
    subscription.status = new_status
    subscription.cancel_at_period_end = new_status == S.canceling
    subscription.updated_at = datetime.now(timezone.utc)
    return subscription


def can_cancel(status, has_pending_withdrawal: bool = False) -> bool:
    return SubscriptionStatus(status) in ACTIONABLE_STATUSES and not has_pending_withdrawal


def can_modify(status, has_pending_cancellation: bool = False, has_pending_withdrawal: bool = False) -> bool:
    return (
        SubscriptionStatus(status) in ACTIONABLE_STATUSES
        and not has_pending_cancellation
        and not has_pending_withdrawal
    )


def meets_withdrawal_minimum(metal, accumulated_weight: float, target_weight: float, unit) -> bool:
    """Gold needs 1 g and silver 3.5 oz accumulated, unless the target is reached."""
    accumulated_weight = accumulated_weight or 0.0
    if target_weight and accumulated_weight >= target_weight:
        return True
    if Metal(metal) == Metal.gold:
        return convert_weight(accumulated_weight, unit, WeightUnit.g) >= settings.GOLD_MIN_WITHDRAWAL_GRAMS
    return convert_weight(accumulated_weight, unit, WeightUnit.oz) >= settings.SILVER_MIN_WITHDRAWAL_OUNCES


def can_withdraw(subscription, has_pending_cancellation: bool = False) -> bool:
    if SubscriptionStatus(subscription.status) not in ACTIONABLE_STATUSES or has_pending_cancellation:
        return False
    return meets_withdrawal_minimum(
        subscription.metal,
        subscription.accumulated_weight,
        subscription.target_weight,
        subscription.target_unit,
    )


def subscription_actions(subscription) -> SubscriptionActions:
    """Derive action eligibility from status and the outstanding-request markers."""
    pending_cancellation = subscription.cancellation_request_id is not None
    pending_withdrawal = subscription.withdrawal_request_id is not None
    return SubscriptionActions(
        can_cancel=can_cancel(subscription.status, pending_withdrawal) and not pending_cancellation,
        can_modify=can_modify(subscription.status, pending_cancellation, pending_withdrawal),
        can_withdraw=can_withdraw(subscription, pending_cancellation) and not pending_withdrawal,
        has_pending_cancellation=pending_cancellation,
        has_pending_withdrawal=pending_withdrawal,
    )


def validate_monthly_investment(amount) -> float:
    """Subscriber-facing bound: [MIN_MONTHLY_INVESTMENT, MAX_MONTHLY_INVESTMENT] USD."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid monthly investment: '{amount}'")
    if not math.isfinite(value):
        raise ValidationError(f"Invalid monthly investment: '{amount}'")
    if value < settings.MIN_MONTHLY_INVESTMENT or value > settings.MAX_MONTHLY_INVESTMENT:
        raise ValidationError(
            f"Monthly investment must be between ${settings.MIN_MONTHLY_INVESTMENT} "
            f"and ${settings.MAX_MONTHLY_INVESTMENT}",
            details={"amount": value},
        )
    return value
