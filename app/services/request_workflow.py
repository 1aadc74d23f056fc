"""
PharaohVault — Cancellation & Withdrawal Request Service
Subscriber-created requests with their own review status. Requests never
change the subscription's status; they only mark it as having an open
request, which gates the other subscriber actions.
"""
import logging
import math
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PersistenceError, StateConflictError, ValidationError
from app.core.security import AuthSession, ensure_owner_or_admin
from app.models.cancellation_request import CancellationRequest
from app.models.enums import (
    CancellationRequestStatus,
    Metal,
    WeightUnit,
    WithdrawalRequestStatus,
)
from app.models.subscription import Subscription
from app.models.withdrawal_request import WithdrawalRequest
from app.services.lifecycle import (
    OPEN_CANCELLATION_STATUSES,
    OPEN_WITHDRAWAL_STATUSES,
    can_cancel,
    can_withdraw,
)
from app.services.metal_prices import get_spot_prices
from app.services.pricing import price_per_unit
from app.utils.units import convert_weight, format_weight

logger = logging.getLogger(__name__)


async def _has_open_cancellation(db: AsyncSession, subscription_id: int) -> bool:
    result = await db.execute(
        select(CancellationRequest.id).where(
            CancellationRequest.subscription_id == subscription_id,
            CancellationRequest.status.in_(list(OPEN_CANCELLATION_STATUSES)),
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _has_open_withdrawal(db: AsyncSession, subscription_id: int) -> bool:
    result = await db.execute(
        select(WithdrawalRequest.id).where(
            WithdrawalRequest.subscription_id == subscription_id,
            WithdrawalRequest.status.in_(list(OPEN_WITHDRAWAL_STATUSES)),
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _insert_request(db: AsyncSession, request, kind: str, has_open):
    try:
        async with db.begin_nested():
            db.add(request)
            await db.flush()
    except IntegrityError as e:
        if await has_open(db, request.subscription_id):
            raise StateConflictError(f"An open {kind} request already exists for this subscription")
        logger.error(f"Failed to save {kind} request for subscription {request.subscription_id}: {e}")
        raise PersistenceError(f"Database error creating {kind} request")
    return request


async def _load_subscription(db: AsyncSession, subscription_id: int, session: AuthSession) -> Subscription:
    result = await db.execute(select(Subscription).where(Subscription.id == subscription_id))
    subscription = result.scalar_one_or_none()
    if not subscription:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    ensure_owner_or_admin(session, subscription.user_id)
    return subscription


def _sync_marker(subscription: Optional[Subscription], field: str, request_id: int, is_open: bool) -> None:
    if subscription is None:
        return
    current = getattr(subscription, field)
    if is_open and current is None:
        setattr(subscription, field, request_id)
    elif not is_open and current == request_id:
        setattr(subscription, field, None)


# ── Cancellation requests ────────────────────────────────────────────────────

async def create_cancellation_request(
    db: AsyncSession,
    session: AuthSession,
    subscription_id: int,
    reason: Optional[str] = None,
    details: Optional[str] = None,
    preferred_cancellation_date: Optional[date] = None,
) -> CancellationRequest:
    subscription = await _load_subscription(db, subscription_id, session)

    has_withdrawal = (
        subscription.withdrawal_request_id is not None
        or await _has_open_withdrawal(db, subscription.id)
    )
    if not can_cancel(subscription.status, has_pending_withdrawal=has_withdrawal):
        raise StateConflictError(
            "Cannot perform this action: the subscription cannot be canceled in its current state",
            details={"status": subscription.status.value, "pending_withdrawal": has_withdrawal},
        )
    if subscription.cancellation_request_id is not None or await _has_open_cancellation(db, subscription.id):
        raise StateConflictError("An open cancellation request already exists for this subscription")

    request = CancellationRequest(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        reason=reason,
        details=details,
        preferred_cancellation_date=preferred_cancellation_date,
        status=CancellationRequestStatus.pending,
    )
    await _insert_request(db, request, "cancellation", _has_open_cancellation)
    subscription.cancellation_request_id = request.id
    await db.flush()
    logger.info(f"Cancellation request {request.id} opened for subscription {subscription.id}")
    return request


async def list_cancellation_requests(
    db: AsyncSession,
    user_id: Optional[int] = None,
    status: Optional[CancellationRequestStatus] = None,
    subscription_id: Optional[int] = None,
) -> List[CancellationRequest]:
    query = select(CancellationRequest).order_by(CancellationRequest.created_at.desc())
    if user_id is not None:
        query = query.where(CancellationRequest.user_id == user_id)
    if status is not None:
        query = query.where(CancellationRequest.status == status)
    if subscription_id is not None:
        query = query.where(CancellationRequest.subscription_id == subscription_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_cancellation_request(db: AsyncSession, request_id: int, session: AuthSession) -> CancellationRequest:
    result = await db.execute(select(CancellationRequest).where(CancellationRequest.id == request_id))
    request = result.scalar_one_or_none()
    if not request:
        raise NotFoundError(f"Cancellation request {request_id} not found")
    ensure_owner_or_admin(session, request.user_id)
    return request


async def update_cancellation_request(
    db: AsyncSession,
    request: CancellationRequest,
    status: Optional[CancellationRequestStatus] = None,
    resolution_notes: Optional[str] = None,
) -> CancellationRequest:
    """Admin review update. Does not cancel anything at the processor."""
    if status is not None and status != request.status:
        if status in OPEN_CANCELLATION_STATUSES and request.status not in OPEN_CANCELLATION_STATUSES:
            if await _has_open_cancellation(db, request.subscription_id):
                raise StateConflictError("Another open cancellation request exists for this subscription")
        request.status = status
        if status not in OPEN_CANCELLATION_STATUSES:
            request.processed_at = datetime.now(timezone.utc)
    if resolution_notes is not None:
        request.resolution_notes = resolution_notes

    result = await db.execute(select(Subscription).where(Subscription.id == request.subscription_id))
    _sync_marker(
        result.scalar_one_or_none(),
        "cancellation_request_id",
        request.id,
        request.status in OPEN_CANCELLATION_STATUSES,
    )
    await db.flush()
    logger.info(f"Cancellation request {request.id} is now {request.status.value}")
    return request


async def delete_cancellation_request(db: AsyncSession, request: CancellationRequest) -> None:
    result = await db.execute(select(Subscription).where(Subscription.id == request.subscription_id))
    _sync_marker(result.scalar_one_or_none(), "cancellation_request_id", request.id, False)
    await db.delete(request)
    await db.flush()


# ── Withdrawal requests ──────────────────────────────────────────────────────

async def estimate_withdrawal_value(db: AsyncSession, metal: Metal, weight: float, unit: WeightUnit) -> float:
    """Requested weight at today's spot price; 0 when no quote is stored."""
    spot_per_oz = (await get_spot_prices(db)).get(Metal(metal))
    if not spot_per_oz:
        return 0.0
    return round(weight * price_per_unit(spot_per_oz, WeightUnit.oz, unit), 2)


async def create_withdrawal_request(
    db: AsyncSession,
    session: AuthSession,
    subscription_id: int,
    requested_weight: float,
    requested_unit: Optional[WeightUnit] = None,
    notes: Optional[str] = None,
) -> WithdrawalRequest:
    subscription = await _load_subscription(db, subscription_id, session)
    requested_unit = WeightUnit(requested_unit or subscription.target_unit)

    if requested_weight is None or not math.isfinite(requested_weight) or requested_weight <= 0:
        raise ValidationError("Requested weight must be greater than zero")

    has_cancellation = (
        subscription.cancellation_request_id is not None
        or await _has_open_cancellation(db, subscription.id)
    )
    if not can_withdraw(subscription, has_pending_cancellation=has_cancellation):
        raise StateConflictError(
            "Cannot perform this action: the subscription is not eligible for withdrawal",
            details={
                "status": subscription.status.value,
                "accumulated_weight": subscription.accumulated_weight,
                "pending_cancellation": has_cancellation,
            },
        )
    if subscription.withdrawal_request_id is not None or await _has_open_withdrawal(db, subscription.id):
        raise StateConflictError("An open withdrawal request already exists for this subscription")

    available = convert_weight(subscription.accumulated_weight or 0.0, subscription.target_unit, requested_unit)
    if requested_weight > available + 1e-9:
        raise ValidationError(
            "Requested weight exceeds the accumulated weight",
            details={"requested": requested_weight, "available": round(available, 6), "unit": requested_unit.value},
        )

    request = WithdrawalRequest(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        metal=subscription.metal,
        requested_weight=requested_weight,
        requested_unit=requested_unit,
        estimated_value=await estimate_withdrawal_value(db, subscription.metal, requested_weight, requested_unit),
        notes=notes,
        status=WithdrawalRequestStatus.pending,
    )
    await _insert_request(db, request, "withdrawal", _has_open_withdrawal)
    subscription.withdrawal_request_id = request.id
    await db.flush()
    logger.info(
        f"Withdrawal request {request.id} opened for subscription {subscription.id}: "
        f"{format_weight(requested_weight, requested_unit)}"
    )
    return request


async def list_withdrawal_requests(
    db: AsyncSession,
    user_id: Optional[int] = None,
    status: Optional[WithdrawalRequestStatus] = None,
    metal: Optional[Metal] = None,
    subscription_id: Optional[int] = None,
) -> List[WithdrawalRequest]:
    query = select(WithdrawalRequest).order_by(WithdrawalRequest.created_at.desc())
    if user_id is not None:
        query = query.where(WithdrawalRequest.user_id == user_id)
    if status is not None:
        query = query.where(WithdrawalRequest.status == status)
    if metal is not None:
        query = query.where(WithdrawalRequest.metal == metal)
    if subscription_id is not None:
        query = query.where(WithdrawalRequest.subscription_id == subscription_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_withdrawal_request(db: AsyncSession, request_id: int, session: AuthSession) -> WithdrawalRequest:
    result = await db.execute(select(WithdrawalRequest).where(WithdrawalRequest.id == request_id))
    request = result.scalar_one_or_none()
    if not request:
        raise NotFoundError(f"Withdrawal request {request_id} not found")
    ensure_owner_or_admin(session, request.user_id)
    return request


async def update_withdrawal_request(
    db: AsyncSession,
    request: WithdrawalRequest,
    status: Optional[WithdrawalRequestStatus] = None,
    resolution_notes: Optional[str] = None,
    notes: Optional[str] = None,
) -> WithdrawalRequest:
    """Admin fulfilment update. Accumulated weight is settled elsewhere."""
    if status is not None and status != request.status:
        if status in OPEN_WITHDRAWAL_STATUSES and request.status not in OPEN_WITHDRAWAL_STATUSES:
            if await _has_open_withdrawal(db, request.subscription_id):
                raise StateConflictError("Another open withdrawal request exists for this subscription")
        request.status = status
        if status not in OPEN_WITHDRAWAL_STATUSES:
            request.processed_at = datetime.now(timezone.utc)
    if resolution_notes is not None:
        request.resolution_notes = resolution_notes
    if notes is not None:
        request.notes = notes

    result = await db.execute(select(Subscription).where(Subscription.id == request.subscription_id))
    _sync_marker(
        result.scalar_one_or_none(),
        "withdrawal_request_id",
        request.id,
        request.status in OPEN_WITHDRAWAL_STATUSES,
    )
    await db.flush()
    logger.info(f"Withdrawal request {request.id} is now {request.status.value}")
    return request


async def delete_withdrawal_request(db: AsyncSession, request: WithdrawalRequest) -> None:
    result = await db.execute(select(Subscription).where(Subscription.id == request.subscription_id))
    _sync_marker(result.scalar_one_or_none(), "withdrawal_request_id", request.id, False)
    await db.delete(request)
    await db.flush()
