import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from app.core.security import AuthSession
from app.models.cancellation_request import CancellationRequest
from app.models.enums import (
    CancellationRequestStatus,
    Metal,
    SubscriptionStatus,
    UserRole,
    WeightUnit,
    WithdrawalRequestStatus,
)
from app.models.withdrawal_request import WithdrawalRequest
from app.services import request_workflow as workflow
from tests.conftest import make_subscription, make_user, set_prices


async def test_cancellation_request_marks_subscription(db, user, user_session):
    subscription = await make_subscription(db, user)

    request = await workflow.create_cancellation_request(
        db, user_session, subscription.id, reason="Moving abroad"
    )

    assert request.status == CancellationRequestStatus.pending
    assert request.user_id == user.id
    assert subscription.cancellation_request_id == request.id
    # the subscription itself is untouched
    assert subscription.status == SubscriptionStatus.active


async def test_second_cancellation_is_rejected(db, user, user_session):
    subscription = await make_subscription(db, user)
    await workflow.create_cancellation_request(db, user_session, subscription.id)

    with pytest.raises(StateConflictError):
        await workflow.create_cancellation_request(db, user_session, subscription.id)


@pytest.mark.parametrize(
    "status",
    [SubscriptionStatus.canceled, SubscriptionStatus.canceling, SubscriptionStatus.past_due, SubscriptionStatus.pending_payment],
)
async def test_cancellation_needs_actionable_status(db, user, user_session, status):
    subscription = await make_subscription(db, user, status=status)
    with pytest.raises(StateConflictError):
        await workflow.create_cancellation_request(db, user_session, subscription.id)


async def test_cancellation_blocked_by_open_withdrawal(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=2.0)
    await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.0)

    with pytest.raises(StateConflictError) as exc:
        await workflow.create_cancellation_request(db, user_session, subscription.id)
    assert exc.value.details["pending_withdrawal"] is True


async def test_other_users_subscription_is_forbidden(db, user):
    stranger = await make_user(db, email="stranger@example.com")
    subscription = await make_subscription(db, user)

    with pytest.raises(PermissionDeniedError):
        await workflow.create_cancellation_request(db, AuthSession(stranger, "t"), subscription.id)


async def test_missing_subscription(db, user_session):
    with pytest.raises(NotFoundError):
        await workflow.create_cancellation_request(db, user_session, 404)


async def test_review_to_terminal_clears_marker(db, user, user_session):
    subscription = await make_subscription(db, user)
    request = await workflow.create_cancellation_request(db, user_session, subscription.id)

    await workflow.update_cancellation_request(db, request, status=CancellationRequestStatus.in_review)
    assert subscription.cancellation_request_id == request.id
    assert request.processed_at is None

    await workflow.update_cancellation_request(
        db, request, status=CancellationRequestStatus.rejected, resolution_notes="Within minimum term"
    )
    assert request.processed_at is not None
    assert request.resolution_notes == "Within minimum term"
    assert subscription.cancellation_request_id is None
    assert subscription.status == SubscriptionStatus.active

    # a fresh request is allowed once the previous one is closed
    again = await workflow.create_cancellation_request(db, user_session, subscription.id)
    assert again.id != request.id


async def test_approved_request_stays_open(db, user, user_session):
    subscription = await make_subscription(db, user)
    request = await workflow.create_cancellation_request(db, user_session, subscription.id)
    await workflow.update_cancellation_request(db, request, status=CancellationRequestStatus.approved)
    assert subscription.cancellation_request_id == request.id
    assert request.processed_at is None


async def test_open_request_uniqueness_enforced_by_database(db, user):
    subscription = await make_subscription(db, user)
    db.add(CancellationRequest(subscription_id=subscription.id, user_id=user.id))
    await db.flush()

    db.add(CancellationRequest(subscription_id=subscription.id, user_id=user.id))
    with pytest.raises(IntegrityError):
        await db.flush()


async def test_racing_duplicate_insert_is_a_conflict(db, user):
    subscription = await make_subscription(db, user)
    db.add(CancellationRequest(subscription_id=subscription.id, user_id=user.id))
    await db.flush()

    duplicate = CancellationRequest(subscription_id=subscription.id, user_id=user.id)
    with pytest.raises(StateConflictError):
        await workflow._insert_request(db, duplicate, "cancellation", workflow._has_open_cancellation)


async def test_other_integrity_failures_are_persistence_errors(db, user):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    broken = WithdrawalRequest(
        subscription_id=subscription.id,
        user_id=user.id,
        metal=Metal.gold,
        requested_weight=None,
        requested_unit=WeightUnit.g,
    )

    with pytest.raises(PersistenceError):
        await workflow._insert_request(db, broken, "withdrawal", workflow._has_open_withdrawal)

    # the savepoint rolled back; the session is still usable
    assert await workflow._has_open_withdrawal(db, subscription.id) is False


async def test_list_and_delete_cancellation_requests(db, user, user_session, admin_session):
    subscription = await make_subscription(db, user)
    request = await workflow.create_cancellation_request(db, user_session, subscription.id)

    assert [r.id for r in await workflow.list_cancellation_requests(db, user_id=user.id)] == [request.id]
    assert await workflow.list_cancellation_requests(db, status=CancellationRequestStatus.completed) == []
    assert (await workflow.get_cancellation_request(db, request.id, admin_session)).id == request.id

    await workflow.delete_cancellation_request(db, request)
    assert subscription.cancellation_request_id is None
    assert await workflow.list_cancellation_requests(db) == []


async def test_withdrawal_request_estimates_value(db, user, user_session):
    await set_prices(db, gold_per_oz=2000.0)
    subscription = await make_subscription(db, user, accumulated_weight=3.0)

    request = await workflow.create_withdrawal_request(
        db, user_session, subscription.id, requested_weight=2.0, notes="Ship to home"
    )

    assert request.status == WithdrawalRequestStatus.pending
    assert request.metal == Metal.gold
    assert request.requested_unit == WeightUnit.g
    assert request.estimated_value == round(2.0 * 2000.0 / 31.1035, 2)
    assert subscription.withdrawal_request_id == request.id


async def test_withdrawal_without_price_estimates_zero(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    request = await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.0)
    assert request.estimated_value == 0.0


async def test_withdrawal_below_minimum(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=0.5, target_weight=2.0)
    with pytest.raises(StateConflictError):
        await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=0.5)


async def test_withdrawal_exceeding_accumulation(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=1.2)
    with pytest.raises(ValidationError) as exc:
        await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.5)
    assert exc.value.details["available"] == 1.2


async def test_withdrawal_in_other_unit_is_converted(db, user, user_session):
    subscription = await make_subscription(
        db, user, metal=Metal.silver, target_unit=WeightUnit.oz, target_weight=10.0, accumulated_weight=4.0
    )
    request = await workflow.create_withdrawal_request(
        db, user_session, subscription.id, requested_weight=62.0, requested_unit=WeightUnit.g
    )
    assert request.requested_unit == WeightUnit.g

    with pytest.raises(StateConflictError):
        await workflow.create_withdrawal_request(
            db, user_session, subscription.id, requested_weight=1.0, requested_unit=WeightUnit.oz
        )


@pytest.mark.parametrize("weight", [0, -1.0, float("nan"), float("inf")])
async def test_withdrawal_weight_must_be_positive(db, user, user_session, weight):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    with pytest.raises(ValidationError):
        await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=weight)


async def test_withdrawal_blocked_by_open_cancellation(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    await workflow.create_cancellation_request(db, user_session, subscription.id)
    with pytest.raises(StateConflictError):
        await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.0)


async def test_withdrawal_fulfilment_clears_marker(db, user, user_session):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    request = await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.0)

    for status in (
        WithdrawalRequestStatus.approved,
        WithdrawalRequestStatus.processing,
        WithdrawalRequestStatus.out_for_delivery,
    ):
        await workflow.update_withdrawal_request(db, request, status=status)
        assert subscription.withdrawal_request_id == request.id

    await workflow.update_withdrawal_request(
        db, request, status=WithdrawalRequestStatus.delivered, resolution_notes="Signed for"
    )
    assert subscription.withdrawal_request_id is None
    assert request.processed_at is not None

    listed = await workflow.list_withdrawal_requests(db, metal=Metal.gold, subscription_id=subscription.id)
    assert [r.id for r in listed] == [request.id]


async def test_admin_can_view_any_withdrawal(db, user, user_session, admin):
    subscription = await make_subscription(db, user, accumulated_weight=3.0)
    request = await workflow.create_withdrawal_request(db, user_session, subscription.id, requested_weight=1.0)

    admin_view = await workflow.get_withdrawal_request(db, request.id, AuthSession(admin, "t"))
    assert admin_view.id == request.id

    stranger = await make_user(db, email="nosy@example.com", role=UserRole.user)
    with pytest.raises(PermissionDeniedError):
        await workflow.get_withdrawal_request(db, request.id, AuthSession(stranger, "t"))

    await workflow.delete_withdrawal_request(db, request)
    assert subscription.withdrawal_request_id is None
