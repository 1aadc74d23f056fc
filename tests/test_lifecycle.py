import pytest

from app.core.errors import StateConflictError, ValidationError
from app.models.enums import (
    CancellationRequestStatus,
    Metal,
    OrderStatus,
    SubscriptionStatus,
    WeightUnit,
    WithdrawalRequestStatus,
)
from app.models.subscription import Subscription
from app.services.lifecycle import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    can_cancel,
    can_modify,
    can_transition,
    can_withdraw,
    is_terminal,
    status_label,
    subscription_actions,
    transition,
    validate_monthly_investment,
)

S = SubscriptionStatus


def _subscription(status=S.active, metal=Metal.gold, accumulated=0.0, target=2.0, unit=WeightUnit.g, **fields):
    return Subscription(
        id=7,
        status=status,
        metal=metal,
        accumulated_weight=accumulated,
        target_weight=target,
        target_unit=unit,
        cancel_at_period_end=False,
        **fields,
    )


@pytest.mark.parametrize("status", list(SubscriptionStatus))
def test_can_cancel_only_from_active_or_trialing(status):
    assert can_cancel(status) == (status in (S.active, S.trialing))


def test_pending_withdrawal_blocks_cancel():
    assert not can_cancel(S.active, has_pending_withdrawal=True)


@pytest.mark.parametrize("status", list(SubscriptionStatus))
def test_can_modify_only_from_active_or_trialing(status):
    assert can_modify(status) == (status in (S.active, S.trialing))


def test_outstanding_requests_block_modify():
    assert not can_modify(S.active, has_pending_cancellation=True)
    assert not can_modify(S.trialing, has_pending_withdrawal=True)


def test_gold_withdrawal_minimum():
    assert not can_withdraw(_subscription(accumulated=0.5, target=2.0))
    assert can_withdraw(_subscription(accumulated=1.2, target=2.0))


def test_gold_target_reached_below_minimum():
    assert can_withdraw(_subscription(accumulated=0.5, target=0.5))


def test_gold_minimum_checked_in_grams_when_stored_in_ounces():
    # 0.05 oz is about 1.55 g
    assert can_withdraw(_subscription(accumulated=0.05, target=1.0, unit=WeightUnit.oz))


def test_silver_withdrawal_minimum():
    silver = dict(metal=Metal.silver, unit=WeightUnit.oz, target=10.0)
    assert not can_withdraw(_subscription(accumulated=3.0, **silver))
    assert can_withdraw(_subscription(accumulated=3.5, **silver))


def test_pending_cancellation_blocks_withdraw():
    assert not can_withdraw(_subscription(accumulated=1.2), has_pending_cancellation=True)


@pytest.mark.parametrize("status", [S.canceling, S.past_due, S.canceled, S.pending_payment])
def test_withdraw_requires_actionable_status(status):
    assert not can_withdraw(_subscription(status=status, accumulated=5.0))


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert is_terminal(status)
        assert TRANSITIONS[status] == frozenset()


def test_transition_graph_covers_every_status():
    assert set(TRANSITIONS) == set(SubscriptionStatus)


@pytest.mark.parametrize(
    "current,new",
    [
        (S.pending_payment, S.active),
        (S.pending_payment, S.incomplete_expired),
        (S.active, S.canceling),
        (S.canceling, S.active),
        (S.trialing, S.canceling),
        (S.canceling, S.trialing),
        (S.active, S.past_due),
        (S.past_due, S.unpaid),
        (S.incomplete, S.active),
    ],
)
def test_allowed_transitions(current, new):
    assert can_transition(current, new)


@pytest.mark.parametrize(
    "current,new",
    [
        (S.canceled, S.active),
        (S.incomplete_expired, S.active),
        (S.active, S.pending_payment),
        (S.canceling, S.past_due),
        (S.pending_payment, S.canceled),
    ],
)
def test_rejected_transitions(current, new):
    assert not can_transition(current, new)


def test_transition_updates_status_and_cancel_flag():
    subscription = _subscription(status=S.active)
    transition(subscription, S.canceling)
    assert subscription.status == S.canceling
    assert subscription.cancel_at_period_end is True
    transition(subscription, "active")
    assert subscription.status == S.active
    assert subscription.cancel_at_period_end is False


def test_transition_to_same_status_is_noop():
    subscription = _subscription(status=S.active)
    assert transition(subscription, S.active) is subscription
    assert subscription.updated_at is None


def test_invalid_transition_raises_conflict():
    subscription = _subscription(status=S.canceled)
    with pytest.raises(StateConflictError) as exc:
        transition(subscription, S.active)
    assert exc.value.details == {"subscription_id": 7, "from": "canceled", "to": "active"}
    assert subscription.status == S.canceled


def test_actions_follow_request_markers():
    subscription = _subscription(accumulated=1.5, cancellation_request_id=3)
    actions = subscription_actions(subscription)
    assert actions.has_pending_cancellation
    assert not actions.can_cancel
    assert not actions.can_modify
    assert not actions.can_withdraw

    subscription = _subscription(accumulated=1.5, withdrawal_request_id=4)
    actions = subscription_actions(subscription)
    assert actions.has_pending_withdrawal
    assert not actions.can_cancel
    assert not actions.can_modify
    assert not actions.can_withdraw


def test_actions_for_clean_active_subscription():
    actions = subscription_actions(_subscription(accumulated=1.5))
    assert actions.can_cancel and actions.can_modify and actions.can_withdraw


@pytest.mark.parametrize("amount", [10, 10.0, "250", 1000])
def test_monthly_investment_in_range(amount):
    assert validate_monthly_investment(amount) == float(amount)


@pytest.mark.parametrize("amount", [9.99, 0, 1000.01, "abc", None, float("nan"), float("inf"), "nan", "-inf"])
def test_monthly_investment_out_of_range(amount):
    with pytest.raises(ValidationError):
        validate_monthly_investment(amount)


@pytest.mark.parametrize(
    "enum_cls",
    [SubscriptionStatus, CancellationRequestStatus, WithdrawalRequestStatus, OrderStatus],
)
def test_every_status_has_a_label(enum_cls):
    for member in enum_cls:
        assert status_label(member)


def test_labels():
    assert status_label(S.past_due) == "Past Due"
    assert status_label(WithdrawalRequestStatus.out_for_delivery) == "Out For Delivery"
