"""
PharaohVault Backend — Pydantic Schemas
All request/response models. The ORM is snake_case; the JSON surface is
camelCase. Requests accept either spelling.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from app.models.enums import (
    CancellationRequestStatus,
    Metal,
    OrderStatus,
    SubscriptionStatus,
    UserRole,
    WeightUnit,
    WithdrawalRequestStatus,
)
from app.services.lifecycle import status_label, subscription_actions
from app.services.pricing import project_subscription


class APIModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
        allow_inf_nan = False


class StatusLabelled(APIModel):
    status_label: Optional[str] = None

    @model_validator(mode="after")
    def _fill_status_label(self):
        if self.status_label is None and getattr(self, "status", None) is not None:
            self.status_label = status_label(self.status)
        return self


# ── Auth / Users ─────────────────────────────────────────────────────────────
class SignUpRequest(APIModel):
    email: str = Field(description="User email address")
    password: str = Field(min_length=8, description="Password (min 8 chars)")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None


class LoginRequest(APIModel):
    email: str
    password: str


class UserResponse(APIModel):
    id: int
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    billing_address: Optional[Dict[str, Any]]
    shipping_address: Optional[Dict[str, Any]]
    role: UserRole
    is_active: bool
    created_at: datetime


class UserUpdate(APIModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None


class AdminUserUpdate(UserUpdate):
    email: Optional[str] = None
    is_active: Optional[bool] = None
    role: Optional[UserRole] = None


class RoleUpdate(APIModel):
    role: UserRole


class TokenResponse(APIModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ── Subscriptions ────────────────────────────────────────────────────────────
class SubscriptionActionsResponse(APIModel):
    can_cancel: bool
    can_modify: bool
    can_withdraw: bool
    has_pending_cancellation: bool
    has_pending_withdrawal: bool


class ProjectionResponse(APIModel):
    target_value: float
    accumulated_value: float
    progress_percent: float
    trade_unit: WeightUnit
    normalized_target_weight: float
    months_to_target: int = 0


class SubscriptionResponse(StatusLabelled):
    id: int
    user_id: int
    metal: Metal
    plan_name: str
    target_weight: float
    target_unit: WeightUnit
    monthly_investment: float
    quantity: int
    accumulated_value: float
    accumulated_weight: float
    status: SubscriptionStatus
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    stripe_subscription_id: Optional[str]
    stripe_customer_id: Optional[str]
    cancellation_request_id: Optional[int]
    withdrawal_request_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    actions: Optional[SubscriptionActionsResponse] = None
    projection: Optional[ProjectionResponse] = None

    @classmethod
    def from_subscription(cls, subscription, spot_price_per_oz: Optional[float] = None) -> "SubscriptionResponse":
        response = cls.model_validate(subscription)
        response.actions = SubscriptionActionsResponse.model_validate(subscription_actions(subscription))
        if spot_price_per_oz:
            response.projection = ProjectionResponse.model_validate(
                project_subscription(subscription, spot_price_per_oz)
            )
        return response


class SubscriptionUpdate(APIModel):
    plan_name: Optional[str] = None
    target_weight: Optional[float] = None
    target_unit: Optional[WeightUnit] = None
    monthly_investment: Optional[float] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    accumulated_value: Optional[float] = None
    accumulated_weight: Optional[float] = None
    status: Optional[SubscriptionStatus] = None
    current_period_end: Optional[datetime] = None


class ModifyInvestmentRequest(APIModel):
    monthly_investment: float = Field(description="New monthly amount in USD, effective next billing cycle")


class DeletePendingResponse(APIModel):
    deleted: int


class ReconcileResponse(APIModel):
    expired: List[int]


class SyncResponse(APIModel):
    synced: int
    failed: int


# ── Checkout ─────────────────────────────────────────────────────────────────
class CheckoutRequest(APIModel):
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    metal: Optional[str] = None
    target_weight: Optional[float] = None
    target_unit: Optional[str] = None
    investment_amount: Optional[Union[int, float, str]] = None
    ui_mode: Optional[str] = Field(default=None, description="Override checkout mode: embedded, hosted")


class CheckoutResponse(APIModel):
    subscription_id: int
    session_id: str
    client_secret: Optional[str] = None
    url: Optional[str] = None


class CheckoutSessionStatus(APIModel):
    status: Optional[str]
    payment_status: Optional[str]
    customer_email: Optional[str]


class BillingConfigResponse(APIModel):
    stripe_mode: str
    publishable_key: str
    checkout_ui_mode: str


# ── Orders ───────────────────────────────────────────────────────────────────
class OrderResponse(StatusLabelled):
    id: int
    subscription_id: Optional[int]
    user_id: Optional[int]
    amount: float
    currency: str
    status: OrderStatus
    payment_status: str
    invoice_status: Optional[str]
    product_metadata: Optional[Dict[str, Any]]
    stripe_invoice_id: Optional[str]
    stripe_payment_intent_id: Optional[str]
    receipt_url: Optional[str]
    created_at: datetime


class OrderSettlementResponse(APIModel):
    state: str
    order: Optional[OrderResponse]


# ── Metal prices ─────────────────────────────────────────────────────────────
class MetalPriceResponse(APIModel):
    metal_symbol: Metal
    price: float = Field(description="USD per troy ounce")
    last_updated: datetime


# ── Cancellation requests ────────────────────────────────────────────────────
class CancellationRequestCreate(APIModel):
    subscription_id: int
    reason: Optional[str] = None
    details: Optional[str] = None
    preferred_cancellation_date: Optional[date] = None


class CancellationRequestUpdate(APIModel):
    status: Optional[CancellationRequestStatus] = None
    resolution_notes: Optional[str] = None


class CancellationRequestResponse(StatusLabelled):
    id: int
    subscription_id: int
    user_id: int
    reason: Optional[str]
    details: Optional[str]
    preferred_cancellation_date: Optional[date]
    status: CancellationRequestStatus
    resolution_notes: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]


# ── Withdrawal requests ──────────────────────────────────────────────────────
class WithdrawalRequestCreate(APIModel):
    subscription_id: int
    requested_weight: float
    requested_unit: Optional[WeightUnit] = None
    notes: Optional[str] = None


class WithdrawalRequestUpdate(APIModel):
    status: Optional[WithdrawalRequestStatus] = None
    resolution_notes: Optional[str] = None
    notes: Optional[str] = None


class WithdrawalRequestResponse(StatusLabelled):
    id: int
    subscription_id: int
    user_id: int
    metal: Metal
    requested_weight: float
    requested_unit: WeightUnit
    estimated_value: float
    notes: Optional[str]
    status: WithdrawalRequestStatus
    resolution_notes: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]


# ── Dashboard / Admin ────────────────────────────────────────────────────────
class DashboardStats(APIModel):
    total_invested: float
    total_paid: float
    monthly_invested: float
    user_count: int
    active_subscriptions: int
    pending_subscriptions: int


class UserStats(APIModel):
    total_invested: float
    total_paid: float
    monthly_invested: float
    accumulated_value: float
    accumulated_gold_grams: float
    accumulated_silver_ounces: float
    subscription_count: int
    active_subscriptions: int


class UserWithSubscriptions(APIModel):
    user: UserResponse
    subscriptions: List[SubscriptionResponse]


# ── Health ───────────────────────────────────────────────────────────────────
class HealthResponse(APIModel):
    status: str
    version: str
    environment: str
    stripe_mode: str
