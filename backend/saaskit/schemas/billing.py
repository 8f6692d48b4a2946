"""
Pydantic schemas for Billing API - plans, subscription overview, checkout.
"""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field

from saaskit.schemas.base import CamelModel


class PlanResponse(CamelModel):
    """Plano do catalogo exposto ao usuario."""

    plan_id: str
    name: str
    description: Optional[str] = None
    monthly_price_cents: int
    yearly_price_cents: int
    currency: str
    stripe_monthly_price_id: Optional[str] = None
    stripe_yearly_price_id: Optional[str] = None


class SubscriptionDetail(CamelModel):
    """Snapshot da assinatura do workspace."""

    workspace_id: UUID
    plan_id: str
    status: str
    external_subscription_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    billing_interval: Optional[str] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None


class PaymentMethodDetail(CamelModel):
    id: Optional[str] = None
    type: Optional[str] = None
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class SubscriptionOverviewData(CamelModel):
    subscription: Optional[SubscriptionDetail] = None
    plan: Optional[PlanResponse] = None
    payment_method: Optional[PaymentMethodDetail] = None


class SubscriptionOverviewResponse(CamelModel):
    success: bool = True
    data: SubscriptionOverviewData


class CheckoutRequest(CamelModel):
    """Request body for creating a Stripe Checkout Session."""

    plan_id: str = Field(..., min_length=1, max_length=50)
    interval: Literal["month", "year"] = "month"
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutResponse(CamelModel):
    checkout_url: str
    session_id: str


class PortalRequest(CamelModel):
    return_url: Optional[str] = None


class PortalResponse(CamelModel):
    portal_url: str


class WebhookAck(CamelModel):
    received: bool = True
