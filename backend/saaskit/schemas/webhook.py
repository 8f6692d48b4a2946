"""
Typed Stripe webhook events.

Only the fields the reconciler reads are declared; everything else in the
payload is ignored. Event types outside ``HANDLED_EVENT_TYPES`` parse to
``UnhandledEvent``.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

SubscriptionStatus = Literal[
    "active",
    "past_due",
    "canceled",
    "trialing",
    "incomplete",
    "incomplete_expired",
    "unpaid",
]


def _expandable_id(value: Any) -> Any:
    """Stripe pode mandar o objeto expandido em vez do id."""
    if isinstance(value, dict):
        return value.get("id")
    return value


ExpandableId = Annotated[Optional[str], BeforeValidator(_expandable_id)]


class _StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class StripePrice(_StripeModel):
    id: str
    product: ExpandableId = None


class StripeSubscriptionItem(_StripeModel):
    price: StripePrice
    # API versions >= 2025-03 moved the period to the item
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeList(_StripeModel):
    data: list[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscription(_StripeModel):
    id: str
    customer: Annotated[str, BeforeValidator(_expandable_id)]
    status: SubscriptionStatus
    items: StripeList = Field(default_factory=StripeList)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    trial_start: Optional[int] = None
    trial_end: Optional[int] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def first_item(self) -> Optional[StripeSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item else None

    @property
    def period_start(self) -> Optional[int]:
        if self.current_period_start is not None:
            return self.current_period_start
        item = self.first_item
        return item.current_period_start if item else None

    @property
    def period_end(self) -> Optional[int]:
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None


class StripeCheckoutSession(_StripeModel):
    id: str
    customer: ExpandableId = None
    subscription: ExpandableId = None
    client_reference_id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class StripeInvoice(_StripeModel):
    id: str
    customer: ExpandableId = None
    subscription: ExpandableId = None
    amount_due: Optional[int] = None
    amount_paid: Optional[int] = None
    attempt_count: Optional[int] = None


class SubscriptionEventData(_StripeModel):
    object: StripeSubscription


class CheckoutEventData(_StripeModel):
    object: StripeCheckoutSession


class InvoiceEventData(_StripeModel):
    object: StripeInvoice


class _StripeEvent(_StripeModel):
    id: str
    created: Optional[int] = None
    livemode: bool = False


class SubscriptionUpsertEvent(_StripeEvent):
    type: Literal["customer.subscription.created", "customer.subscription.updated"]
    data: SubscriptionEventData


class SubscriptionDeletedEvent(_StripeEvent):
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionEventData


class CheckoutCompletedEvent(_StripeEvent):
    type: Literal["checkout.session.completed"]
    data: CheckoutEventData


class InvoiceEvent(_StripeEvent):
    type: Literal["invoice.payment_succeeded", "invoice.payment_failed"]
    data: InvoiceEventData


class UnhandledEvent(_StripeModel):
    id: str
    type: str


WebhookEvent = Annotated[
    Union[SubscriptionUpsertEvent, SubscriptionDeletedEvent, CheckoutCompletedEvent, InvoiceEvent],
    Field(discriminator="type"),
]

HANDLED_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "checkout.session.completed",
        "invoice.payment_succeeded",
        "invoice.payment_failed",
    }
)

_webhook_event_adapter: TypeAdapter = TypeAdapter(WebhookEvent)


def parse_webhook_event(
    payload: dict[str, Any],
) -> Union[SubscriptionUpsertEvent, SubscriptionDeletedEvent, CheckoutCompletedEvent, InvoiceEvent, UnhandledEvent]:
    """
    Parse a verified webhook body into a typed event.

    Raises:
        pydantic.ValidationError: handled event type with missing/invalid fields.
    """
    if payload.get("type") not in HANDLED_EVENT_TYPES:
        return UnhandledEvent.model_validate(payload)
    return _webhook_event_adapter.validate_python(payload)
