"""
Typed provider (Stripe) events.

Inbound payloads are parsed into a closed set of event models, one per handled
event type, each tagged with a ``Literal`` type. Anything outside that set
becomes an ``UnhandledEvent`` so that new provider event types are acknowledged
instead of treated as errors.

Amounts arrive in minor units and are exposed in major units as ``Decimal``.
Unix timestamps are exposed as naive UTC datetimes; absent, zero or
non-numeric timestamps become ``None``.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union, get_args

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from creditflow.exceptions import MalformedEvent


def _expandable_ref(value: Any) -> Any:
    """Collapse an expanded provider object to its id."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _unix_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _minor_units(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value)) / Decimal(100)
    except ArithmeticError as e:
        raise ValueError(f"not an amount: {value!r}") from e


Ref = Annotated[Optional[str], BeforeValidator(_expandable_ref)]
Timestamp = Annotated[Optional[datetime], BeforeValidator(_unix_timestamp)]
Amount = Annotated[Decimal, BeforeValidator(_minor_units)]
# Provider sends null currency on objects that move no money (setup-mode checkout)
Currency = Annotated[str, BeforeValidator(lambda value: value or "usd")]


class ProviderObject(BaseModel):
    """Base for provider payload objects; unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str
    metadata: Optional[dict[str, Any]] = None


# Checkout


class CheckoutSession(ProviderObject):
    customer: Ref = None
    client_reference_id: Optional[str] = None
    customer_email: Optional[str] = None
    mode: Optional[str] = None
    payment_intent: Ref = None
    subscription: Ref = None
    amount_total: Amount = Decimal("0")
    currency: Currency = "usd"
    payment_status: Optional[str] = None


# Invoices


class Invoice(ProviderObject):
    customer: Ref = None
    subscription: Ref = None
    parent: Optional[dict[str, Any]] = None
    payment_intent: Ref = None
    number: Optional[str] = None
    amount_paid: Amount = Decimal("0")
    amount_due: Amount = Decimal("0")
    currency: Currency = "usd"
    attempt_count: int = 0
    period_start: Timestamp = None
    period_end: Timestamp = None
    next_payment_attempt: Timestamp = None
    last_finalization_error: Optional[dict[str, Any]] = None

    @property
    def subscription_ref(self) -> Optional[str]:
        """Subscription id, from the legacy field or the newer ``parent`` block."""
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _expandable_ref(details.get("subscription"))

    @property
    def failure_reason(self) -> str:
        error = self.last_finalization_error or {}
        return error.get("message") or error.get("code") or "Unknown failure reason"


# Payment intents and charges


class PaymentIntent(ProviderObject):
    customer: Ref = None
    invoice: Ref = None
    payment_method: Ref = None
    amount: Amount = Decimal("0")
    currency: Currency = "usd"
    description: Optional[str] = None
    last_payment_error: Optional[dict[str, Any]] = None
    cancellation_reason: Optional[str] = None

    @property
    def failure_reason(self) -> str:
        error = self.last_payment_error or {}
        return error.get("message") or error.get("code") or "Payment failed"


class Refund(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    amount: Amount = Decimal("0")
    reason: Optional[str] = None
    status: Optional[str] = None


class RefundList(BaseModel):
    data: list[Refund] = Field(default_factory=list)


class Charge(ProviderObject):
    customer: Ref = None
    payment_intent: Ref = None
    amount_refunded: Amount = Decimal("0")
    currency: Currency = "usd"
    refunds: Optional[RefundList] = None

    @property
    def latest_refund(self) -> Optional[Refund]:
        if self.refunds and self.refunds.data:
            return self.refunds.data[0]
        return None


class PaymentMethod(ProviderObject):
    customer: Ref = None
    type: Optional[str] = None


# Subscriptions


class Recurring(BaseModel):
    interval: str = "month"
    interval_count: int = 1


class Price(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    nickname: Optional[str] = None
    product: Any = None
    unit_amount: Amount = Decimal("0")
    currency: Currency = "usd"
    recurring: Optional[Recurring] = None

    @property
    def plan_name(self) -> str:
        if self.nickname:
            return self.nickname
        if isinstance(self.product, str) and self.product:
            return self.product
        if isinstance(self.product, dict):
            return self.product.get("name") or self.product.get("id") or "Unknown Plan"
        return "Unknown Plan"


class SubscriptionItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    price: Optional[Price] = None
    current_period_start: Timestamp = None
    current_period_end: Timestamp = None


class SubscriptionItemList(BaseModel):
    data: list[SubscriptionItem] = Field(default_factory=list)


class ProviderSubscription(ProviderObject):
    customer: Ref = None
    status: str = "active"
    items: Optional[SubscriptionItemList] = None
    current_period_start: Timestamp = None
    current_period_end: Timestamp = None
    billing_cycle_anchor: Timestamp = None
    created: Timestamp = None
    trial_start: Timestamp = None
    trial_end: Timestamp = None
    canceled_at: Timestamp = None
    ended_at: Timestamp = None

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        if self.items and self.items.data:
            return self.items.data[0]
        return None

    @property
    def price(self) -> Optional[Price]:
        item = self.first_item
        return item.price if item else None

    @property
    def period_start(self) -> Optional[datetime]:
        """Authoritative period start: item, then subscription, then anchor, then creation time."""
        item = self.first_item
        return (
            (item.current_period_start if item else None)
            or self.current_period_start
            or self.billing_cycle_anchor
            or self.created
        )

    @property
    def period_end(self) -> Optional[datetime]:
        item = self.first_item
        return (item.current_period_end if item else None) or self.current_period_end


# Event envelopes

ObjectT = TypeVar("ObjectT", bound=BaseModel)


class EventData(BaseModel, Generic[ObjectT]):
    object: ObjectT


class _ProviderEventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    created: Timestamp = None
    livemode: bool = False


class CheckoutSessionCompleted(_ProviderEventBase):
    type: Literal["checkout.session.completed"]
    data: EventData[CheckoutSession]


class InvoicePaymentSucceeded(_ProviderEventBase):
    type: Literal["invoice.payment_succeeded"]
    data: EventData[Invoice]


class InvoicePaymentFailed(_ProviderEventBase):
    type: Literal["invoice.payment_failed"]
    data: EventData[Invoice]


class InvoiceUpcoming(_ProviderEventBase):
    type: Literal["invoice.upcoming"]
    data: EventData[Invoice]


class PaymentMethodAttached(_ProviderEventBase):
    type: Literal["payment_method.attached"]
    data: EventData[PaymentMethod]


class SubscriptionCreated(_ProviderEventBase):
    type: Literal["customer.subscription.created"]
    data: EventData[ProviderSubscription]


class SubscriptionUpdated(_ProviderEventBase):
    type: Literal["customer.subscription.updated"]
    data: EventData[ProviderSubscription]


class SubscriptionDeleted(_ProviderEventBase):
    type: Literal["customer.subscription.deleted"]
    data: EventData[ProviderSubscription]


class SubscriptionTrialWillEnd(_ProviderEventBase):
    type: Literal["customer.subscription.trial_will_end"]
    data: EventData[ProviderSubscription]


class PaymentIntentCreated(_ProviderEventBase):
    type: Literal["payment_intent.created"]
    data: EventData[PaymentIntent]


class PaymentIntentSucceeded(_ProviderEventBase):
    type: Literal["payment_intent.succeeded"]
    data: EventData[PaymentIntent]


class PaymentIntentFailed(_ProviderEventBase):
    type: Literal["payment_intent.payment_failed"]
    data: EventData[PaymentIntent]


class PaymentIntentCanceled(_ProviderEventBase):
    type: Literal["payment_intent.canceled"]
    data: EventData[PaymentIntent]


class ChargeRefunded(_ProviderEventBase):
    type: Literal["charge.refunded"]
    data: EventData[Charge]


class UnhandledEvent(_ProviderEventBase):
    """Any provider event type outside the handled set."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


KnownEvent = Union[
    CheckoutSessionCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    InvoiceUpcoming,
    PaymentMethodAttached,
    SubscriptionCreated,
    SubscriptionUpdated,
    SubscriptionDeleted,
    SubscriptionTrialWillEnd,
    PaymentIntentCreated,
    PaymentIntentSucceeded,
    PaymentIntentFailed,
    PaymentIntentCanceled,
    ChargeRefunded,
]

ProviderEvent = Union[KnownEvent, UnhandledEvent]

KNOWN_EVENT_MODELS: dict[str, type[_ProviderEventBase]] = {
    get_args(model.model_fields["type"].annotation)[0]: model
    for model in get_args(KnownEvent)
}


def parse_provider_event(payload: dict[str, Any]) -> ProviderEvent:
    """
    Parse a verified provider payload into a typed event.

    Args:
        payload: Decoded JSON event body

    Returns:
        The matching known event model, or UnhandledEvent for other types

    Raises:
        MalformedEvent: If the payload is not an event or its object does not validate
    """
    if not isinstance(payload, dict):
        raise MalformedEvent("Event payload must be a JSON object")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEvent("Event payload has no type", context={"event_id": payload.get("id")})

    model = KNOWN_EVENT_MODELS.get(event_type, UnhandledEvent)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedEvent(
            f"Invalid {event_type} payload: {e.error_count()} validation error(s)",
            context={"event_id": payload.get("id"), "event_type": event_type},
        ) from e
