"""
Typed Stripe events.

A verified Stripe event is decoded into exactly one of the payload classes
below. Handlers work with these instead of digging through raw dicts, so a
missing field is an explicit None check.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from shared.errors import EventUndecodableError


class EventKind(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    INVOICE_FINALIZATION_FAILED = "invoice_finalization_failed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    UNRECOGNIZED = "unrecognized"


STRIPE_TYPE_TO_KIND = {
    "invoice.payment_succeeded": EventKind.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": EventKind.PAYMENT_FAILED,
    "invoice.finalization_failed": EventKind.INVOICE_FINALIZATION_FAILED,
    "customer.subscription.updated": EventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_DELETED,
}


@dataclass(frozen=True)
class _StripeEvent:
    event_id: str
    event_type: str
    livemode: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class PaymentSucceeded(_StripeEvent):
    invoice_id: Optional[str] = None
    billing_reason: Optional[str] = None
    subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    paid_at: Optional[int] = None
    period_start: Optional[int] = None
    period_end: Optional[int] = None
    created: Optional[int] = None

    kind = EventKind.PAYMENT_SUCCEEDED


@dataclass(frozen=True)
class InvoiceFailed(_StripeEvent):
    """invoice.payment_failed and invoice.finalization_failed share a payload."""

    invoice_id: Optional[str] = None
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None

    @property
    def kind(self) -> EventKind:
        return STRIPE_TYPE_TO_KIND[self.event_type]


@dataclass(frozen=True)
class SubscriptionUpdated(_StripeEvent):
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[str] = None
    cancel_at_period_end: bool = False

    kind = EventKind.SUBSCRIPTION_UPDATED


@dataclass(frozen=True)
class SubscriptionDeleted(_StripeEvent):
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None

    kind = EventKind.SUBSCRIPTION_DELETED


@dataclass(frozen=True)
class UnrecognizedEvent(_StripeEvent):
    kind = EventKind.UNRECOGNIZED


SubscriptionEvent = Union[
    PaymentSucceeded,
    InvoiceFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    UnrecognizedEvent,
]


def get_path(obj: Any, *path: str) -> Any:
    """Walk nested Stripe objects / dicts, returning None on any gap.

    Uses `in` and item access only; StripeObject is not a dict on every
    SDK version and may have no `.get`.
    """
    for key in path:
        if obj is None or isinstance(obj, (str, bytes, int, float, list)):
            return None
        try:
            if key not in obj:
                return None
            obj = obj[key]
        except (TypeError, KeyError):
            return None
    return obj


def _id_of(value: Any) -> Optional[str]:
    """Stripe fields may be a bare ID or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return get_path(value, "id")


def _subscription_line(invoice: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    lines = get_path(invoice, "lines", "data") or []
    for line in lines:
        if get_path(line, "type") == "subscription":
            return line
    return lines[0] if lines else None


def _invoice_subscription_id(invoice: Mapping[str, Any], line: Optional[Mapping[str, Any]]) -> Optional[str]:
    return (
        _id_of(get_path(invoice, "subscription"))
        or _id_of(get_path(invoice, "parent", "subscription_details", "subscription"))
        or _id_of(get_path(line, "subscription"))
        or _id_of(get_path(line, "parent", "subscription_item_details", "subscription"))
    )


def _line_price_id(line: Optional[Mapping[str, Any]]) -> Optional[str]:
    return (
        _id_of(get_path(line, "price"))
        or _id_of(get_path(line, "plan"))
        or _id_of(get_path(line, "pricing", "price_details", "price"))
    )


def _decode_payment_succeeded(base: dict, invoice: Mapping[str, Any]) -> PaymentSucceeded:
    line = _subscription_line(invoice)
    return PaymentSucceeded(
        **base,
        invoice_id=get_path(invoice, "id"),
        billing_reason=get_path(invoice, "billing_reason"),
        subscription_id=_invoice_subscription_id(invoice, line),
        price_id=_line_price_id(line),
        customer_id=_id_of(get_path(invoice, "customer")),
        customer_email=get_path(invoice, "customer_email") or None,
        paid_at=get_path(invoice, "status_transitions", "paid_at"),
        period_start=get_path(line, "period", "start"),
        period_end=get_path(line, "period", "end"),
        created=get_path(invoice, "created"),
    )


def _decode_invoice_failed(base: dict, invoice: Mapping[str, Any]) -> InvoiceFailed:
    line = _subscription_line(invoice)
    return InvoiceFailed(
        **base,
        invoice_id=get_path(invoice, "id"),
        subscription_id=_invoice_subscription_id(invoice, line),
        customer_id=_id_of(get_path(invoice, "customer")),
        customer_email=get_path(invoice, "customer_email") or None,
    )


def _decode_subscription_updated(base: dict, subscription: Mapping[str, Any]) -> SubscriptionUpdated:
    return SubscriptionUpdated(
        **base,
        subscription_id=get_path(subscription, "id"),
        customer_id=_id_of(get_path(subscription, "customer")),
        status=get_path(subscription, "status"),
        cancel_at_period_end=bool(get_path(subscription, "cancel_at_period_end")),
    )


def _decode_subscription_deleted(base: dict, subscription: Mapping[str, Any]) -> SubscriptionDeleted:
    return SubscriptionDeleted(
        **base,
        subscription_id=get_path(subscription, "id"),
        customer_id=_id_of(get_path(subscription, "customer")),
    )


_DECODERS = {
    EventKind.PAYMENT_SUCCEEDED: _decode_payment_succeeded,
    EventKind.PAYMENT_FAILED: _decode_invoice_failed,
    EventKind.INVOICE_FINALIZATION_FAILED: _decode_invoice_failed,
    EventKind.SUBSCRIPTION_UPDATED: _decode_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: _decode_subscription_deleted,
}


def decode_event(stripe_event: Mapping[str, Any]) -> SubscriptionEvent:
    """
    Decode a verified Stripe event into its typed payload.

    Args:
        stripe_event: Event returned by stripe.Webhook.construct_event (or a dict)

    Returns:
        One of the SubscriptionEvent payload classes

    Raises:
        EventUndecodableError: The envelope has no id, type or data.object
    """
    event_id = get_path(stripe_event, "id")
    event_type = get_path(stripe_event, "type")
    obj = get_path(stripe_event, "data", "object")

    if not event_type:
        raise EventUndecodableError("Event has no type")
    if not event_id:
        raise EventUndecodableError("Event has no id")
    if obj is None:
        raise EventUndecodableError("Event has no data.object")

    base = {
        "event_id": event_id,
        "event_type": event_type,
        "livemode": bool(get_path(stripe_event, "livemode")),
        "raw": obj,
    }

    kind = STRIPE_TYPE_TO_KIND.get(event_type, EventKind.UNRECOGNIZED)
    decoder = _DECODERS.get(kind)
    if decoder is None:
        return UnrecognizedEvent(**base)
    return decoder(base, obj)
