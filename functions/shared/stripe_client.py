"""
Stripe client helpers.

Wraps the few Stripe SDK calls the webhook needs so each one is logged as an
external call and signature problems surface as our own error types.
"""

import logging
import time
from typing import Optional, Union

import stripe

from shared.config import STRIPE_API_VERSION
from shared.errors import EventUndecodableError, SignatureInvalidError
from shared.events import SubscriptionEvent, decode_event, get_path
from shared.logging_utils import log_external_call

logger = logging.getLogger(__name__)


def configure_stripe(api_key: str, api_version: str = STRIPE_API_VERSION) -> None:
    """Set the SDK's global API key and pinned API version."""
    stripe.api_key = api_key
    stripe.api_version = api_version


def verify_and_decode(
    raw_body: Union[bytes, str],
    signature: str,
    secret: str,
) -> SubscriptionEvent:
    """
    Verify a webhook signature against the raw request body and decode it.

    The body must be exactly what Stripe sent; re-serialized JSON will not
    match the signature.

    Raises:
        SignatureInvalidError: Signature missing, malformed, stale or wrong
        EventUndecodableError: Body is not a Stripe event
    """
    try:
        stripe_event = stripe.Webhook.construct_event(raw_body, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise SignatureInvalidError(str(e) or "Invalid signature") from e
    except ValueError as e:
        raise EventUndecodableError(f"Invalid payload: {e}") from e

    return decode_event(stripe_event)


def _timed_call(operation: str, func, *args, **kwargs):
    start = time.time()
    try:
        result = func(*args, **kwargs)
    except stripe.StripeError as e:
        log_external_call(logger, "stripe", operation, False, (time.time() - start) * 1000, error=str(e))
        raise
    log_external_call(logger, "stripe", operation, True, (time.time() - start) * 1000)
    return result


def retrieve_subscription(subscription_id: str):
    return _timed_call("Subscription.retrieve", stripe.Subscription.retrieve, subscription_id)


def update_subscription(
    subscription_id: str,
    cancel_at: Optional[int] = None,
    cancel_at_period_end: Optional[bool] = None,
):
    """Schedule cancellation of a subscription, either at a timestamp or at period end."""
    params = {}
    if cancel_at is not None:
        params["cancel_at"] = cancel_at
    if cancel_at_period_end is not None:
        params["cancel_at_period_end"] = cancel_at_period_end
    if not params:
        raise ValueError("update_subscription needs cancel_at or cancel_at_period_end")

    return _timed_call("Subscription.modify", stripe.Subscription.modify, subscription_id, **params)


def retrieve_customer(customer_id: str):
    return _timed_call("Customer.retrieve", stripe.Customer.retrieve, customer_id)


def resolve_customer_email(email: Optional[str], customer_id: Optional[str]) -> Optional[str]:
    """Prefer the email on the event; otherwise look the customer up in Stripe.

    Returns:
        The email, or None if it cannot be resolved (no customer ID,
        deleted customer, or customer without an email).
    """
    if email:
        return email
    if not customer_id:
        return None

    customer = retrieve_customer(customer_id)
    if get_path(customer, "deleted"):
        logger.info(f"Stripe customer {customer_id} is deleted")
        return None
    return get_path(customer, "email") or None
