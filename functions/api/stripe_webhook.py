"""
Stripe Webhook Endpoint - POST /webhook

Keeps the Hasura `users` table in step with Stripe subscriptions:
- invoice.payment_succeeded (first invoice only): activate until paid_at + plan months
- invoice.payment_failed / invoice.finalization_failed: lapse access immediately
- customer.subscription.updated (canceled/unpaid): lapse access
- customer.subscription.deleted: lapse access

Requests are authenticated by the Stripe signature over the raw body.
There is no local dedup store; every mutation is a plain overwrite, so
Stripe redeliveries re-apply the same values.
"""

import base64
import binascii
import logging
import time
from typing import Callable, Dict, Optional, Union

from shared.config import WebhookConfig, get_config
from shared.date_utils import add_months_utc, to_calendar_date_utc, yesterday_utc
from shared.errors import WebhookRejectedError
from shared.events import (
    EventKind,
    InvoiceFailed,
    PaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionEvent,
    SubscriptionUpdated,
)
from shared.logging_utils import (
    configure_structured_logging,
    log_api_request,
    mask_email,
    set_request_id,
    set_stripe_event_id,
)
from shared.metrics import emit_error_metric, emit_webhook_event_metric
from shared.response_utils import (
    handler_failed_response,
    received_response,
    webhook_error_response,
)
from shared.stripe_client import (
    configure_stripe,
    resolve_customer_email,
    update_subscription,
    verify_and_decode,
)
from shared.user_store import cancel_subscription_account, update_subscription_account

logger = logging.getLogger(__name__)

HANDLER_NAME = "stripe_webhook"

# Only the invoice that creates a subscription activates it; renewals are
# handled by the cancel_at scheduled on the Stripe side.
ACTIVATING_BILLING_REASON = "subscription_create"

# Subscription statuses that end access
LAPSED_STATUSES = frozenset({"canceled", "unpaid"})

APPLIED = "applied"
IGNORED = "ignored"


def handler(event, context):
    """
    Lambda handler for Stripe webhooks.

    Returns:
        200 {"received": true} once dispatch completes, including ignored events
        400 "Webhook Error: <message>" when the signature or payload is rejected
        500 {"error": "Webhook handler failed"} when a handler raises
    """
    start_time = time.time()
    configure_structured_logging()
    set_request_id(event)

    response = _process_webhook(event)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, event, response["statusCode"], latency_ms)
    return response


def _process_webhook(event: dict) -> dict:
    config = get_config()
    if not config.is_stripe_configured:
        logger.error("Stripe secrets not configured")
        emit_error_metric("stripe_not_configured", HANDLER_NAME)
        return handler_failed_response()

    configure_stripe(config.stripe_api_key, config.stripe_api_version)

    try:
        raw_body = _get_raw_body(event)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Undecodable base64 body: {e}")
        return webhook_error_response("Invalid request body encoding")

    sig_header = _get_header(event, "Stripe-Signature")
    if not sig_header:
        logger.warning("Missing Stripe signature")
        emit_error_metric("missing_signature", HANDLER_NAME)
        return webhook_error_response("Missing Stripe-Signature header")

    try:
        subscription_event = verify_and_decode(raw_body, sig_header, config.stripe_webhook_secret)
    except WebhookRejectedError as e:
        logger.warning(f"Rejected webhook ({e.code}): {e.message}")
        emit_error_metric(e.code, HANDLER_NAME)
        return e.to_response()

    set_stripe_event_id(subscription_event.event_id)
    logger.info(
        f"Processing Stripe event: {subscription_event.event_type} (id={subscription_event.event_id})",
        extra={"event_kind": subscription_event.kind.value, "livemode": subscription_event.livemode},
    )

    try:
        outcome = dispatch_event(subscription_event, config)
    except Exception as e:
        # Non-2xx responses are redelivered by Stripe
        logger.error(f"Error handling {subscription_event.event_type}: {e}", exc_info=True)
        emit_webhook_event_metric(subscription_event.kind.value, "failed")
        emit_error_metric("handler_failed", HANDLER_NAME)
        return handler_failed_response()

    emit_webhook_event_metric(subscription_event.kind.value, outcome)
    return received_response()


def _get_raw_body(event: dict) -> Union[bytes, str]:
    """Return the request body exactly as sent. Never JSON-parse it here."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body, validate=True)
    return body


def _get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup (API Gateway v1 keeps client casing)."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def dispatch_event(event: SubscriptionEvent, config: WebhookConfig) -> str:
    """Route a decoded event to its handler.

    Returns:
        APPLIED if a store mutation was issued, IGNORED otherwise
    """
    event_handler = EVENT_HANDLERS.get(event.kind, _handle_unrecognized)
    return event_handler(event, config)


def _handle_payment_succeeded(invoice: PaymentSucceeded, config: WebhookConfig) -> str:
    """Activate a new subscription: expiry = paid_at + plan months."""
    if invoice.billing_reason != ACTIVATING_BILLING_REASON:
        logger.info(f"Skipping invoice {invoice.invoice_id}: billing_reason={invoice.billing_reason}")
        return IGNORED

    if not invoice.subscription_id:
        logger.warning(f"No subscription ID on invoice {invoice.invoice_id}")
        return IGNORED

    if not invoice.price_id:
        logger.warning(f"No price ID on invoice {invoice.invoice_id}")
        return IGNORED

    months = config.months_for_price(invoice.price_id)
    if months is None:
        logger.warning(
            f"Unknown price ID {invoice.price_id} on invoice {invoice.invoice_id} - not activating"
        )
        return IGNORED

    email = resolve_customer_email(invoice.customer_email, invoice.customer_id)
    if not email:
        logger.warning(f"Could not resolve email for customer {invoice.customer_id}")
        return IGNORED

    anchor = _first_present(invoice.paid_at, invoice.period_start, invoice.created)
    if anchor is None:
        logger.warning(f"No payment timestamp on invoice {invoice.invoice_id}")
        return IGNORED

    expiry = add_months_utc(anchor, months)
    subscription_date = to_calendar_date_utc(expiry)

    logger.info(
        f"Activating subscription {invoice.subscription_id} for {mask_email(email)} "
        f"until {subscription_date} ({months} months from {anchor})"
    )

    # Stripe first: the store update is what grants access
    update_subscription(invoice.subscription_id, cancel_at=int(expiry.timestamp()))
    update_subscription_account(config, email, subscription_date, invoice.subscription_id)
    return APPLIED


def _handle_subscription_updated(subscription: SubscriptionUpdated, config: WebhookConfig) -> str:
    """Lapse access when Stripe reports the subscription as canceled or unpaid."""
    if subscription.status not in LAPSED_STATUSES:
        logger.info(f"Subscription {subscription.subscription_id} status={subscription.status}, no action")
        return IGNORED

    if not subscription.subscription_id:
        logger.warning("No subscription ID in subscription update")
        return IGNORED

    cancel_subscription_account(config, subscription.subscription_id, _lapsed_date())
    return APPLIED


def _handle_invoice_failed(invoice: InvoiceFailed, config: WebhookConfig) -> str:
    """Fail closed: a failed or unfinalizable invoice ends access now, no grace period."""
    email = resolve_customer_email(invoice.customer_email, invoice.customer_id)
    if not email:
        logger.warning(f"Could not resolve email for customer {invoice.customer_id} ({invoice.event_type})")
        return IGNORED

    logger.info(f"{invoice.event_type} for {mask_email(email)}, invoice {invoice.invoice_id}")
    update_subscription_account(config, email, _lapsed_date(), invoice.subscription_id or "")
    return APPLIED


def _handle_subscription_deleted(subscription: SubscriptionDeleted, config: WebhookConfig) -> str:
    if not subscription.subscription_id:
        logger.warning("No subscription ID in deleted subscription")
        return IGNORED

    cancel_subscription_account(config, subscription.subscription_id, _lapsed_date())
    return APPLIED


def _handle_unrecognized(event: SubscriptionEvent, config: WebhookConfig) -> str:
    logger.info(f"Unhandled event type: {event.event_type}")
    return IGNORED


EVENT_HANDLERS: Dict[EventKind, Callable[..., str]] = {
    EventKind.PAYMENT_SUCCEEDED: _handle_payment_succeeded,
    EventKind.PAYMENT_FAILED: _handle_invoice_failed,
    EventKind.INVOICE_FINALIZATION_FAILED: _handle_invoice_failed,
    EventKind.SUBSCRIPTION_UPDATED: _handle_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: _handle_subscription_deleted,
}


def _lapsed_date() -> str:
    return to_calendar_date_utc(yesterday_utc())


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None
