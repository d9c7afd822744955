"""
Shared pytest fixtures for webhook tests.
"""

import hashlib
import hmac
import json
import os
import sys
import time
from types import MappingProxyType

import pytest

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_API_KEY = "sk_test_123"
TEST_HASURA_ENDPOINT = "https://hasura.example.com/v1/graphql"
TEST_HASURA_SECRET = "hasura-admin-secret"

PRICE_MONTHLY = "price_monthly_test"
PRICE_SEMIANNUAL = "price_semiannual_test"
PRICE_ANNUAL = "price_annual_test"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 client
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")

    # Fresh httpx client per call so tests can swap in httpx.MockTransport
    os.environ["USE_CONNECTION_POOLING"] = "false"

    # No CloudWatch calls unless a test opts in
    os.environ["METRICS_ENABLED"] = "false"


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    from shared.aws_clients import reset_clients
    reset_clients()


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the cached WebhookConfig so env changes in one test don't leak."""
    from shared.config import reset_config_cache
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def webhook_env(monkeypatch):
    """Plain environment-variable configuration (no Secrets Manager)."""
    for name in ("STRIPE_SECRET_ARN", "STRIPE_WEBHOOK_SECRET_ARN", "HASURA_ADMIN_SECRET_ARN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STRIPE_SECRET_KEY", TEST_API_KEY)
    monkeypatch.setenv("STRIPE_SIGNING_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setenv("HASURA_PROJECT", TEST_HASURA_ENDPOINT)
    monkeypatch.setenv("HASURA_ADMIN_SECRET", TEST_HASURA_SECRET)
    monkeypatch.setenv("STRIPE_PRICE_MONTHLY", PRICE_MONTHLY)
    monkeypatch.setenv("STRIPE_PRICE_SEMIANNUAL", PRICE_SEMIANNUAL)
    monkeypatch.setenv("STRIPE_PRICE_ANNUAL", PRICE_ANNUAL)


@pytest.fixture
def webhook_config():
    """A fully populated WebhookConfig for calling dispatch/clients directly."""
    from shared.config import WebhookConfig

    return WebhookConfig(
        stripe_api_key=TEST_API_KEY,
        stripe_webhook_secret=TEST_WEBHOOK_SECRET,
        price_to_months=MappingProxyType({
            PRICE_MONTHLY: 1,
            PRICE_SEMIANNUAL: 6,
            PRICE_ANNUAL: 12,
        }),
        hasura_endpoint=TEST_HASURA_ENDPOINT,
        hasura_admin_secret=TEST_HASURA_SECRET,
    )


def sign_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header value for a raw payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.{payload}"
    signature = hmac.new(
        secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_123") -> dict:
    """Minimal Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "livemode": False,
        "created": 1700000000,
        "data": {"object": obj},
    }


def construct_stripe_object(obj: dict):
    """Build a real SDK object (e.g. a Customer) the way Stripe hands them to us."""
    import stripe

    payload = json.dumps(make_stripe_event("customer.updated", obj))
    event = stripe.Webhook.construct_event(payload, sign_payload(payload), TEST_WEBHOOK_SECRET)
    return event.data.object


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for the webhook Lambda."""
    return {
        "httpMethod": "POST",
        "path": "/webhook",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "isBase64Encoded": False,
        "requestContext": {
            "requestId": "req-test-123",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


@pytest.fixture
def signed_request(api_gateway_event):
    """Factory: wrap a Stripe event into a correctly signed API Gateway event."""

    def _build(stripe_event: dict, secret: str = TEST_WEBHOOK_SECRET) -> dict:
        payload = json.dumps(stripe_event)
        api_gateway_event["body"] = payload
        api_gateway_event["headers"] = {"Stripe-Signature": sign_payload(payload, secret)}
        return api_gateway_event

    return _build


@pytest.fixture
def first_invoice():
    """invoice.payment_succeeded object for a brand new monthly subscription."""
    return {
        "id": "in_123",
        "object": "invoice",
        "billing_reason": "subscription_create",
        "customer": "cus_123",
        "customer_email": "a@b.com",
        "subscription": "sub_1",
        "created": 1699999000,
        "status_transitions": {"paid_at": 1700000000},
        "lines": {
            "object": "list",
            "data": [
                {
                    "id": "il_123",
                    "type": "subscription",
                    "subscription": "sub_1",
                    "price": {"id": PRICE_MONTHLY},
                    "period": {"start": 1699999500, "end": 1702591500},
                }
            ],
        },
    }
