"""
Error types for the webhook receiver.
"""

import json


class WebhookError(Exception):
    """Base class for webhook errors."""

    status_code = 500
    code = "webhook_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to API Gateway response format."""
        return {
            "statusCode": self.status_code,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": self.message}),
        }


class WebhookRejectedError(WebhookError):
    """Request rejected before dispatch. Stripe shows the body in its dashboard."""

    status_code = 400
    code = "webhook_rejected"

    def to_response(self) -> dict:
        return {
            "statusCode": self.status_code,
            "headers": {"Content-Type": "text/plain"},
            "body": f"Webhook Error: {self.message}",
        }


class SignatureInvalidError(WebhookRejectedError):
    """Raised when the Stripe-Signature header does not match the raw body."""

    code = "invalid_signature"


class EventUndecodableError(WebhookRejectedError):
    """Raised when a payload is not a usable Stripe event."""

    code = "invalid_webhook_payload"


class ConfigurationError(WebhookError):
    """Raised when required secrets or endpoints are not configured."""

    code = "not_configured"


class UserStoreError(WebhookError):
    """Raised when a Hasura call fails or reports errors."""

    code = "user_store_error"
