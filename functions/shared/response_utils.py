"""
Response utilities for Lambda handlers.

Provides consistent response formatting for the webhook endpoints.
"""

import json
from typing import Optional, Any, Dict

HANDLER_FAILED_MESSAGE = "Webhook handler failed"


def json_response(
    status_code: int, body: Any, headers: Optional[Dict[str, str]] = None
) -> dict:
    """
    Create standardized JSON response.

    Args:
        status_code: HTTP status code
        body: Response body (JSON serializable)
        headers: Optional additional headers

    Returns:
        Lambda response dictionary
    """
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, default=str),
    }


def text_response(
    status_code: int, body: str, headers: Optional[Dict[str, str]] = None
) -> dict:
    """Create a plain-text response."""
    response_headers = {"Content-Type": "text/plain"}
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": body,
    }


def webhook_error_response(message: str) -> dict:
    """400 response for requests rejected before dispatch."""
    return text_response(400, f"Webhook Error: {message}")


def handler_failed_response() -> dict:
    """Generic 500 response. The underlying cause is only logged."""
    return json_response(500, {"error": HANDLER_FAILED_MESSAGE})


def received_response() -> dict:
    """Acknowledge receipt of a webhook event."""
    return json_response(200, {"received": True})
