"""
Structured JSON logging for the webhook Lambdas.

Every line carries the API Gateway request id and, once a payload has been
verified, the Stripe event id, so one delivery can be traced across
CloudWatch Logs Insights queries. Customer emails never reach the logs in
clear text.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
stripe_event_id_var: ContextVar[str] = ContextVar("stripe_event_id", default="")

# LogRecord attributes that are not caller-supplied `extra` fields
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Extra fields masked with mask_email before output
_EMAIL_FIELDS = frozenset({"email", "customer_email"})


def mask_email(email: Optional[str]) -> str:
    """Mask an email for logging: 'alice@example.com' -> 'ali***@example.com'."""
    if not email:
        return "<none>"
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}" if domain else f"{local[:3]}***"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with correlation ids and `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(),
            "stripe_event_id": stripe_event_id_var.get(),
            "function_name": os.environ.get("AWS_LAMBDA_FUNCTION_NAME", ""),
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            entry[key] = mask_email(value) if key in _EMAIL_FIELDS else value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Replace the root handlers with a single JSON handler.

    Lambda installs its own plain-text handler; call this at the start of
    each handler so warm invocations keep the JSON format.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(stream_handler)

    return root_logger


def set_request_id(event: dict) -> str:
    """
    Start a new log context for an API Gateway event.

    Uses requestContext.requestId, then an X-Request-Id header, then a fresh
    UUID. Clears any Stripe event id left over from a previous invocation.

    Returns:
        Request ID string
    """
    request_id = (event.get("requestContext") or {}).get("requestId")

    if not request_id:
        headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
        request_id = headers.get("x-request-id")

    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    stripe_event_id_var.set("")
    return request_id


def set_stripe_event_id(event_id: Optional[str]) -> None:
    """Attach the Stripe event id to every subsequent log line."""
    stripe_event_id_var.set(event_id or "")


def log_api_request(
    logger: logging.Logger,
    event: dict,
    status_code: int,
    latency_ms: float,
) -> None:
    """Log a completed API Gateway request; method and path come from the event."""
    method = event.get("httpMethod", "")
    path = event.get("path", "")
    level = logging.WARNING if status_code >= 500 else logging.INFO
    logger.log(
        level,
        f"{method} {path} -> {status_code}",
        extra={
            "http_method": method,
            "path": path,
            "status_code": status_code,
            "latency_ms": round(latency_ms, 2),
        },
    )


def log_external_call(
    logger: logging.Logger,
    service: str,
    operation: str,
    success: bool,
    latency_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log one Stripe or Hasura call. Failures are logged at WARNING."""
    level = logging.INFO if success else logging.WARNING
    logger.log(
        level,
        f"External call to {service}: {operation} -> {'success' if success else 'failed'}",
        extra={
            "service": service,
            "operation": operation,
            "success": success,
            "latency_ms": round(latency_ms, 2),
            "error": error,
        },
    )
