"""
CloudWatch Metrics Helper

Provides utilities for emitting custom metrics to CloudWatch.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from shared.aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "SubscriptionWebhook")


def _metrics_enabled() -> bool:
    return os.environ.get("METRICS_ENABLED", "true").lower() == "true"


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Emit a custom metric to CloudWatch.

    Args:
        metric_name: Name of the metric
        value: Metric value (default: 1.0)
        unit: Unit of measurement (Count, Seconds, Bytes, etc.)
        dimensions: Optional dimensions for filtering metrics

    Example:
        emit_metric("WebhookEvents", dimensions={"EventKind": "payment_failed"})
    """
    if not _metrics_enabled():
        return

    try:
        metric_data = {
            "MetricName": metric_name,
            "Value": value,
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
        }

        if dimensions:
            metric_data["Dimensions"] = [
                {"Name": k, "Value": v} for k, v in dimensions.items()
            ]

        get_cloudwatch().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[metric_data],
        )

        logger.debug(
            f"Emitted metric: {metric_name}={value} {unit}",
            extra={"dimensions": dimensions},
        )

    except Exception as e:
        # Metrics are best-effort
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_webhook_event_metric(event_kind: str, outcome: str) -> None:
    """
    Count a processed webhook event.

    Args:
        event_kind: EventKind value (e.g. 'payment_succeeded')
        outcome: 'applied', 'ignored' or 'failed'
    """
    emit_metric(
        "WebhookEvents",
        dimensions={"EventKind": event_kind, "Outcome": outcome},
    )


def emit_error_metric(error_type: str, handler: Optional[str] = None) -> None:
    """
    Emit an error metric with standard dimensions.

    Args:
        error_type: Type of error (e.g., 'invalid_signature', 'handler_failed')
        handler: Lambda handler name
    """
    dimensions = {"ErrorType": error_type}
    if handler:
        dimensions["Handler"] = handler

    emit_metric("Errors", dimensions=dimensions)
