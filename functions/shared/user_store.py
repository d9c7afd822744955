"""
Hasura user-store client.

Two mutations on the `users` table: activate/extend a subscription matched by
email, and cancel a subscription matched by its Stripe subscription ID. Both
are plain `_set` updates, so redelivered events re-apply the same values.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from shared.config import WebhookConfig
from shared.errors import ConfigurationError, UserStoreError
from shared.http_client import get_http_client
from shared.logging_utils import log_external_call, mask_email

logger = logging.getLogger(__name__)

UPDATE_SUBSCRIPTION_ACCOUNT = """
mutation UpdateSubscriptionUser(
  $email: String!,
  $subscription_date: date!,
  $subscription_id: String!
) {
  update_users(
    where: { email: { _eq: $email } },
    _set: {
      subscription_date: $subscription_date,
      subscription_id: $subscription_id
    }
  ) {
    affected_rows
  }
}
"""

CANCEL_SUBSCRIPTION_ACCOUNT = """
mutation CancelSubscriptionUser(
  $subscription_id: String!,
  $subscription_date: date!
) {
  update_users(
    where: { subscription_id: { _eq: $subscription_id } },
    _set: { subscription_id: "", subscription_date: $subscription_date }
  ) {
    affected_rows
  }
}
"""


def hasura_gql(
    config: WebhookConfig,
    query: str,
    variables: Dict[str, Any],
    operation: str = "graphql",
) -> dict:
    """
    Send a GraphQL document to Hasura with the admin secret.

    Args:
        config: Webhook configuration (endpoint + admin secret)
        query: GraphQL document
        variables: Query variables
        operation: Name used in logs

    Returns:
        Parsed JSON response

    Raises:
        ConfigurationError: Endpoint or admin secret missing
        UserStoreError: Transport failure, non-2xx status, or a GraphQL error list
    """
    if not config.is_store_configured:
        raise ConfigurationError("Hasura endpoint or admin secret not configured")

    client = get_http_client()
    start = time.time()
    try:
        response = client.post(
            config.hasura_endpoint,
            json={"query": query, "variables": variables},
            headers={
                "Content-Type": "application/json",
                "x-hasura-admin-secret": config.hasura_admin_secret,
            },
        )
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        latency_ms = (time.time() - start) * 1000
        log_external_call(logger, "hasura", operation, False, latency_ms, error=f"HTTP {e.response.status_code}")
        raise UserStoreError(f"Hasura returned HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        latency_ms = (time.time() - start) * 1000
        log_external_call(logger, "hasura", operation, False, latency_ms, error=str(e))
        raise UserStoreError(f"Hasura request failed: {e}") from e

    latency_ms = (time.time() - start) * 1000
    errors = data.get("errors") if isinstance(data, dict) else None
    if errors:
        first = errors[0]
        message = first.get("message") if isinstance(first, dict) else str(first)
        log_external_call(logger, "hasura", operation, False, latency_ms, error=message)
        raise UserStoreError(message or "Unknown Hasura error")

    log_external_call(logger, "hasura", operation, True, latency_ms)
    return data


def _affected_rows(data: dict) -> int:
    return ((data.get("data") or {}).get("update_users") or {}).get("affected_rows", 0)


def update_subscription_account(
    config: WebhookConfig,
    email: str,
    subscription_date: str,
    subscription_id: Optional[str],
) -> int:
    """Set subscription_date and subscription_id on the user with this email.

    Returns:
        Number of rows Hasura reports as updated
    """
    data = hasura_gql(
        config,
        UPDATE_SUBSCRIPTION_ACCOUNT,
        {
            "email": email,
            "subscription_date": subscription_date,
            "subscription_id": subscription_id or "",
        },
        operation="UpdateSubscriptionUser",
    )
    affected = _affected_rows(data)
    if affected == 0:
        logger.warning(f"No user matched {mask_email(email)} for subscription update", extra={"email": email})
    else:
        logger.info(f"Subscription for {mask_email(email)} set to {subscription_date}", extra={"email": email})
    return affected


def cancel_subscription_account(
    config: WebhookConfig,
    subscription_id: str,
    subscription_date: str,
) -> int:
    """Clear subscription_id and set subscription_date on the matching user."""
    data = hasura_gql(
        config,
        CANCEL_SUBSCRIPTION_ACCOUNT,
        {"subscription_id": subscription_id, "subscription_date": subscription_date},
        operation="CancelSubscriptionUser",
    )
    affected = _affected_rows(data)
    if affected == 0:
        logger.warning(f"No user matched subscription {subscription_id} for cancellation")
    else:
        logger.info(f"Subscription {subscription_id} cancelled, expiry set to {subscription_date}")
    return affected
