"""
Shared HTTP Client with Connection Pooling.

Provides a reusable httpx.Client for outbound calls (the Hasura GraphQL
endpoint) so warm Lambda invocations reuse the TLS connection.

Usage:
    from shared.http_client import get_http_client

    client = get_http_client()
    response = client.post(url, json=payload, headers=headers)

Testing:
    Set USE_CONNECTION_POOLING=false in test fixtures to disable connection
    pooling. This creates a new client per call for test isolation, and
    tests patch get_http_client to return a client on httpx.MockTransport.
"""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Global client instance (lazy-initialized)
_client: Optional[httpx.Client] = None

# Stripe waits ~20s for a webhook response, so outbound calls must finish well before
DEFAULT_TIMEOUT = httpx.Timeout(
    15.0,  # Total timeout
    connect=5.0,  # Connection timeout
)

DEFAULT_LIMITS = httpx.Limits(
    max_connections=10,
    max_keepalive_connections=5,
    keepalive_expiry=30.0,
)


def _use_connection_pooling() -> bool:
    """Check if connection pooling is enabled (runtime check)."""
    return os.environ.get("USE_CONNECTION_POOLING", "true").lower() == "true"


def _new_client() -> httpx.Client:
    return httpx.Client(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        follow_redirects=False,
    )


def get_http_client() -> httpx.Client:
    """
    Get an HTTP client for making requests.

    In production (USE_CONNECTION_POOLING=true) returns a shared client that
    survives across invocations of the same execution context. In tests
    (USE_CONNECTION_POOLING=false) creates a new client per call.
    """
    global _client

    if not _use_connection_pooling():
        return _new_client()

    if _client is None or _client.is_closed:
        logger.debug("Initializing shared HTTP client with connection pooling")
        _client = _new_client()

    return _client


def close_http_client() -> None:
    """Close the shared HTTP client."""
    global _client

    if _client is not None:
        _client.close()
        _client = None
        logger.debug("Closed shared HTTP client")
