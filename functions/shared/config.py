"""
Webhook configuration.

Secrets come from Secrets Manager when an ARN is configured, otherwise from
plain environment variables. The result is collected once into an immutable
WebhookConfig and cached with a TTL so rotated secrets are picked up.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2024-06-20"

# Env var holding a Stripe price ID -> subscription length in months
PRICE_ENV_TO_MONTHS = {
    "STRIPE_PRICE_MONTHLY": 1,
    "STRIPE_PRICE_SEMIANNUAL": 6,
    "STRIPE_PRICE_ANNUAL": 12,
}

CONFIG_CACHE_TTL = 300  # 5 minutes

_config_cache: Optional["WebhookConfig"] = None
_config_cache_time = 0.0


@dataclass(frozen=True)
class WebhookConfig:
    stripe_api_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    price_to_months: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    hasura_endpoint: Optional[str] = None
    hasura_admin_secret: Optional[str] = None
    stripe_api_version: str = STRIPE_API_VERSION

    @property
    def is_stripe_configured(self) -> bool:
        return bool(self.stripe_api_key and self.stripe_webhook_secret)

    @property
    def is_store_configured(self) -> bool:
        return bool(self.hasura_endpoint and self.hasura_admin_secret)

    def months_for_price(self, price_id: Optional[str]) -> Optional[int]:
        """Subscription length for a Stripe price, or None if unmapped."""
        if not price_id:
            return None
        return self.price_to_months.get(price_id)


def _read_secret(secret_arn: Optional[str], json_field: str) -> Optional[str]:
    """Read a secret by ARN. JSON secrets use `json_field`; plain strings are used as-is."""
    if not secret_arn:
        return None

    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {json_field}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None

    if isinstance(secret_json, dict):
        return secret_json.get(json_field) or secret_value
    return secret_value


def build_price_to_months(environ: Optional[Mapping[str, str]] = None) -> Mapping[str, int]:
    """Build the price -> months table. Empty env values are skipped."""
    environ = os.environ if environ is None else environ
    mapping = {}
    for env_name, months in PRICE_ENV_TO_MONTHS.items():
        price_id = (environ.get(env_name) or "").strip()
        if price_id:
            mapping[price_id] = months
    return MappingProxyType(mapping)


def load_config() -> WebhookConfig:
    """Build a WebhookConfig from Secrets Manager and the environment."""
    stripe_api_key = (
        _read_secret(os.environ.get("STRIPE_SECRET_ARN"), "key")
        or os.environ.get("STRIPE_SECRET_KEY")
        or None
    )
    stripe_webhook_secret = (
        _read_secret(os.environ.get("STRIPE_WEBHOOK_SECRET_ARN"), "secret")
        or os.environ.get("STRIPE_SIGNING_SECRET")
        or None
    )
    hasura_admin_secret = (
        _read_secret(os.environ.get("HASURA_ADMIN_SECRET_ARN"), "admin_secret")
        or os.environ.get("HASURA_ADMIN_SECRET")
        or None
    )

    price_to_months = build_price_to_months()
    if not price_to_months:
        logger.warning("No Stripe price IDs configured; new subscriptions will be ignored")

    return WebhookConfig(
        stripe_api_key=stripe_api_key,
        stripe_webhook_secret=stripe_webhook_secret,
        price_to_months=price_to_months,
        hasura_endpoint=os.environ.get("HASURA_PROJECT") or None,
        hasura_admin_secret=hasura_admin_secret,
        stripe_api_version=os.environ.get("STRIPE_API_VERSION") or STRIPE_API_VERSION,
    )


def get_config() -> WebhookConfig:
    """Return the cached WebhookConfig, rebuilding it after the TTL expires."""
    global _config_cache, _config_cache_time

    if _config_cache is not None and (time.time() - _config_cache_time) < CONFIG_CACHE_TTL:
        return _config_cache

    _config_cache = load_config()
    _config_cache_time = time.time()
    return _config_cache


def reset_config_cache() -> None:
    """Drop the cached config. Used in tests."""
    global _config_cache, _config_cache_time
    _config_cache = None
    _config_cache_time = 0.0
