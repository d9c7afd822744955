# Shared utilities package
from .config import WebhookConfig, get_config
from .errors import WebhookError
from .response_utils import json_response, received_response

__all__ = [
    "WebhookConfig",
    "get_config",
    "WebhookError",
    "json_response",
    "received_response",
]
