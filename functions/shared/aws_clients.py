"""
Centralized AWS client factory with lazy initialization.

Reduces cold start overhead by deferring boto3 client creation
until first use.
"""

_secretsmanager = None
_cloudwatch = None


def get_secretsmanager():
    """Get Secrets Manager client, creating it lazily on first use."""
    global _secretsmanager
    if _secretsmanager is None:
        import boto3
        _secretsmanager = boto3.client("secretsmanager")
    return _secretsmanager


def get_cloudwatch():
    """Get CloudWatch client, creating it lazily on first use."""
    global _cloudwatch
    if _cloudwatch is None:
        import boto3
        _cloudwatch = boto3.client("cloudwatch")
    return _cloudwatch


def reset_clients():
    """Reset all cached clients. Used in tests for clean state."""
    global _secretsmanager, _cloudwatch
    _secretsmanager = None
    _cloudwatch = None
