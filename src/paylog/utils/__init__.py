"""Utility modules."""
from .logger import get_logger, set_owner_context, configure_logging
from .exceptions import (
    PaylogError,
    ConfigError,
    StoreError,
    StoreNotInitializedError,
    RemoteStoreError,
    ValidationError,
    RetryableError,
    TransientRemoteError,
    PermanentRemoteError
)
from .retry import RetryPolicy, RetryState

__all__ = [
    "get_logger",
    "set_owner_context",
    "configure_logging",
    "PaylogError",
    "ConfigError",
    "StoreError",
    "StoreNotInitializedError",
    "RemoteStoreError",
    "ValidationError",
    "RetryableError",
    "TransientRemoteError",
    "PermanentRemoteError",
    "RetryPolicy",
    "RetryState"
]
