"""Custom exception classes for PayLog."""


class PaylogError(Exception):
    """Base exception for PayLog."""
    pass


class ConfigError(PaylogError):
    """Configuration-related errors."""
    pass


class StoreError(PaylogError):
    """Local durable store errors."""
    pass


class StoreNotInitializedError(StoreError, RuntimeError):
    """A store was used before initialize() was called.

    This is a programmer error and is never retried or swallowed.
    """
    pass


class RemoteStoreError(PaylogError):
    """Remote store write/read errors."""
    pass


class ValidationError(PaylogError):
    """Data validation errors."""
    pass


# Retryable errors
class RetryableError(PaylogError):
    """Base class for errors that should trigger retry."""
    pass


class TransientRemoteError(RetryableError, RemoteStoreError):
    """Network unavailable, deadline exceeded or quota exhausted; will self-heal."""
    pass


class PermanentRemoteError(RemoteStoreError):
    """Permission denied, unauthenticated or malformed data; needs user action."""
    pass
