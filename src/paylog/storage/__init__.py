"""Transaction storage module."""
from .models import PersistedTransaction, QueueEntry, SyncState
from .local_store import LocalTransactionStore
from .remote import RemoteStore, UnconfiguredRemoteStore

__all__ = [
    "PersistedTransaction",
    "QueueEntry",
    "SyncState",
    "LocalTransactionStore",
    "RemoteStore",
    "UnconfiguredRemoteStore"
]
