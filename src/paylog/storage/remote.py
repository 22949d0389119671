"""Remote store interface."""
from typing import List

from .models import PersistedTransaction
from ..utils.exceptions import PermanentRemoteError


class RemoteStore:
    """Document store keyed by owner and record id.

    Implementations raise TransientRemoteError for failures that will heal by
    themselves (network, deadline, quota) and PermanentRemoteError for those
    that need user action (auth, permission, malformed data). Writes must be
    idempotent per record id.
    """

    def write(self, record: PersistedTransaction) -> None:
        raise NotImplementedError

    def read_for_owner(self, owner_id: str) -> List[PersistedTransaction]:
        raise NotImplementedError


class UnconfiguredRemoteStore(RemoteStore):
    """Stand-in used when no remote store is configured; every call fails permanently."""

    def write(self, record: PersistedTransaction) -> None:
        raise PermanentRemoteError("No remote store configured")

    def read_for_owner(self, owner_id: str) -> List[PersistedTransaction]:
        raise PermanentRemoteError("No remote store configured")
