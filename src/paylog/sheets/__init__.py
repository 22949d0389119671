"""Google Sheets remote store."""
from .store import SheetsRemoteStore, map_remote_error, tab_name_for

__all__ = ["SheetsRemoteStore", "map_remote_error", "tab_name_for"]
