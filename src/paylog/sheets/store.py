"""Google Sheets implementation of the remote transaction store."""
import socket
import ssl
import threading
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Set

from google.auth import exceptions as auth_exceptions
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..extraction.models import TransactionType
from ..storage.models import PersistedTransaction
from ..storage.remote import RemoteStore
from ..utils.auth import get_credentials
from ..utils.exceptions import PermanentRemoteError, RemoteStoreError, TransientRemoteError
from ..utils.logger import get_logger

logger = get_logger()

HEADERS = [
    "ID", "Date", "Time", "Amount", "Type", "Account", "Sender",
    "Confidence", "Manual Entry", "Created At", "Dedup Hash", "Source Text",
]

LAST_COLUMN = "L"

_TRANSIENT_NETWORK_ERRORS = (socket.timeout, ssl.SSLError, ConnectionError, TimeoutError, OSError)

_FORBIDDEN_TAB_CHARS = set("[]:*?/\\'")


def map_remote_error(error: Exception) -> RemoteStoreError:
    """Translate a Google API or network failure into the remote error taxonomy."""
    if isinstance(error, RemoteStoreError):
        return error

    if isinstance(error, HttpError):
        status = int(getattr(error.resp, "status", 0) or 0)
        if status == 429 or status >= 500:
            return TransientRemoteError(f"Sheets API error {status}: {error}")
        return PermanentRemoteError(f"Sheets API error {status}: {error}")

    if isinstance(error, auth_exceptions.RefreshError):
        return PermanentRemoteError(f"Credential refresh failed: {error}")

    if isinstance(error, auth_exceptions.TransportError):
        return TransientRemoteError(f"Auth transport failure: {error}")

    if isinstance(error, _TRANSIENT_NETWORK_ERRORS):
        return TransientRemoteError(f"Network failure: {error}")

    return PermanentRemoteError(f"Unexpected remote failure: {error}")


def tab_name_for(owner_id: str) -> str:
    """Sheet tab title for an owner; characters Sheets rejects become '_'."""
    cleaned = "".join("_" if ch in _FORBIDDEN_TAB_CHARS else ch for ch in owner_id).strip()
    return (cleaned or "owner")[:100]


class SheetsRemoteStore(RemoteStore):
    """Writes transactions to one spreadsheet, one tab per owner.

    Each transaction is one row keyed by its id in column A. Writing a record
    that already has a row updates that row, so re-delivery from the queue
    never produces a second copy.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        service=None,
        credentials=None,
        service_account_path: Optional[str] = None,
        oauth_client_secrets: Optional[str] = None,
        oauth_token_path: Optional[str] = None
    ):
        self.spreadsheet_id = spreadsheet_id

        if service is None:
            if credentials is None:
                credentials = get_credentials(
                    service_account_path=service_account_path,
                    oauth_client_secrets=oauth_client_secrets,
                    oauth_token_path=oauth_token_path
                )
            service = build("sheets", "v4", credentials=credentials, cache_discovery=False)

        self.service = service
        # The discovery client is not thread-safe
        self._lock = threading.Lock()
        self._known_tabs: Set[str] = set()

        logger.info(f"Sheets remote store ready for spreadsheet {spreadsheet_id}")

    def write(self, record: PersistedTransaction) -> None:
        tab = tab_name_for(record.owner_id)
        row = self._to_row(record)

        try:
            with self._lock:
                self._ensure_tab(tab)
                row_number = self._find_row(tab, record.id)

                if row_number is None:
                    self.service.spreadsheets().values().append(
                        spreadsheetId=self.spreadsheet_id,
                        range=f"'{tab}'!A1",
                        valueInputOption="RAW",
                        insertDataOption="INSERT_ROWS",
                        body={"values": [row]}
                    ).execute()
                    logger.debug(f"Appended transaction {record.id} to tab {tab}")
                else:
                    self.service.spreadsheets().values().update(
                        spreadsheetId=self.spreadsheet_id,
                        range=f"'{tab}'!A{row_number}:{LAST_COLUMN}{row_number}",
                        valueInputOption="RAW",
                        body={"values": [row]}
                    ).execute()
                    logger.debug(f"Updated transaction {record.id} in tab {tab} row {row_number}")
        except Exception as e:
            raise map_remote_error(e) from e

    def read_for_owner(self, owner_id: str) -> List[PersistedTransaction]:
        tab = tab_name_for(owner_id)

        try:
            with self._lock:
                if tab not in self._existing_tabs():
                    return []
                result = self.service.spreadsheets().values().get(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"'{tab}'!A2:{LAST_COLUMN}"
                ).execute()
        except Exception as e:
            raise map_remote_error(e) from e

        records = []
        for row in result.get("values", []):
            record = self._from_row(row, owner_id)
            if record is not None:
                records.append(record)
        return records

    def _existing_tabs(self) -> Set[str]:
        result = self.service.spreadsheets().get(
            spreadsheetId=self.spreadsheet_id,
            fields="sheets.properties.title"
        ).execute()
        titles = {sheet["properties"]["title"] for sheet in result.get("sheets", [])}
        self._known_tabs.update(titles)
        return titles

    def _ensure_tab(self, tab: str) -> None:
        if tab in self._known_tabs or tab in self._existing_tabs():
            return

        self.service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": tab}}}]}
        ).execute()

        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f"'{tab}'!A1",
            valueInputOption="RAW",
            body={"values": [HEADERS]}
        ).execute()

        self._known_tabs.add(tab)
        logger.info(f"Created sheet tab {tab}")

    def _find_row(self, tab: str, record_id: str) -> Optional[int]:
        """1-based sheet row holding record_id, or None."""
        result = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"'{tab}'!A:A"
        ).execute()

        for index, cells in enumerate(result.get("values", []), start=1):
            if cells and cells[0] == record_id:
                return index
        return None

    @staticmethod
    def _to_row(record: PersistedTransaction) -> List[str]:
        return [
            record.id,
            record.date,
            record.time,
            str(record.amount),
            record.transaction_type.value,
            record.account_ref or "",
            record.sender_id,
            str(record.confidence),
            "TRUE" if record.is_manual_entry else "FALSE",
            record.created_at.isoformat(),
            record.dedup_hash,
            record.source_text,
        ]

    @staticmethod
    def _from_row(row: List[str], owner_id: str) -> Optional[PersistedTransaction]:
        cells: Dict[int, str] = dict(enumerate(row))
        try:
            return PersistedTransaction(
                id=cells[0],
                owner_id=owner_id,
                amount=Decimal(cells[3]),
                transaction_type=TransactionType.from_value(cells.get(4, "")),
                account_ref=cells.get(5) or None,
                date=cells[1],
                time=cells[2],
                source_text=cells.get(11, ""),
                sender_id=cells.get(6, ""),
                confidence=float(cells.get(7) or 0.0),
                created_at=datetime.fromisoformat(cells[9]),
                dedup_hash=cells.get(10, ""),
                synced=True,
                is_manual_entry=str(cells.get(8, "")).upper() == "TRUE",
            )
        except (KeyError, ArithmeticError, ValueError) as e:
            logger.warning(f"Skipping malformed sheet row {row[:1]}: {e}")
            return None
