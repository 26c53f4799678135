"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is supported as a storage backend because:
1. The household can inspect the assistant's audit trail directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions: compare-and-set and trust updates are serialized with
  an in-process asyncio.Lock only. Two processes writing the same
  spreadsheet can race; run a single writer process per spreadsheet.
- Limited query capabilities (we filter in Python)

Reads and the connection are retried with tenacity. Writes are NOT
retried: a write that timed out may still have landed, and a blind retry
could duplicate an audit row.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from household_ai.clock import utcnow
from household_ai.config import GoogleSheetsSettings, get_settings
from household_ai.models.audit import AIAuditLog, AuditStatus
from household_ai.models.proposal import AIProposal, ProposalStatus
from household_ai.models.trust import HouseholdAITrust
from household_ai.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    HouseholdDataStore,
    ProposalStorageInterface,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
    TrustMutator,
    TrustStorageInterface,
)


AUDIT_COLUMNS = [
    "id",
    "household_id",
    "user_id",
    "session_id",
    "proposal_id",
    "action_id",
    "function_name",
    "arguments_json",
    "risk_level",
    "is_reversible",
    "status",
    "result_json",
    "pre_state_json",
    "error_message",
    "started_at",
    "completed_at",
    "undone_at",
    "undone_by",
]

PROPOSAL_COLUMNS = [
    "id",
    "household_id",
    "status",
    "created_at",
    "expires_at",
    "execution_started_at",
    "proposal_json",
]

TRUST_COLUMNS = [
    "household_id",
    "trust_level",
    "updated_at",
    "trust_json",
]

RECORD_COLUMNS = [
    "household_id",
    "collection",
    "record_id",
    "data_json",
]

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self.lock = asyncio.Lock()

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @_read_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class _SheetTable:
    """Row-level helpers shared by the Sheets storages."""

    def __init__(self, client: GoogleSheetsClient, title: str, columns: list[str], rows: int = 1000):
        self._client = client
        self._title = title
        self._columns = columns
        self._rows = rows

    def sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, self._columns, self._rows)

    @_read_retry
    def data_rows(self) -> list[tuple[int, list]]:
        """All non-empty data rows with their 1-based sheet row index."""
        all_rows = self.sheet().get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is header
            if row and row[0]
        ]

    def find(self, *key: str) -> Optional[tuple[int, list]]:
        """First row whose leading cells equal `key`."""
        for idx, row in self.data_rows():
            if tuple(row[:len(key)]) == key:
                return idx, row
        return None

    def append(self, row: list) -> None:
        try:
            self.sheet().append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to append to {self._title}: {e}")

    def rewrite(self, idx: int, row: list) -> None:
        try:
            sheet = self.sheet()
            for col_idx, value in enumerate(row, start=1):
                sheet.update_cell(idx, col_idx, value)
        except Exception as e:
            raise StorageError(f"Failed to update {self._title} row {idx}: {e}")

    def delete(self, idx: int) -> None:
        try:
            self.sheet().delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete {self._title} row {idx}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of the audit log.

    One entry per row; JSON columns for arguments, result and pre-state.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client, self._client.settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    async def append_entry(self, entry: AIAuditLog) -> None:
        async with self._client.lock:
            if self._table.find(entry.id):
                raise DuplicateError(f"Audit entry already exists: {entry.id}")
            self._table.append(entry.to_sheets_row())

    async def get_entry(self, entry_id: str) -> Optional[AIAuditLog]:
        found = self._table.find(entry_id)
        return AIAuditLog.from_sheets_row(found[1]) if found else None

    async def replace_entry(self, entry: AIAuditLog, expected_status: AuditStatus) -> bool:
        async with self._client.lock:
            found = self._table.find(entry.id)
            if found is None:
                raise RecordNotFoundError(f"Audit entry not found: {entry.id}")
            idx, row = found
            if AIAuditLog.from_sheets_row(row).status != expected_status:
                return False
            self._table.rewrite(idx, entry.to_sheets_row())
            return True

    async def list_entries(
        self,
        household_id: str,
        status: Optional[AuditStatus] = None,
        proposal_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AIAuditLog]:
        entries = []
        for _, row in reversed(self._table.data_rows()):
            if len(row) < 2 or row[1] != household_id:
                continue
            try:
                entry = AIAuditLog.from_sheets_row(row)
            except (ValueError, json.JSONDecodeError):
                continue  # Skip malformed rows
            if status and entry.status != status:
                continue
            if proposal_id and entry.proposal_id != proposal_id:
                continue
            entries.append(entry)
            if len(entries) >= limit:
                break
        return entries


class GoogleSheetsProposalStorage(ProposalStorageInterface):
    """Proposals as one row each, full model in a JSON column."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client, self._client.settings.proposals_sheet_name, PROPOSAL_COLUMNS
        )

    def _proposal_to_row(self, proposal: AIProposal) -> list:
        return [
            proposal.id,
            proposal.household_id,
            proposal.status.value,
            proposal.created_at.isoformat(),
            proposal.expires_at.isoformat(),
            proposal.execution_started_at.isoformat() if proposal.execution_started_at else "",
            proposal.model_dump_json(),
        ]

    def _row_to_proposal(self, row: list) -> AIProposal:
        return AIProposal.model_validate_json(row[6])

    async def insert_proposal(self, proposal: AIProposal) -> None:
        async with self._client.lock:
            if self._table.find(proposal.id):
                raise DuplicateError(f"Proposal already exists: {proposal.id}")
            self._table.append(self._proposal_to_row(proposal))

    async def get_proposal(self, proposal_id: str) -> Optional[AIProposal]:
        found = self._table.find(proposal_id)
        return self._row_to_proposal(found[1]) if found else None

    async def replace_proposal(self, proposal: AIProposal, expected_status: ProposalStatus) -> bool:
        async with self._client.lock:
            found = self._table.find(proposal.id)
            if found is None:
                raise RecordNotFoundError(f"Proposal not found: {proposal.id}")
            idx, row = found
            if self._row_to_proposal(row).status != expected_status:
                return False
            self._table.rewrite(idx, self._proposal_to_row(proposal))
            return True

    async def claim_for_execution(self, proposal_id: str, at: datetime) -> bool:
        async with self._client.lock:
            found = self._table.find(proposal_id)
            if found is None:
                raise RecordNotFoundError(f"Proposal not found: {proposal_id}")
            idx, row = found
            proposal = self._row_to_proposal(row)
            if proposal.execution_started_at is not None:
                return False
            proposal.execution_started_at = at
            self._table.rewrite(idx, self._proposal_to_row(proposal))
            return True

    async def list_proposals(
        self,
        household_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> list[AIProposal]:
        proposals = []
        for _, row in self._table.data_rows():
            if len(row) < 7 or row[1] != household_id:
                continue
            if status and row[2] != status.value:
                continue
            proposals.append(self._row_to_proposal(row))
        proposals.sort(key=lambda p: p.created_at, reverse=True)
        return proposals[:limit]


class GoogleSheetsTrustStorage(TrustStorageInterface):
    """One row per household."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client, self._client.settings.trust_sheet_name, TRUST_COLUMNS
        )

    def _trust_to_row(self, trust: HouseholdAITrust) -> list:
        return [
            trust.household_id,
            str(trust.trust_level),
            trust.updated_at.isoformat(),
            trust.model_dump_json(),
        ]

    async def get_trust(self, household_id: str) -> Optional[HouseholdAITrust]:
        found = self._table.find(household_id)
        return HouseholdAITrust.model_validate_json(found[1][3]) if found else None

    async def create_trust_if_absent(self, trust: HouseholdAITrust) -> HouseholdAITrust:
        async with self._client.lock:
            found = self._table.find(trust.household_id)
            if found:
                return HouseholdAITrust.model_validate_json(found[1][3])
            self._table.append(self._trust_to_row(trust))
            return trust

    async def update_trust(self, household_id: str, mutate: TrustMutator) -> HouseholdAITrust:
        async with self._client.lock:
            found = self._table.find(household_id)
            if found is None:
                raise RecordNotFoundError(f"No trust record for household: {household_id}")
            idx, row = found
            trust = HouseholdAITrust.model_validate_json(row[3])
            mutate(trust)
            trust.updated_at = utcnow()
            self._table.rewrite(idx, self._trust_to_row(trust))
            return trust


class GoogleSheetsHouseholdDataStore(HouseholdDataStore):
    """Household records keyed by (household, collection, record id)."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client, self._client.settings.records_sheet_name, RECORD_COLUMNS, rows=5000
        )

    async def get_record(self, household_id: str, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        found = self._table.find(household_id, collection, record_id)
        return json.loads(found[1][3]) if found else None

    async def list_records(self, household_id: str, collection: str) -> list[dict[str, Any]]:
        return [
            json.loads(row[3])
            for _, row in self._table.data_rows()
            if len(row) >= 4 and row[0] == household_id and row[1] == collection
        ]

    async def put_record(self, household_id: str, collection: str, record_id: str, data: dict[str, Any]) -> None:
        row = [household_id, collection, record_id, json.dumps(data)]
        async with self._client.lock:
            found = self._table.find(household_id, collection, record_id)
            if found:
                self._table.rewrite(found[0], row)
            else:
                self._table.append(row)

    async def delete_record(self, household_id: str, collection: str, record_id: str) -> bool:
        async with self._client.lock:
            found = self._table.find(household_id, collection, record_id)
            if found is None:
                return False
            self._table.delete(found[0])
            return True
