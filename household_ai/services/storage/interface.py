"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a relational database later
2. Use in-memory storage for testing
3. Keep engine logic decoupled from storage implementation

Two guarantees are required from every implementation:
- Compare-and-set on status (`replace_entry`, `replace_proposal`), so a
  proposal is resolved once and an audit entry transitions once.
- Atomic read-modify-write of a household's trust record
  (`update_trust`), so the rate window cannot be bypassed by two
  concurrent requests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional

from household_ai.models.audit import AIAuditLog, AuditStatus
from household_ai.models.proposal import AIProposal, ProposalStatus
from household_ai.models.trust import HouseholdAITrust


class AuditStorageInterface(ABC):
    """
    Abstract interface for the AI audit log (`ai_audit_log`).

    Entries are append-only apart from their lifecycle transitions.
    """

    @abstractmethod
    async def append_entry(self, entry: AIAuditLog) -> None:
        """
        Append a new audit entry.

        Raises:
            DuplicateError: If an entry with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[AIAuditLog]:
        """
        Retrieve an entry by id.

        Returns:
            The entry if found, None otherwise
        """
        pass

    @abstractmethod
    async def replace_entry(
        self,
        entry: AIAuditLog,
        expected_status: AuditStatus,
    ) -> bool:
        """
        Replace a stored entry only if its current status is expected_status.

        Returns:
            True if replaced, False if the stored status differed

        Raises:
            RecordNotFoundError: If the entry doesn't exist
        """
        pass

    @abstractmethod
    async def list_entries(
        self,
        household_id: str,
        status: Optional[AuditStatus] = None,
        proposal_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AIAuditLog]:
        """
        List a household's entries, newest first.

        Args:
            household_id: Owning household
            status: Filter by status
            proposal_id: Filter by originating proposal
            limit: Maximum number of results
        """
        pass


class ProposalStorageInterface(ABC):
    """Abstract interface for proposals (`ai_proposals`, actions embedded)."""

    @abstractmethod
    async def insert_proposal(self, proposal: AIProposal) -> None:
        """
        Store a new proposal.

        Raises:
            DuplicateError: If a proposal with the same id exists
        """
        pass

    @abstractmethod
    async def get_proposal(self, proposal_id: str) -> Optional[AIProposal]:
        """Retrieve a proposal by id, or None."""
        pass

    @abstractmethod
    async def replace_proposal(
        self,
        proposal: AIProposal,
        expected_status: ProposalStatus,
    ) -> bool:
        """
        Replace a stored proposal only if its current status is expected_status.

        Returns:
            True if replaced, False if the stored status differed

        Raises:
            RecordNotFoundError: If the proposal doesn't exist
        """
        pass

    @abstractmethod
    async def claim_for_execution(self, proposal_id: str, at: datetime) -> bool:
        """
        Mark an approved proposal as executing.

        Returns:
            True if this caller claimed it, False if execution already started
        """
        pass

    @abstractmethod
    async def list_proposals(
        self,
        household_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> list[AIProposal]:
        """List a household's proposals, newest first."""
        pass


TrustMutator = Callable[[HouseholdAITrust], None]


class TrustStorageInterface(ABC):
    """Abstract interface for household trust (`household_ai_trust`)."""

    @abstractmethod
    async def get_trust(self, household_id: str) -> Optional[HouseholdAITrust]:
        """Retrieve a household's trust record, or None."""
        pass

    @abstractmethod
    async def create_trust_if_absent(self, trust: HouseholdAITrust) -> HouseholdAITrust:
        """
        Insert trust unless the household already has a record.

        Returns:
            The stored record (the existing one if present)
        """
        pass

    @abstractmethod
    async def update_trust(
        self,
        household_id: str,
        mutate: TrustMutator,
    ) -> HouseholdAITrust:
        """
        Atomically apply `mutate` to a copy of the stored record and save it.

        No other update for the same household may interleave between the
        read and the write.

        Returns:
            The record after mutation

        Raises:
            RecordNotFoundError: If the household has no trust record
        """
        pass

    async def reserve_action_slot(
        self,
        household_id: str,
        now: datetime,
        history_limit: Optional[int] = None,
        high_risk: bool = False,
    ) -> bool:
        """
        Prune the rate window, check it, and append `now` - as one unit.

        A high_risk slot must also fit under the daily HIGH risk cap and
        is counted against it.

        Returns:
            True if a slot was reserved, False if the window or daily cap is full
        """
        reserved = False

        def mutate(trust: HouseholdAITrust) -> None:
            nonlocal reserved
            trust.prune(now, history_limit)
            if len(trust.recent_action_timestamps) >= trust.max_actions_per_window:
                return
            if high_risk:
                if len(trust.high_risk_action_timestamps) >= trust.max_high_risk_actions_per_day:
                    return
                trust.high_risk_action_timestamps.append(now)
            trust.recent_action_timestamps.append(now)
            reserved = True

        await self.update_trust(household_id, mutate)
        return reserved


class HouseholdDataStore(ABC):
    """
    Household-scoped record store the household functions mutate.

    Records are JSON-compatible dicts grouped by collection
    (inventory, shopping_list, recipes, ...). Each write replaces a whole
    record, so every single write is atomic.
    """

    @abstractmethod
    async def get_record(
        self,
        household_id: str,
        collection: str,
        record_id: str,
    ) -> Optional[dict[str, Any]]:
        """Retrieve one record, or None."""
        pass

    @abstractmethod
    async def list_records(
        self,
        household_id: str,
        collection: str,
    ) -> list[dict[str, Any]]:
        """List every record of a collection for a household."""
        pass

    @abstractmethod
    async def put_record(
        self,
        household_id: str,
        collection: str,
        record_id: str,
        data: dict[str, Any],
    ) -> None:
        """Create or fully replace a record."""
        pass

    @abstractmethod
    async def delete_record(
        self,
        household_id: str,
        collection: str,
        record_id: str,
    ) -> bool:
        """
        Delete a record.

        Returns:
            True if a record was deleted, False if it didn't exist
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
