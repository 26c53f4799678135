"""
In-Memory Storage Implementation

Used by the test suite and for local runs without Google credentials.
Every read returns a deep copy, so callers can never mutate stored state
behind the storage's back.

Atomicity: all methods run on one event loop and do not await between
reading and writing, except `update_trust`, which holds a per-household
asyncio.Lock around the mutation.
"""

import asyncio
import copy
from collections import defaultdict
from datetime import datetime
from typing import Any, Optional

from household_ai.clock import utcnow
from household_ai.models.audit import AIAuditLog, AuditStatus
from household_ai.models.proposal import AIProposal, ProposalStatus
from household_ai.models.trust import HouseholdAITrust
from household_ai.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    HouseholdDataStore,
    ProposalStorageInterface,
    RecordNotFoundError,
    TrustMutator,
    TrustStorageInterface,
)


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit entries kept in insertion order."""

    def __init__(self):
        self._entries: dict[str, AIAuditLog] = {}

    async def append_entry(self, entry: AIAuditLog) -> None:
        if entry.id in self._entries:
            raise DuplicateError(f"Audit entry already exists: {entry.id}")
        self._entries[entry.id] = entry.model_copy(deep=True)

    async def get_entry(self, entry_id: str) -> Optional[AIAuditLog]:
        entry = self._entries.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    async def replace_entry(self, entry: AIAuditLog, expected_status: AuditStatus) -> bool:
        current = self._entries.get(entry.id)
        if current is None:
            raise RecordNotFoundError(f"Audit entry not found: {entry.id}")
        if current.status != expected_status:
            return False
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def list_entries(
        self,
        household_id: str,
        status: Optional[AuditStatus] = None,
        proposal_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AIAuditLog]:
        matches = []
        for entry in reversed(list(self._entries.values())):
            if entry.household_id != household_id:
                continue
            if status and entry.status != status:
                continue
            if proposal_id and entry.proposal_id != proposal_id:
                continue
            matches.append(entry.model_copy(deep=True))
            if len(matches) >= limit:
                break
        return matches


class InMemoryProposalStorage(ProposalStorageInterface):
    """Proposals keyed by id."""

    def __init__(self):
        self._proposals: dict[str, AIProposal] = {}

    async def insert_proposal(self, proposal: AIProposal) -> None:
        if proposal.id in self._proposals:
            raise DuplicateError(f"Proposal already exists: {proposal.id}")
        self._proposals[proposal.id] = proposal.model_copy(deep=True)

    async def get_proposal(self, proposal_id: str) -> Optional[AIProposal]:
        proposal = self._proposals.get(proposal_id)
        return proposal.model_copy(deep=True) if proposal else None

    async def replace_proposal(self, proposal: AIProposal, expected_status: ProposalStatus) -> bool:
        current = self._proposals.get(proposal.id)
        if current is None:
            raise RecordNotFoundError(f"Proposal not found: {proposal.id}")
        if current.status != expected_status:
            return False
        self._proposals[proposal.id] = proposal.model_copy(deep=True)
        return True

    async def claim_for_execution(self, proposal_id: str, at: datetime) -> bool:
        current = self._proposals.get(proposal_id)
        if current is None:
            raise RecordNotFoundError(f"Proposal not found: {proposal_id}")
        if current.execution_started_at is not None:
            return False
        current.execution_started_at = at
        return True

    async def list_proposals(
        self,
        household_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> list[AIProposal]:
        matches = [
            p for p in self._proposals.values()
            if p.household_id == household_id and (status is None or p.status == status)
        ]
        matches.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in matches[:limit]]


class InMemoryTrustStorage(TrustStorageInterface):
    """Trust records with a lock per household."""

    def __init__(self):
        self._trust: dict[str, HouseholdAITrust] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_trust(self, household_id: str) -> Optional[HouseholdAITrust]:
        trust = self._trust.get(household_id)
        return trust.model_copy(deep=True) if trust else None

    async def create_trust_if_absent(self, trust: HouseholdAITrust) -> HouseholdAITrust:
        existing = self._trust.setdefault(trust.household_id, trust.model_copy(deep=True))
        return existing.model_copy(deep=True)

    async def update_trust(self, household_id: str, mutate: TrustMutator) -> HouseholdAITrust:
        async with self._locks[household_id]:
            current = self._trust.get(household_id)
            if current is None:
                raise RecordNotFoundError(f"No trust record for household: {household_id}")
            updated = current.model_copy(deep=True)
            mutate(updated)
            updated.updated_at = utcnow()
            self._trust[household_id] = updated
            return updated.model_copy(deep=True)


class InMemoryHouseholdDataStore(HouseholdDataStore):
    """Household records grouped by (household, collection)."""

    def __init__(self):
        self._records: defaultdict[tuple[str, str], dict[str, dict[str, Any]]] = defaultdict(dict)

    async def get_record(self, household_id: str, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        record = self._records[(household_id, collection)].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def list_records(self, household_id: str, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records[(household_id, collection)].values()]

    async def put_record(self, household_id: str, collection: str, record_id: str, data: dict[str, Any]) -> None:
        self._records[(household_id, collection)][record_id] = copy.deepcopy(data)

    async def delete_record(self, household_id: str, collection: str, record_id: str) -> bool:
        return self._records[(household_id, collection)].pop(record_id, None) is not None
