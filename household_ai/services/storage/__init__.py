"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory backend serves
tests and local runs.
"""

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
from household_ai.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryHouseholdDataStore,
    InMemoryProposalStorage,
    InMemoryTrustStorage,
)
from household_ai.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHouseholdDataStore,
    GoogleSheetsProposalStorage,
    GoogleSheetsTrustStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "HouseholdDataStore",
    "ProposalStorageInterface",
    "TrustMutator",
    "TrustStorageInterface",
    # Exceptions
    "DuplicateError",
    "RecordNotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryHouseholdDataStore",
    "InMemoryProposalStorage",
    "InMemoryTrustStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsHouseholdDataStore",
    "GoogleSheetsProposalStorage",
    "GoogleSheetsTrustStorage",
]
