"""Services package."""

from household_ai.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHouseholdDataStore,
    GoogleSheetsProposalStorage,
    GoogleSheetsTrustStorage,
    HouseholdDataStore,
    InMemoryAuditStorage,
    InMemoryHouseholdDataStore,
    InMemoryProposalStorage,
    InMemoryTrustStorage,
    ProposalStorageInterface,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
    TrustStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsHouseholdDataStore",
    "GoogleSheetsProposalStorage",
    "GoogleSheetsTrustStorage",
    "HouseholdDataStore",
    "InMemoryAuditStorage",
    "InMemoryHouseholdDataStore",
    "InMemoryProposalStorage",
    "InMemoryTrustStorage",
    "ProposalStorageInterface",
    "RecordNotFoundError",
    "StorageConnectionError",
    "StorageError",
    "TrustStorageInterface",
]
