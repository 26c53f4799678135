"""
Audit Models for Household AI

Every action the assistant attempts is recorded before it runs. This
provides:
1. Complete traceability of what the assistant did, and for whom
2. The pre-state snapshot that makes undo possible
3. Accountability when something goes wrong

DESIGN DECISION: Audit entries are append-only. The only mutations are
the lifecycle transitions below, each allowed exactly once:

    STARTED → SUCCEEDED | FAILED
    SUCCEEDED → UNDONE
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from household_ai.clock import utcnow
from household_ai.models.risk import RiskLevel


class AuditStatus(str, Enum):
    """Lifecycle of one attempted action."""
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNDONE = "undone"


class AuditSeverity(str, Enum):
    """Severity level for local audit log lines."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_AUDIT_TRANSITIONS: dict[AuditStatus, set[AuditStatus]] = {
    AuditStatus.STARTED: {AuditStatus.SUCCEEDED, AuditStatus.FAILED},
    AuditStatus.SUCCEEDED: {AuditStatus.UNDONE},
    AuditStatus.FAILED: set(),
    AuditStatus.UNDONE: set(),
}


class EntitySnapshot(BaseModel):
    """
    Full copy of one household record taken before an action ran.

    data is None when the record did not exist yet (the action creates
    it); restoring such a snapshot deletes the record.
    """
    model_config = ConfigDict(frozen=True)

    collection: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)
    data: Optional[dict[str, Any]] = None

    @property
    def existed(self) -> bool:
        return self.data is not None


class AIAuditLog(BaseModel):
    """
    A single audit entry.

    This is the core unit of the audit trail: one per attempted action.
    """

    # Identity
    id: str = Field(default_factory=lambda: str(uuid4()))
    household_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    proposal_id: Optional[str] = None
    action_id: Optional[str] = None

    # What was attempted
    function_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    risk_level: RiskLevel
    is_reversible: bool = False

    # Outcome
    status: AuditStatus = AuditStatus.STARTED
    result: Optional[dict[str, Any]] = None
    pre_state: Optional[EntitySnapshot] = None
    error_message: Optional[str] = None

    # Timing
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    undone_at: Optional[datetime] = None
    undone_by: Optional[str] = None

    def can_transition_to(self, target: AuditStatus) -> bool:
        return target in _AUDIT_TRANSITIONS[self.status]

    @property
    def is_undoable(self) -> bool:
        """Reversible, succeeded and carrying a snapshot (ignores the window)."""
        return (
            self.status == AuditStatus.SUCCEEDED
            and self.is_reversible
            and self.pre_state is not None
        )

    @property
    def severity(self) -> AuditSeverity:
        if self.status == AuditStatus.FAILED:
            return AuditSeverity.ERROR
        if self.status == AuditStatus.UNDONE:
            return AuditSeverity.WARNING
        return AuditSeverity.INFO

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "audit_log_id": self.id,
            "household_id": self.household_id,
            "user_id": self.user_id,
            "proposal_id": self.proposal_id,
            "action_id": self.action_id,
            "function_name": self.function_name,
            "risk_level": self.risk_level.label,
            "status": self.status.value,
            "is_reversible": self.is_reversible,
            "has_pre_state": self.pre_state is not None,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "undone_at": self.undone_at.isoformat() if self.undone_at else None,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [id, household_id, user_id, session_id, proposal_id, action_id,
         function_name, arguments_json, risk_level, is_reversible, status,
         result_json, pre_state_json, error_message, started_at,
         completed_at, undone_at, undone_by]
        """
        return [
            self.id,
            self.household_id,
            self.user_id or "",
            self.session_id or "",
            self.proposal_id or "",
            self.action_id or "",
            self.function_name,
            json.dumps(self.arguments),
            str(self.risk_level.value),
            str(self.is_reversible),
            self.status.value,
            json.dumps(self.result) if self.result is not None else "",
            self.pre_state.model_dump_json() if self.pre_state else "",
            self.error_message or "",
            self.started_at.isoformat(),
            self.completed_at.isoformat() if self.completed_at else "",
            self.undone_at.isoformat() if self.undone_at else "",
            self.undone_by or "",
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "AIAuditLog":
        """Inverse of to_sheets_row; tolerates trailing empty cells."""
        def cell(index: int) -> str:
            try:
                return row[index] or ""
            except IndexError:
                return ""

        return cls(
            id=cell(0),
            household_id=cell(1),
            user_id=cell(2) or None,
            session_id=cell(3) or None,
            proposal_id=cell(4) or None,
            action_id=cell(5) or None,
            function_name=cell(6),
            arguments=json.loads(cell(7)) if cell(7) else {},
            risk_level=RiskLevel(int(cell(8))),
            is_reversible=cell(9) == "True",
            status=AuditStatus(cell(10)),
            result=json.loads(cell(11)) if cell(11) else None,
            pre_state=EntitySnapshot.model_validate_json(cell(12)) if cell(12) else None,
            error_message=cell(13) or None,
            started_at=datetime.fromisoformat(cell(14)),
            completed_at=datetime.fromisoformat(cell(15)) if cell(15) else None,
            undone_at=datetime.fromisoformat(cell(16)) if cell(16) else None,
            undone_by=cell(17) or None,
        )
