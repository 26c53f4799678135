"""
Proposal Models

A proposal is a batch of actions the assistant wants to run but is not
trusted to run alone. A person approves all of it, approves part of it,
or rejects it - once.

STATE MACHINE:
    PENDING → APPROVED | PARTIALLY_APPROVED | REJECTED | EXPIRED
Every state except PENDING is terminal.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from household_ai.clock import utcnow
from household_ai.models.risk import RiskLevel


class ProposalStatus(str, Enum):
    """Lifecycle of a proposal."""
    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_APPROVED = "partially_approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


_PROPOSAL_TRANSITIONS: dict[ProposalStatus, set[ProposalStatus]] = {
    ProposalStatus.PENDING: {
        ProposalStatus.APPROVED,
        ProposalStatus.PARTIALLY_APPROVED,
        ProposalStatus.REJECTED,
        ProposalStatus.EXPIRED,
    },
    ProposalStatus.APPROVED: set(),
    ProposalStatus.PARTIALLY_APPROVED: set(),
    ProposalStatus.REJECTED: set(),
    ProposalStatus.EXPIRED: set(),
}

EXECUTABLE_STATUSES = frozenset({ProposalStatus.APPROVED, ProposalStatus.PARTIALLY_APPROVED})


class ProposalDecision(str, Enum):
    """A person's decision on a pending proposal."""
    APPROVE = "approve"
    REJECT = "reject"


def _new_id() -> str:
    return str(uuid4())


class AIProposedAction(BaseModel):
    """
    One invocation of a household function, as proposed.

    Immutable once created. risk_level and is_reversible are copied from
    the function config at proposal time and do not follow later config
    changes.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    function_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    risk_level: RiskLevel
    is_reversible: bool
    description: str = Field(default="", max_length=500)
    description_es: str = Field(default="", max_length=500)


class AIProposal(BaseModel):
    """A batch of proposed actions awaiting a decision."""

    id: str = Field(default_factory=_new_id)
    household_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None

    summary: str = Field(default="", max_length=500)
    actions: list[AIProposedAction] = Field(default_factory=list)
    original_action_count: int = Field(default=0, ge=0)
    risk_level: RiskLevel = RiskLevel.LOW

    status: ProposalStatus = ProposalStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    # Decision
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = Field(default=None, max_length=1000)

    # Execution bookkeeping
    execution_started_at: Optional[datetime] = None
    execution_completed_at: Optional[datetime] = None
    audit_log_ids: list[str] = Field(default_factory=list)

    @property
    def action_ids(self) -> list[str]:
        return [action.id for action in self.actions]

    @property
    def is_pending(self) -> bool:
        return self.status == ProposalStatus.PENDING

    @property
    def is_executable(self) -> bool:
        return self.status in EXECUTABLE_STATUSES

    def is_past_ttl(self, now: datetime) -> bool:
        return now > self.expires_at

    def can_transition_to(self, target: ProposalStatus) -> bool:
        return target in _PROPOSAL_TRANSITIONS[self.status]

    def to_log_dict(self) -> dict:
        """Compact form for structured logging."""
        return {
            "proposal_id": self.id,
            "household_id": self.household_id,
            "status": self.status.value,
            "risk_level": self.risk_level.label,
            "action_count": len(self.actions),
            "expires_at": self.expires_at.isoformat(),
        }


def max_risk(actions: list[AIProposedAction]) -> RiskLevel:
    """Highest risk across a list of actions."""
    return max(action.risk_level for action in actions)


# Verb groups used in multi-action summaries, keyed by function-name prefix
_SUMMARY_GROUPS = {
    "get": "lookups",
    "add": "additions",
    "update": "updates",
    "delete": "deletions",
    "create": "creations",
    "swap": "swaps",
    "mark": "check-offs",
    "complete": "completions",
}


def generate_proposal_summary(actions: list[AIProposedAction]) -> str:
    """
    Human-readable summary of a set of actions.

    One action is described by itself; several are grouped by verb,
    e.g. "Plan with 2 additions, 1 update".
    """
    if not actions:
        return "No actions"
    if len(actions) == 1:
        return actions[0].description or actions[0].function_name

    counts: dict[str, int] = {}
    for action in actions:
        prefix = action.function_name.split("_")[0]
        counts[prefix] = counts.get(prefix, 0) + 1

    parts = []
    for prefix, count in counts.items():
        group = _SUMMARY_GROUPS.get(prefix, prefix)
        if count == 1 and group.endswith("s"):
            group = group[:-1]
        parts.append(f"{count} {group}")

    return f"Plan with {', '.join(parts)}"


class AIIntent(BaseModel):
    """A structured function call produced upstream (e.g. by an LLM)."""

    function_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = Field(default=None, max_length=500)
