"""
Execution and Rollback Result Models

Callers must always be able to tell "nothing happened" from "partially
happened" from "fully happened". These results enumerate exactly which
actions ran, in order, and which one stopped the run.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from household_ai.models.audit import EntitySnapshot
from household_ai.models.proposal import AIProposal
from household_ai.models.trust import TrustDecision


class ExecutionOutcome(str, Enum):
    """Coarse outcome of executing a proposal or action."""
    NOTHING = "nothing"      # no action succeeded
    PARTIAL = "partial"      # some succeeded, then one failed
    COMPLETE = "complete"    # every action succeeded


class ExecutedAction(BaseModel):
    """One attempted action, in execution order."""

    action_id: str
    function_name: str
    audit_log_id: str
    success: bool
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    can_undo: bool = False


class ProposalExecutionResult(BaseModel):
    """
    Result of running a proposal (or a single auto-approved action).

    executed_actions holds every ATTEMPTED action: all succeeded except,
    possibly, the last one. Actions after a failure are never attempted
    and are counted in not_attempted.
    """

    proposal_id: Optional[str] = None
    household_id: str
    executed_actions: list[ExecutedAction] = Field(default_factory=list)
    failed_at: Optional[int] = Field(
        default=None,
        ge=0,
        description="Index (in the executed list) of the action that failed"
    )
    error: Optional[str] = None
    not_attempted: int = Field(default=0, ge=0)
    started_at: datetime
    completed_at: datetime

    @property
    def succeeded(self) -> list[ExecutedAction]:
        return [a for a in self.executed_actions if a.success]

    @property
    def success(self) -> bool:
        return self.failed_at is None

    @property
    def outcome(self) -> ExecutionOutcome:
        if self.failed_at is None and self.executed_actions:
            return ExecutionOutcome.COMPLETE
        if self.succeeded:
            return ExecutionOutcome.PARTIAL
        return ExecutionOutcome.NOTHING

    @property
    def audit_log_ids(self) -> list[str]:
        return [a.audit_log_id for a in self.executed_actions]

    @property
    def can_undo(self) -> bool:
        return any(a.can_undo for a in self.executed_actions)

    def describe(self) -> str:
        """Short human-readable outcome."""
        done = len(self.succeeded)
        if self.outcome == ExecutionOutcome.COMPLETE:
            return f"{done} action(s) executed successfully"
        failed = self.executed_actions[self.failed_at]
        return (
            f"{done} action(s) executed before {failed.function_name} failed: "
            f"{self.error}. {self.not_attempted} action(s) not attempted"
        )


class RollbackResult(BaseModel):
    """Result of undoing one audit entry."""

    audit_log_id: str
    function_name: str
    success: bool = True
    restored_state: Optional[EntitySnapshot] = None
    undone_at: Optional[datetime] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class ProposalRollbackResult(BaseModel):
    """Result of undoing every executed action of a proposal."""

    proposal_id: str
    results: list[RollbackResult] = Field(default_factory=list)

    @property
    def rolled_back(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        return bool(self.results) and self.failed == 0

    @property
    def errors(self) -> list[str]:
        return [f"{r.function_name}: {r.error}" for r in self.results if not r.success]


class EvaluationResult(BaseModel):
    """Answer to "may the assistant just do this?"."""

    auto_execute: bool
    decision: TrustDecision


class IntentOutcome(BaseModel):
    """What happened to an intent: run right away, or waiting for a person."""

    decision: TrustDecision
    execution: Optional[ProposalExecutionResult] = None
    proposal: Optional[AIProposal] = None

    @property
    def auto_executed(self) -> bool:
        return self.execution is not None
