"""Execution and undo package."""

from household_ai.execution.executor import ProposalExecutor
from household_ai.execution.rollback import RollbackEngine

__all__ = ["ProposalExecutor", "RollbackEngine"]
