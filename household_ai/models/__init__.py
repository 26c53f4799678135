"""
Data Models Package

This package contains all Pydantic models used by the AI command engine.
All data flowing through the engine must conform to these schemas.
"""

from household_ai.models.audit import (
    AIAuditLog,
    AuditSeverity,
    AuditStatus,
    EntitySnapshot,
)
from household_ai.models.execution import (
    EvaluationResult,
    ExecutedAction,
    ExecutionOutcome,
    IntentOutcome,
    ProposalExecutionResult,
    ProposalRollbackResult,
    RollbackResult,
)
from household_ai.models.proposal import (
    AIIntent,
    AIProposal,
    AIProposedAction,
    ProposalDecision,
    ProposalStatus,
    generate_proposal_summary,
    max_risk,
)
from household_ai.models.risk import FunctionConfig, RiskLevel
from household_ai.models.trust import (
    TRUST_LEVEL_PRESETS,
    HouseholdAITrust,
    TrustDecision,
    TrustDecisionReason,
    TrustStats,
    TrustUpdateResult,
)

__all__ = [
    # Audit models
    "AIAuditLog",
    "AuditSeverity",
    "AuditStatus",
    "EntitySnapshot",
    # Execution models
    "EvaluationResult",
    "ExecutedAction",
    "ExecutionOutcome",
    "IntentOutcome",
    "ProposalExecutionResult",
    "ProposalRollbackResult",
    "RollbackResult",
    # Proposal models
    "AIIntent",
    "AIProposal",
    "AIProposedAction",
    "ProposalDecision",
    "ProposalStatus",
    "generate_proposal_summary",
    "max_risk",
    # Risk models
    "FunctionConfig",
    "RiskLevel",
    # Trust models
    "TRUST_LEVEL_PRESETS",
    "HouseholdAITrust",
    "TrustDecision",
    "TrustDecisionReason",
    "TrustStats",
    "TrustUpdateResult",
]
