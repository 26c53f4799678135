"""
Main Orchestrator for Household AI

This module ties together all the components and defines the
end-to-end flow for an assistant intent:

    intent → classify → trust check → execute now | propose
    proposal → approve / reject → execute → (undo)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing above the household's trust runs without a person's approval
- Nothing runs without an audit entry and a pre-state snapshot
- Every executed reversible action stays undoable for the undo window

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Optional, Union

import structlog

from household_ai.audit import AuditLogger, configure_logging
from household_ai.clock import Clock, SystemClock
from household_ai.config import Settings, get_settings
from household_ai.exceptions import InvalidArgumentsError, RateLimitedError
from household_ai.execution import ProposalExecutor, RollbackEngine
from household_ai.functions import FunctionRegistry, default_registry
from household_ai.models.audit import AIAuditLog
from household_ai.models.execution import (
    EvaluationResult,
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
)
from household_ai.models.trust import TrustStats
from household_ai.proposals import ProposalStore
from household_ai.risk import RiskClassifier
from household_ai.services.storage import (
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
)
from household_ai.trust import TrustEvaluator


logger = structlog.get_logger(__name__)


class AICommandFlow:
    """
    Orchestrates assistant intents from evaluation to undo.

    Flow:
    1. Evaluate → Classify risk, check household trust
    2a. Auto-execute → Reserve a rate slot, run with audit
    2b. Propose → Store a proposal (PAUSE - require a decision)
    3. Decide → Approve (all or some) or reject
    4. Execute → Run approved actions in order
    5. Undo → Restore snapshots within the window
    """

    def __init__(
        self,
        data_store: HouseholdDataStore,
        classifier: RiskClassifier,
        trust: TrustEvaluator,
        proposals: ProposalStore,
        executor: ProposalExecutor,
        rollback: RollbackEngine,
        audit: AuditLogger,
        registry: Optional[FunctionRegistry] = None,
        clock: Optional[Clock] = None,
    ):
        self.data_store = data_store
        self.classifier = classifier
        self.trust = trust
        self.proposals = proposals
        self.executor = executor
        self.rollback = rollback
        self.audit = audit
        self._registry = registry or default_registry()
        self._clock = clock or SystemClock()

    def build_action(self, intent: AIIntent) -> AIProposedAction:
        """
        Turn an intent into a proposed action with its fixed risk.

        Arguments of known functions are validated here so a malformed
        intent never reaches a person for approval. Unknown functions
        are kept (as CRITICAL) and fail at execution.

        Raises:
            InvalidArgumentsError: If a known function's arguments are invalid
        """
        config = self.classifier.classify(intent.function_name)
        function = self._registry.get(intent.function_name)

        description = intent.description or ""
        if function is not None:
            args = function.parse_arguments(intent.arguments)
            description = description or args.describe()

        return AIProposedAction(
            function_name=intent.function_name,
            arguments=intent.arguments,
            risk_level=config.risk_level,
            is_reversible=config.is_reversible,
            description=description or config.description,
            description_es=config.description_es,
        )

    async def evaluate(
        self,
        household_id: str,
        function_name: str,
        arguments: Optional[dict] = None,
    ) -> EvaluationResult:
        """Decide whether an intent may run without asking (no side effects)."""
        decision = await self.trust.should_auto_approve(household_id, function_name)
        return EvaluationResult(auto_execute=decision.approve, decision=decision)

    async def propose(
        self,
        household_id: str,
        session_id: str,
        intents: list[AIIntent],
        user_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> AIProposal:
        """
        Store a proposal for a person to decide on.

        Raises:
            BulkLimitExceededError: If there are more intents than the household allows
            InvalidArgumentsError: If an intent is malformed
            InvalidSelectionError: If there are no intents
        """
        await self.trust.check_bulk_limit(household_id, len(intents))
        actions = [self.build_action(intent) for intent in intents]
        return await self.proposals.create_proposal(
            household_id=household_id,
            session_id=session_id,
            actions=actions,
            user_id=user_id,
            summary=summary,
        )

    async def resolve_proposal(
        self,
        proposal_id: str,
        decision: ProposalDecision,
        selected_action_ids: Optional[list[str]] = None,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> AIProposal:
        """Apply a person's decision to a pending proposal."""
        if decision == ProposalDecision.REJECT:
            return await self.proposals.reject(
                proposal_id,
                decided_by=decided_by,
                notes=notes,
                household_id=household_id,
            )
        return await self.proposals.approve(
            proposal_id,
            selected_action_ids=selected_action_ids,
            decided_by=decided_by,
            notes=notes,
            household_id=household_id,
        )

    async def execute(
        self,
        target: Union[AIProposal, AIProposedAction, str],
        actor: str,
        household_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ProposalExecutionResult:
        """
        Execute an approved proposal (object or id) or a single action.

        A single action takes the auto-approved path and needs household_id;
        the household's trust must allow it (InvalidStateError otherwise).
        """
        if isinstance(target, AIProposedAction):
            if not household_id:
                raise InvalidArgumentsError("household_id is required to execute an action")
            return await self.executor.execute_action(
                household_id, target, actor, session_id=session_id
            )

        proposal_id = target if isinstance(target, str) else target.id
        # Always execute the stored version, never a caller's stale copy
        proposal = await self.proposals.get_proposal(proposal_id, household_id)
        return await self.executor.execute(proposal, actor)

    async def approve_and_execute(
        self,
        proposal_id: str,
        actor: str,
        selected_action_ids: Optional[list[str]] = None,
        notes: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> ProposalExecutionResult:
        """Approve (all or some) and run in one step."""
        proposal = await self.proposals.approve(
            proposal_id,
            selected_action_ids=selected_action_ids,
            decided_by=actor,
            notes=notes,
            household_id=household_id,
        )
        return await self.executor.execute(proposal, actor)

    async def handle_intent(
        self,
        household_id: str,
        session_id: str,
        function_name: str,
        arguments: Optional[dict] = None,
        actor: Optional[str] = None,
    ) -> IntentOutcome:
        """
        Run an intent now if trust allows, otherwise propose it.
        """
        intent = AIIntent(function_name=function_name, arguments=arguments or {})
        action = self.build_action(intent)
        evaluation = await self.evaluate(household_id, function_name, intent.arguments)
        log = logger.bind(household_id=household_id, function_name=function_name)

        if evaluation.auto_execute:
            try:
                execution = await self.executor.execute_action(
                    household_id, action, actor or "assistant", session_id=session_id
                )
                log.info("intent_auto_executed", success=execution.success)
                return IntentOutcome(decision=evaluation.decision, execution=execution)
            except RateLimitedError:
                # Window filled up since the evaluation; ask instead
                log.info("intent_rate_limited_fallback_to_proposal")

        proposal = await self.proposals.create_proposal(
            household_id=household_id,
            session_id=session_id,
            actions=[action],
            user_id=actor,
        )
        log.info("intent_proposed", proposal_id=proposal.id, reason=evaluation.decision.reason.value)
        return IntentOutcome(decision=evaluation.decision, proposal=proposal)

    async def undo(
        self,
        audit_log_id: str,
        actor: str,
        household_id: Optional[str] = None,
        window_seconds: Optional[int] = None,
    ) -> RollbackResult:
        return await self.rollback.undo(audit_log_id, actor, household_id, window_seconds)

    async def undo_proposal(
        self,
        proposal_id: str,
        actor: str,
        household_id: Optional[str] = None,
    ) -> ProposalRollbackResult:
        return await self.rollback.undo_proposal(proposal_id, actor, household_id)

    async def recent_undoable(self, household_id: str, limit: Optional[int] = None) -> list[AIAuditLog]:
        return await self.rollback.recent_undoable(household_id, limit)

    async def list_pending(self, household_id: str) -> list[AIProposal]:
        return await self.proposals.list_pending(household_id)

    async def get_trust_stats(self, household_id: str) -> TrustStats:
        return await self.trust.get_trust_stats(household_id)


def create_app_components(
    settings: Optional[Settings] = None,
    use_sheets: bool = False,
    clock: Optional[Clock] = None,
    registry: Optional[FunctionRegistry] = None,
) -> tuple[AICommandFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        settings: Root settings (loaded from the environment if None)
        use_sheets: Whether to use Google Sheets storage.
                    Falls back to in-memory storage if Sheets isn't configured.
        clock: Time source (system UTC clock if None)
        registry: Household function registry (the default one if None)

    Returns:
        (command_flow, sheets_client)
    """
    settings = settings or get_settings()
    engine = settings.engine
    configure_logging(settings.app)

    clock = clock or SystemClock()
    registry = registry or default_registry()
    sheets_client = None

    if use_sheets:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
            proposal_storage = GoogleSheetsProposalStorage(sheets_client)
            trust_storage = GoogleSheetsTrustStorage(sheets_client)
            data_store = GoogleSheetsHouseholdDataStore(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None
            use_sheets = False

    if not use_sheets:
        audit_storage = InMemoryAuditStorage()
        proposal_storage = InMemoryProposalStorage()
        trust_storage = InMemoryTrustStorage()
        data_store = InMemoryHouseholdDataStore()

    classifier = RiskClassifier(registry)
    audit = AuditLogger(audit_storage, clock)
    trust = TrustEvaluator(trust_storage, classifier, engine, clock)
    proposals = ProposalStore(proposal_storage, engine, clock)
    executor = ProposalExecutor(data_store, audit, trust, proposals, registry, clock)
    rollback = RollbackEngine(data_store, audit, trust, proposals, engine, clock)

    flow = AICommandFlow(
        data_store=data_store,
        classifier=classifier,
        trust=trust,
        proposals=proposals,
        executor=executor,
        rollback=rollback,
        audit=audit,
        registry=registry,
        clock=clock,
    )
    return flow, sheets_client
