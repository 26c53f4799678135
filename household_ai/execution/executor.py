"""
Proposal Executor

Runs approved actions one at a time, each behind an audit entry.

DESIGN DECISION: For every action, in order:
1. Locate the record it will touch and snapshot it (if reversible)
2. Persist a STARTED audit entry carrying the snapshot
3. Apply the mutation (a single record write)
4. Mark the entry SUCCEEDED or FAILED

A failure stops the run. Earlier successes are NOT rolled back: the
result says exactly which actions ran, which one failed and how many
were never attempted, and each success stays individually undoable.

Argument validation happens for the whole proposal before step 1 of the
first action, so a malformed proposal changes nothing. An action whose
function is not registered fails at its turn like any other action.

The single action path trusts nothing on the action but its function
name and arguments: risk and reversibility come from the registry, and
the household's trust must allow the action before a slot is reserved.
"""

from typing import Optional

import structlog

from household_ai.audit import AuditLogger
from household_ai.clock import Clock, SystemClock
from household_ai.exceptions import AlreadyResolvedError, InvalidStateError
from household_ai.functions import (
    FunctionArgs,
    FunctionContext,
    FunctionRegistry,
    HouseholdFunction,
    RecordTarget,
    default_registry,
)
from household_ai.models.execution import ExecutedAction, ProposalExecutionResult
from household_ai.models.proposal import AIProposal, AIProposedAction
from household_ai.models.trust import TrustDecisionReason
from household_ai.proposals import ProposalStore
from household_ai.services.storage import HouseholdDataStore
from household_ai.trust import TrustEvaluator


class ProposalExecutor:
    """
    Executes approved proposals and auto-approved single actions.
    """

    def __init__(
        self,
        data_store: HouseholdDataStore,
        audit: AuditLogger,
        trust: TrustEvaluator,
        proposals: ProposalStore,
        registry: Optional[FunctionRegistry] = None,
        clock: Optional[Clock] = None,
    ):
        self._data_store = data_store
        self._audit = audit
        self._trust = trust
        self._proposals = proposals
        self._registry = registry or default_registry()
        self._clock = clock or SystemClock()
        self._logger = structlog.get_logger(__name__)

    def _prepare(
        self, action: AIProposedAction
    ) -> tuple[Optional[HouseholdFunction], Optional[FunctionArgs]]:
        """
        Resolve and validate one action (raises InvalidArgumentsError).

        Unregistered functions resolve to (None, None).
        """
        function = self._registry.get(action.function_name)
        if function is None:
            return None, None
        return function, function.parse_arguments(action.arguments)

    async def execute(self, proposal: AIProposal, actor_user_id: str) -> ProposalExecutionResult:
        """
        Execute an approved proposal.

        Raises:
            InvalidStateError: If the proposal isn't approved
            InvalidArgumentsError: If any action's arguments are invalid
            AlreadyResolvedError: If the proposal was already executed
            StorageError: If an audit entry cannot be persisted
        """
        if not proposal.is_executable:
            raise InvalidStateError(
                f"Proposal {proposal.id} is {proposal.status.value}, not approved",
                proposal_id=proposal.id,
                status=proposal.status.value,
            )

        prepared = [(action, *self._prepare(action)) for action in proposal.actions]

        if not await self._proposals.claim_for_execution(proposal):
            raise AlreadyResolvedError(
                f"Proposal {proposal.id} has already been executed",
                proposal_id=proposal.id,
            )

        log = self._logger.bind(household_id=proposal.household_id, proposal_id=proposal.id)
        log.info("proposal_execution_started", action_count=len(prepared))

        started_at = self._clock.now()
        executed: list[ExecutedAction] = []
        failed_at = None
        error = None

        for index, (action, function, args) in enumerate(prepared):
            outcome = await self._run_action(
                household_id=proposal.household_id,
                action=action,
                function=function,
                args=args,
                actor_user_id=actor_user_id,
                session_id=proposal.session_id,
                proposal_id=proposal.id,
            )
            executed.append(outcome)

            if outcome.success:
                await self._trust.record_success(proposal.household_id, self._clock.now())
            else:
                await self._trust.record_failure(proposal.household_id, self._clock.now())
                failed_at = index
                error = outcome.error
                break

        result = ProposalExecutionResult(
            proposal_id=proposal.id,
            household_id=proposal.household_id,
            executed_actions=executed,
            failed_at=failed_at,
            error=error,
            not_attempted=len(prepared) - len(executed),
            started_at=started_at,
            completed_at=self._clock.now(),
        )
        await self._proposals.record_execution(proposal.id, result.audit_log_ids)

        log.info(
            "proposal_execution_finished",
            outcome=result.outcome.value,
            executed=len(result.succeeded),
            failed_at=failed_at,
            not_attempted=result.not_attempted,
        )
        return result

    async def execute_action(
        self,
        household_id: str,
        action: AIProposedAction,
        actor_user_id: str,
        session_id: Optional[str] = None,
    ) -> ProposalExecutionResult:
        """
        Execute one auto-approved action directly.

        Raises:
            InvalidArgumentsError: If the function is unknown or the arguments are invalid
            InvalidStateError: If the household's trust requires a person's approval
            RateLimitedError: If the rate window or the daily HIGH risk cap is full
            StorageError: If the audit entry cannot be persisted
        """
        function = self._registry.require(action.function_name)
        args = function.parse_arguments(action.arguments)
        action = action.model_copy(update={
            "risk_level": function.config.risk_level,
            "is_reversible": function.config.is_reversible,
        })

        started_at = self._clock.now()
        decision = await self._trust.should_auto_approve(
            household_id, action.function_name, started_at
        )
        # A full window is reported by the reservation below
        if not decision.approve and decision.reason != TrustDecisionReason.RATE_LIMITED:
            self._logger.warning(
                "action_requires_approval",
                household_id=household_id,
                function_name=action.function_name,
                reason=decision.reason.value,
            )
            raise InvalidStateError(
                decision.message,
                household_id=household_id,
                function_name=action.function_name,
                reason=decision.reason.value,
            )
        await self._trust.reserve_action_slot(household_id, started_at, action.risk_level)

        outcome = await self._run_action(
            household_id=household_id,
            action=action,
            function=function,
            args=args,
            actor_user_id=actor_user_id,
            session_id=session_id,
            proposal_id=None,
        )

        if outcome.success:
            await self._trust.record_success(household_id, self._clock.now(), count_in_window=False)
        else:
            await self._trust.record_failure(household_id, self._clock.now())

        return ProposalExecutionResult(
            household_id=household_id,
            executed_actions=[outcome],
            failed_at=None if outcome.success else 0,
            error=outcome.error,
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    async def _run_action(
        self,
        household_id: str,
        action: AIProposedAction,
        function: Optional[HouseholdFunction],
        args: Optional[FunctionArgs],
        actor_user_id: str,
        session_id: Optional[str],
        proposal_id: Optional[str],
    ) -> ExecutedAction:
        ctx = FunctionContext(household_id, self._data_store, self._clock.now())

        target: Optional[RecordTarget] = None
        locate_error = None
        if function is None:
            locate_error = f"Unknown function: {action.function_name}"
        else:
            try:
                target = await function.locate(ctx, args)
            except Exception as e:
                locate_error = str(e)

        pre_state = target.snapshot() if target is not None and action.is_reversible else None

        # Must be persisted before anything is written
        entry = await self._audit.start(
            household_id=household_id,
            function_name=action.function_name,
            arguments=action.arguments,
            risk_level=action.risk_level,
            is_reversible=action.is_reversible,
            pre_state=pre_state,
            user_id=actor_user_id,
            session_id=session_id,
            proposal_id=proposal_id,
            action_id=action.id,
        )

        if locate_error is not None:
            entry = await self._audit.fail(entry, locate_error)
            return ExecutedAction(
                action_id=action.id,
                function_name=action.function_name,
                audit_log_id=entry.id,
                success=False,
                error=locate_error,
            )

        try:
            result = await function.run(ctx, args, target)
        except Exception as e:
            self._logger.warning(
                "action_failed",
                household_id=household_id,
                function_name=action.function_name,
                audit_log_id=entry.id,
                error=str(e),
            )
            entry = await self._audit.fail(entry, str(e))
            return ExecutedAction(
                action_id=action.id,
                function_name=action.function_name,
                audit_log_id=entry.id,
                success=False,
                error=str(e),
            )

        entry = await self._audit.succeed(entry, result)
        return ExecutedAction(
            action_id=action.id,
            function_name=action.function_name,
            audit_log_id=entry.id,
            success=True,
            result=result,
            can_undo=entry.is_undoable,
        )
