"""
Rollback Engine

Undoes executed actions by writing their pre-state snapshot back.

Preconditions, checked in this order:
1. The entry exists (and belongs to the household)  → NotFoundError
2. It SUCCEEDED                                      → InvalidStateError
3. It is reversible and carries a snapshot           → NotReversibleError
4. The undo window has not elapsed                   → ExpiredError

Undo restores the whole record as it was (a record the action created is
deleted). It does not cascade: undoing one action of a proposal leaves
its siblings in place.
"""

from datetime import timedelta
from typing import Optional

import structlog

from household_ai.audit import AuditLogger
from household_ai.clock import Clock, SystemClock
from household_ai.config import EngineSettings, get_settings
from household_ai.exceptions import (
    AICommandError,
    ExpiredError,
    InvalidStateError,
    NotReversibleError,
)
from household_ai.functions import restore_snapshot
from household_ai.models.audit import AIAuditLog, AuditStatus
from household_ai.models.execution import ProposalRollbackResult, RollbackResult
from household_ai.proposals import ProposalStore
from household_ai.services.storage import HouseholdDataStore
from household_ai.trust import TrustEvaluator


class RollbackEngine:
    """
    Undo for single actions and whole proposals.
    """

    def __init__(
        self,
        data_store: HouseholdDataStore,
        audit: AuditLogger,
        trust: TrustEvaluator,
        proposals: ProposalStore,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._data_store = data_store
        self._audit = audit
        self._trust = trust
        self._proposals = proposals
        self._settings = settings or get_settings().engine
        self._clock = clock or SystemClock()
        self._logger = structlog.get_logger(__name__)

    def _window(self, window_seconds: Optional[int]) -> timedelta:
        if window_seconds is None:
            window_seconds = self._settings.undo_window_seconds
        return timedelta(seconds=window_seconds)

    async def undo(
        self,
        audit_log_id: str,
        actor_user_id: str,
        household_id: Optional[str] = None,
        window_seconds: Optional[int] = None,
    ) -> RollbackResult:
        """
        Undo one executed action.

        Raises:
            NotFoundError, InvalidStateError, NotReversibleError, ExpiredError
        """
        entry = await self._audit.get(audit_log_id, household_id)

        if entry.status != AuditStatus.SUCCEEDED:
            raise InvalidStateError(
                f"Only succeeded actions can be undone (this one is {entry.status.value})",
                audit_log_id=audit_log_id,
                status=entry.status.value,
            )

        if not entry.is_reversible or entry.pre_state is None:
            raise NotReversibleError(
                f"{entry.function_name} cannot be undone",
                audit_log_id=audit_log_id,
                function_name=entry.function_name,
            )

        now = self._clock.now()
        window = self._window(window_seconds)
        if entry.completed_at is None or now - entry.completed_at > window:
            raise ExpiredError(
                f"The undo window of {int(window.total_seconds())}s has passed",
                audit_log_id=audit_log_id,
            )

        await restore_snapshot(self._data_store, entry.household_id, entry.pre_state)
        entry = await self._audit.mark_undone(entry, actor_user_id)
        await self._trust.record_rollback(entry.household_id, now)

        self._logger.info(
            "action_undone",
            household_id=entry.household_id,
            audit_log_id=entry.id,
            function_name=entry.function_name,
            undone_by=actor_user_id,
        )
        return RollbackResult(
            audit_log_id=entry.id,
            function_name=entry.function_name,
            success=True,
            restored_state=entry.pre_state,
            undone_at=entry.undone_at,
        )

    async def undo_proposal(
        self,
        proposal_id: str,
        actor_user_id: str,
        household_id: Optional[str] = None,
        window_seconds: Optional[int] = None,
    ) -> ProposalRollbackResult:
        """
        Undo every succeeded action of a proposal, last first.

        Each action is undone independently; a failure is recorded in the
        result and the remaining actions are still attempted.

        Raises:
            NotFoundError: If the proposal doesn't exist
        """
        proposal = await self._proposals.get_proposal(proposal_id, household_id)
        entries = await self._audit.list_for_proposal(proposal.household_id, proposal.id)

        result = ProposalRollbackResult(proposal_id=proposal.id)
        for entry in reversed(entries):
            if entry.status != AuditStatus.SUCCEEDED:
                continue
            try:
                result.results.append(
                    await self.undo(entry.id, actor_user_id, proposal.household_id, window_seconds)
                )
            except AICommandError as e:
                result.results.append(RollbackResult(
                    audit_log_id=entry.id,
                    function_name=entry.function_name,
                    success=False,
                    error=e.message,
                    error_code=e.code,
                ))

        self._logger.info(
            "proposal_undone",
            household_id=proposal.household_id,
            proposal_id=proposal.id,
            rolled_back=result.rolled_back,
            failed=result.failed,
        )
        return result

    async def recent_undoable(
        self,
        household_id: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> list[AIAuditLog]:
        """Actions that can still be undone, newest first."""
        limit = limit or self._settings.recent_undoable_limit
        now = self._clock.now()
        window = self._window(window_seconds)

        entries = await self._audit.recent(household_id, status=AuditStatus.SUCCEEDED, limit=100)
        undoable = [
            entry for entry in entries
            if entry.is_undoable
            and entry.completed_at is not None
            and now - entry.completed_at <= window
        ]
        return undoable[:limit]
