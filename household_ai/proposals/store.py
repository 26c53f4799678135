"""
Proposal Store

Holds batches of actions that need a person's decision.

DESIGN DECISION: A proposal is resolved exactly once. Every status
change goes through the storage's compare-and-set on the expected
status, so two people approving at the same moment cannot both win.

Expiry is lazy: nothing sweeps proposals in the background. A PENDING
proposal past its TTL is normalized to EXPIRED the first time anyone
looks at it.
"""

from datetime import timedelta
from typing import Optional

import structlog

from household_ai.clock import Clock, SystemClock
from household_ai.config import EngineSettings, get_settings
from household_ai.exceptions import (
    AlreadyResolvedError,
    ExpiredError,
    InvalidSelectionError,
    NotFoundError,
)
from household_ai.models.proposal import (
    AIProposal,
    AIProposedAction,
    ProposalStatus,
    generate_proposal_summary,
    max_risk,
)
from household_ai.services.storage import ProposalStorageInterface


class ProposalStore:
    """
    Creates proposals and applies decisions to them.
    """

    def __init__(
        self,
        storage: ProposalStorageInterface,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().engine
        self._clock = clock or SystemClock()
        self._logger = structlog.get_logger(__name__)

    async def create_proposal(
        self,
        household_id: str,
        session_id: str,
        actions: list[AIProposedAction],
        user_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> AIProposal:
        """
        Store a new PENDING proposal.

        Raises:
            InvalidSelectionError: If there are no actions
        """
        if not actions:
            raise InvalidSelectionError(
                "A proposal needs at least one action",
                household_id=household_id,
            )

        now = self._clock.now()
        proposal = AIProposal(
            household_id=household_id,
            session_id=session_id,
            user_id=user_id,
            summary=summary or generate_proposal_summary(actions),
            actions=list(actions),
            original_action_count=len(actions),
            risk_level=max_risk(actions),
            status=ProposalStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.proposal_ttl_seconds),
        )
        await self._storage.insert_proposal(proposal)

        self._logger.info("proposal_created", **proposal.to_log_dict())
        return proposal

    async def _expire(self, proposal: AIProposal) -> AIProposal:
        expired = proposal.model_copy(update={"status": ProposalStatus.EXPIRED})
        if await self._storage.replace_proposal(expired, expected_status=ProposalStatus.PENDING):
            self._logger.info("proposal_expired", **expired.to_log_dict())
            return expired

        # Someone resolved it first; their outcome stands
        return await self._storage.get_proposal(proposal.id)

    async def get_proposal(self, proposal_id: str, household_id: Optional[str] = None) -> AIProposal:
        """
        Fetch a proposal, expiring it if its TTL has passed.

        Raises:
            NotFoundError: If missing or owned by another household
        """
        proposal = await self._storage.get_proposal(proposal_id)
        if proposal is None or (household_id and proposal.household_id != household_id):
            raise NotFoundError(
                f"Proposal not found: {proposal_id}",
                proposal_id=proposal_id,
            )

        if proposal.is_pending and proposal.is_past_ttl(self._clock.now()):
            proposal = await self._expire(proposal)
        return proposal

    def _ensure_pending(self, proposal: AIProposal) -> None:
        if proposal.status == ProposalStatus.EXPIRED:
            raise ExpiredError(
                f"Proposal {proposal.id} has expired",
                proposal_id=proposal.id,
                expired_at=proposal.expires_at.isoformat(),
            )
        if proposal.status != ProposalStatus.PENDING:
            raise AlreadyResolvedError(
                f"Proposal {proposal.id} is already {proposal.status.value}",
                proposal_id=proposal.id,
                status=proposal.status.value,
            )

    async def _resolve(self, proposal: AIProposal, resolved: AIProposal) -> AIProposal:
        if not await self._storage.replace_proposal(resolved, expected_status=ProposalStatus.PENDING):
            # Lost the race: report what the winner did
            current = await self._storage.get_proposal(proposal.id)
            self._ensure_pending(current)
            raise AlreadyResolvedError(
                f"Proposal {proposal.id} changed concurrently",
                proposal_id=proposal.id,
            )
        self._logger.info(
            "proposal_resolved",
            decided_by=resolved.decided_by,
            **resolved.to_log_dict(),
        )
        return resolved

    async def approve(
        self,
        proposal_id: str,
        selected_action_ids: Optional[list[str]] = None,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> AIProposal:
        """
        Approve all actions, or a subset of them.

        A strict subset makes the proposal PARTIALLY_APPROVED and keeps
        only the selected actions, in their original order.

        Raises:
            NotFoundError, ExpiredError, AlreadyResolvedError,
            InvalidSelectionError
        """
        proposal = await self.get_proposal(proposal_id, household_id)
        self._ensure_pending(proposal)

        status = ProposalStatus.APPROVED
        actions = proposal.actions

        if selected_action_ids is not None:
            selected = set(selected_action_ids)
            if not selected:
                raise InvalidSelectionError(
                    "Select at least one action to approve",
                    proposal_id=proposal_id,
                )
            unknown = selected - set(proposal.action_ids)
            if unknown:
                raise InvalidSelectionError(
                    "Selected actions are not part of this proposal",
                    proposal_id=proposal_id,
                    unknown_action_ids=sorted(unknown),
                )
            if selected != set(proposal.action_ids):
                status = ProposalStatus.PARTIALLY_APPROVED
                actions = [a for a in proposal.actions if a.id in selected]

        if not actions:
            raise InvalidSelectionError(
                "Cannot approve a proposal without actions",
                proposal_id=proposal_id,
            )

        resolved = proposal.model_copy(update={
            "status": status,
            "actions": actions,
            "risk_level": max_risk(actions),
            "decided_by": decided_by,
            "decided_at": self._clock.now(),
            "decision_notes": notes,
        })
        return await self._resolve(proposal, resolved)

    async def reject(
        self,
        proposal_id: str,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> AIProposal:
        """
        Raises:
            NotFoundError, ExpiredError, AlreadyResolvedError
        """
        proposal = await self.get_proposal(proposal_id, household_id)
        self._ensure_pending(proposal)

        resolved = proposal.model_copy(update={
            "status": ProposalStatus.REJECTED,
            "decided_by": decided_by,
            "decided_at": self._clock.now(),
            "decision_notes": notes,
        })
        return await self._resolve(proposal, resolved)

    async def list_pending(self, household_id: str, limit: int = 50) -> list[AIProposal]:
        """Pending proposals still within their TTL, newest first."""
        now = self._clock.now()
        pending = []
        for proposal in await self._storage.list_proposals(
            household_id, status=ProposalStatus.PENDING, limit=limit
        ):
            if proposal.is_past_ttl(now):
                await self._expire(proposal)
                continue
            pending.append(proposal)
        return pending

    async def claim_for_execution(self, proposal: AIProposal) -> bool:
        """True if this caller is the one that gets to execute the proposal."""
        return await self._storage.claim_for_execution(proposal.id, self._clock.now())

    async def record_execution(self, proposal_id: str, audit_log_ids: list[str]) -> AIProposal:
        """Attach the audit trail to an executed proposal."""
        proposal = await self._storage.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError(f"Proposal not found: {proposal_id}", proposal_id=proposal_id)

        updated = proposal.model_copy(update={
            "execution_completed_at": self._clock.now(),
            "audit_log_ids": list(audit_log_ids),
        })
        await self._storage.replace_proposal(updated, expected_status=proposal.status)
        return updated
