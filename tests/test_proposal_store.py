"""Tests for the proposal store."""

import asyncio

import pytest

from household_ai.exceptions import (
    AlreadyResolvedError,
    ExpiredError,
    InvalidSelectionError,
    NotFoundError,
)
from household_ai.models import AIProposedAction, ProposalStatus, RiskLevel

from tests.conftest import HOUSEHOLD, OTHER_HOUSEHOLD, SESSION, USER


def action(name: str, risk: RiskLevel, **arguments) -> AIProposedAction:
    return AIProposedAction(
        function_name=name,
        arguments=arguments,
        risk_level=risk,
        is_reversible=True,
    )


@pytest.fixture
def four_actions():
    return [
        action("add_to_shopping_list", RiskLevel.LOW, item_name="Coffee"),
        action("update_inventory", RiskLevel.MEDIUM, item_name="Rice", quantity=3),
        action("delete_recipe", RiskLevel.HIGH, recipe_id="rec-soup"),
        action("mark_shopping_item", RiskLevel.LOW, item_name="Milk"),
    ]


class TestCreateProposal:
    """Tests for create_proposal."""

    @pytest.mark.asyncio
    async def test_create(self, proposals, clock, four_actions):
        """New proposals are PENDING with max risk and a TTL."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions, user_id=USER)
        assert proposal.status == ProposalStatus.PENDING
        assert proposal.risk_level == RiskLevel.HIGH
        assert proposal.original_action_count == 4
        assert (proposal.expires_at - proposal.created_at).total_seconds() == 600
        assert proposal.summary.startswith("Plan with")

    @pytest.mark.asyncio
    async def test_empty_proposal_rejected(self, proposals):
        """A proposal needs at least one action."""
        with pytest.raises(InvalidSelectionError):
            await proposals.create_proposal(HOUSEHOLD, SESSION, [])

    @pytest.mark.asyncio
    async def test_custom_summary_kept(self, proposals, four_actions):
        """A caller's summary is used as is."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions, summary="Weekly shop")
        assert proposal.summary == "Weekly shop"


class TestApprove:
    """Tests for approve and reject."""

    @pytest.mark.asyncio
    async def test_approve_all(self, proposals, four_actions):
        """No selection approves everything."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        approved = await proposals.approve(proposal.id, decided_by=USER)
        assert approved.status == ProposalStatus.APPROVED
        assert approved.action_ids == proposal.action_ids
        assert approved.decided_by == USER

    @pytest.mark.asyncio
    async def test_selecting_everything_is_full_approval(self, proposals, four_actions):
        """Selecting every action is not partial."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        approved = await proposals.approve(proposal.id, list(reversed(proposal.action_ids)))
        assert approved.status == ProposalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_partial_approval_keeps_original_order(self, proposals, four_actions):
        """A subset is filtered in proposal order and risk recomputed."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        ids = proposal.action_ids
        approved = await proposals.approve(proposal.id, [ids[3], ids[0]])

        assert approved.status == ProposalStatus.PARTIALLY_APPROVED
        assert approved.action_ids == [ids[0], ids[3]]
        assert approved.risk_level == RiskLevel.LOW
        assert approved.original_action_count == 4

        stored = await proposals.get_proposal(proposal.id)
        assert stored.action_ids == [ids[0], ids[3]]

    @pytest.mark.asyncio
    async def test_empty_selection_rejected(self, proposals, four_actions):
        """Selecting nothing is invalid and leaves the proposal pending."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        with pytest.raises(InvalidSelectionError):
            await proposals.approve(proposal.id, [])
        assert (await proposals.get_proposal(proposal.id)).is_pending

    @pytest.mark.asyncio
    async def test_unknown_selection_rejected(self, proposals, four_actions):
        """Ids from elsewhere are invalid."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        with pytest.raises(InvalidSelectionError) as exc:
            await proposals.approve(proposal.id, [proposal.action_ids[0], "not-an-action"])
        assert exc.value.details["unknown_action_ids"] == ["not-an-action"]

    @pytest.mark.asyncio
    async def test_double_approve(self, proposals, four_actions):
        """The second decision fails."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        await proposals.approve(proposal.id)
        with pytest.raises(AlreadyResolvedError):
            await proposals.approve(proposal.id)
        with pytest.raises(AlreadyResolvedError):
            await proposals.reject(proposal.id)

    @pytest.mark.asyncio
    async def test_concurrent_approvals_resolve_once(self, proposals, four_actions):
        """Of two simultaneous approvals exactly one wins."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        results = await asyncio.gather(
            proposals.approve(proposal.id, decided_by="a"),
            proposals.approve(proposal.id, decided_by="b"),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, AlreadyResolvedError)]
        assert len(winners) == 1
        assert len(losers) == 1

    @pytest.mark.asyncio
    async def test_reject(self, proposals, four_actions):
        """Rejected proposals are terminal."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        rejected = await proposals.reject(proposal.id, decided_by=USER, notes="not now")
        assert rejected.status == ProposalStatus.REJECTED
        assert rejected.decision_notes == "not now"

    @pytest.mark.asyncio
    async def test_other_household_cannot_see_proposal(self, proposals, four_actions):
        """Lookups are household-scoped."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        with pytest.raises(NotFoundError):
            await proposals.approve(proposal.id, household_id=OTHER_HOUSEHOLD)

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, proposals):
        """Missing proposals are NotFound."""
        with pytest.raises(NotFoundError):
            await proposals.get_proposal("missing")


class TestExpiry:
    """Tests for lazy expiry."""

    @pytest.mark.asyncio
    async def test_approve_after_ttl_expires(self, proposals, clock, four_actions):
        """Approving after the TTL fails and stores EXPIRED."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        clock.advance(601)

        with pytest.raises(ExpiredError):
            await proposals.approve(proposal.id)
        assert (await proposals.get_proposal(proposal.id)).status == ProposalStatus.EXPIRED

        # Still Expired, not AlreadyResolved, on later attempts
        with pytest.raises(ExpiredError):
            await proposals.reject(proposal.id)

    @pytest.mark.asyncio
    async def test_approve_exactly_at_ttl(self, proposals, clock, four_actions):
        """The deadline itself is still in time."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        clock.advance(600)
        approved = await proposals.approve(proposal.id)
        assert approved.status == ProposalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_resolved_proposals_do_not_expire(self, proposals, clock, four_actions):
        """Expiry only applies to PENDING."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        await proposals.approve(proposal.id)
        clock.advance(3600)
        assert (await proposals.get_proposal(proposal.id)).status == ProposalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_list_pending_skips_expired(self, proposals, clock, four_actions):
        """Only live pending proposals are listed, newest first."""
        old = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        clock.advance(500)
        newer = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        newest = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        await proposals.reject(newest.id)
        clock.advance(200)

        pending = await proposals.list_pending(HOUSEHOLD)
        assert [p.id for p in pending] == [newer.id]
        assert (await proposals.get_proposal(old.id)).status == ProposalStatus.EXPIRED


class TestExecutionBookkeeping:
    """Tests for claim_for_execution and record_execution."""

    @pytest.mark.asyncio
    async def test_claim_once(self, proposals, four_actions):
        """Only the first claim succeeds."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        approved = await proposals.approve(proposal.id)
        assert await proposals.claim_for_execution(approved)
        assert not await proposals.claim_for_execution(approved)

    @pytest.mark.asyncio
    async def test_record_execution(self, proposals, four_actions):
        """Audit ids are attached to the proposal."""
        proposal = await proposals.create_proposal(HOUSEHOLD, SESSION, four_actions)
        await proposals.approve(proposal.id)
        updated = await proposals.record_execution(proposal.id, ["l1", "l2"])
        assert updated.audit_log_ids == ["l1", "l2"]
        assert (await proposals.get_proposal(proposal.id)).execution_completed_at is not None
