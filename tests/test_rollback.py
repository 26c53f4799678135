"""Tests for the rollback engine."""

import pytest

from household_ai.exceptions import (
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    NotReversibleError,
)
from household_ai.functions.schemas import EMPLOYEES, INVENTORY, RECIPES, SHOPPING_LIST
from household_ai.models import AIIntent, AuditStatus

from tests.conftest import HOUSEHOLD, OTHER_HOUSEHOLD, SESSION, USER


async def run_now(flow, function_name, **arguments):
    """Approve and execute one intent, returning its audit id."""
    intent = AIIntent(function_name=function_name, arguments=arguments)
    proposal = await flow.propose(HOUSEHOLD, SESSION, [intent], user_id=USER)
    result = await flow.approve_and_execute(proposal.id, USER)
    return result.audit_log_ids[0]


class TestUndo:
    """Tests for undoing single actions."""

    @pytest.mark.asyncio
    async def test_round_trip_restores_record(self, flow, rollback, data_store, household):
        """After undo the record equals its pre-execution state field for field."""
        before = await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice")
        log_id = await run_now(flow, "update_inventory", item_name="Rice", quantity=7)
        assert (await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice")) != before

        result = await rollback.undo(log_id, USER)

        assert result.success
        assert result.restored_state.data == before
        assert await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice") == before

    @pytest.mark.asyncio
    async def test_undo_marks_entry(self, flow, rollback, audit, household):
        """The entry becomes UNDONE with who and when."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        await rollback.undo(log_id, USER)

        entry = await audit.get(log_id)
        assert entry.status == AuditStatus.UNDONE
        assert entry.undone_by == USER
        assert entry.undone_at is not None

    @pytest.mark.asyncio
    async def test_undo_creation_deletes_record(self, flow, rollback, data_store, household):
        """Undoing a creation removes what was created."""
        log_id = await run_now(flow, "add_to_shopping_list", item_name="Coffee")
        names = [r["name"] for r in await data_store.list_records(HOUSEHOLD, SHOPPING_LIST)]
        assert "Coffee" in names

        await rollback.undo(log_id, USER)

        names = [r["name"] for r in await data_store.list_records(HOUSEHOLD, SHOPPING_LIST)]
        assert "Coffee" not in names

    @pytest.mark.asyncio
    async def test_undo_delete_brings_record_back(self, flow, rollback, data_store, household):
        """Undoing a delete writes the record back."""
        before = await data_store.get_record(HOUSEHOLD, RECIPES, "rec-soup")
        log_id = await run_now(flow, "delete_recipe", recipe_id="rec-soup")
        assert await data_store.get_record(HOUSEHOLD, RECIPES, "rec-soup") is None

        await rollback.undo(log_id, USER)
        assert await data_store.get_record(HOUSEHOLD, RECIPES, "rec-soup") == before

    @pytest.mark.asyncio
    async def test_double_undo(self, flow, rollback, household):
        """The second undo of the same entry fails."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        await rollback.undo(log_id, USER)
        with pytest.raises(InvalidStateError):
            await rollback.undo(log_id, USER)

    @pytest.mark.asyncio
    async def test_failed_action_cannot_be_undone(self, flow, rollback, household):
        """Only succeeded actions can be undone."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Caviar")
        with pytest.raises(InvalidStateError):
            await rollback.undo(log_id, USER)

    @pytest.mark.asyncio
    async def test_irreversible_action(self, flow, rollback, data_store, household):
        """Removing an employee cannot be undone."""
        log_id = await run_now(flow, "delete_employee", employee_id="emp-maria")
        with pytest.raises(NotReversibleError):
            await rollback.undo(log_id, USER)
        assert await data_store.get_record(HOUSEHOLD, EMPLOYEES, "emp-maria") is None

    @pytest.mark.asyncio
    async def test_unknown_entry(self, rollback):
        """Missing entries are NotFound."""
        with pytest.raises(NotFoundError):
            await rollback.undo("missing", USER)

    @pytest.mark.asyncio
    async def test_other_household_cannot_undo(self, flow, rollback, household):
        """Entries are household-scoped."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        with pytest.raises(NotFoundError):
            await rollback.undo(log_id, USER, household_id=OTHER_HOUSEHOLD)

    @pytest.mark.asyncio
    async def test_rollback_counts_as_incident(self, flow, rollback, trust_storage, household):
        """Undos feed household trust."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        await rollback.undo(log_id, USER)
        record = await trust_storage.get_trust(HOUSEHOLD)
        assert record.rolled_back_actions == 1
        assert record.incident_count == 1


class TestUndoWindow:
    """Tests for the undo window."""

    @pytest.mark.asyncio
    async def test_window_elapsed(self, flow, rollback, clock, audit, household):
        """Past the default 60s the undo is refused and nothing changes."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        clock.advance(61)
        with pytest.raises(ExpiredError):
            await rollback.undo(log_id, USER)
        assert (await audit.get(log_id)).status == AuditStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_window_edge_is_inclusive(self, flow, rollback, clock, household):
        """Exactly at the window limit is still in time."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        clock.advance(60)
        assert (await rollback.undo(log_id, USER)).success

    @pytest.mark.asyncio
    async def test_caller_window_override(self, flow, rollback, clock, household):
        """Callers can allow a longer window."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        clock.advance(90)
        assert (await rollback.undo(log_id, USER, window_seconds=120)).success

    @pytest.mark.asyncio
    async def test_zero_window_is_honoured(self, flow, rollback, clock, audit, household):
        """An explicit zero window allows no time at all."""
        log_id = await run_now(flow, "mark_shopping_item", item_name="Milk")
        clock.advance(1)
        with pytest.raises(ExpiredError):
            await rollback.undo(log_id, USER, window_seconds=0)
        assert (await audit.get(log_id)).status == AuditStatus.SUCCEEDED


class TestUndoProposal:
    """Tests for undoing a whole proposal."""

    @pytest.mark.asyncio
    async def test_undo_in_reverse_order(self, flow, rollback, data_store, household):
        """Stacked changes to one record unwind back to the original."""
        before = await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice")
        proposal = await flow.propose(HOUSEHOLD, SESSION, [
            AIIntent(function_name="update_inventory", arguments={"item_name": "Rice", "quantity": 5}),
            AIIntent(function_name="update_inventory", arguments={"item_name": "Rice", "quantity": 1,
                                                               "action": "add"}),
        ])
        execution = await flow.approve_and_execute(proposal.id, USER)
        assert (await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice"))["quantity"] == 6

        result = await rollback.undo_proposal(proposal.id, USER)

        assert result.success
        assert result.rolled_back == 2
        assert [r.audit_log_id for r in result.results] == list(reversed(execution.audit_log_ids))
        assert await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice") == before

    @pytest.mark.asyncio
    async def test_failed_actions_are_skipped(self, flow, rollback, household):
        """Only the actions that ran are undone."""
        proposal = await flow.propose(HOUSEHOLD, SESSION, [
            AIIntent(function_name="mark_shopping_item", arguments={"item_name": "Milk"}),
            AIIntent(function_name="mark_shopping_item", arguments={"item_name": "Caviar"}),
        ])
        await flow.approve_and_execute(proposal.id, USER)

        result = await rollback.undo_proposal(proposal.id, USER)
        assert result.rolled_back == 1
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_sibling_undo_is_independent(self, flow, rollback, data_store, household):
        """Undoing one action leaves the others applied; the rest still undo."""
        proposal = await flow.propose(HOUSEHOLD, SESSION, [
            AIIntent(function_name="mark_shopping_item", arguments={"item_name": "Milk"}),
            AIIntent(function_name="update_inventory", arguments={"item_name": "Eggs", "quantity": 6}),
        ])
        execution = await flow.approve_and_execute(proposal.id, USER)

        await rollback.undo(execution.audit_log_ids[1], USER)
        assert (await data_store.get_record(HOUSEHOLD, SHOPPING_LIST, "shop-milk"))["checked"] is True

        result = await rollback.undo_proposal(proposal.id, USER)
        assert result.rolled_back == 1
        assert (await data_store.get_record(HOUSEHOLD, SHOPPING_LIST, "shop-milk"))["checked"] is False

    @pytest.mark.asyncio
    async def test_expired_actions_reported(self, flow, rollback, clock, household):
        """Per-action refusals are collected, not raised."""
        proposal = await flow.propose(HOUSEHOLD, SESSION, [
            AIIntent(function_name="mark_shopping_item", arguments={"item_name": "Milk"}),
        ])
        await flow.approve_and_execute(proposal.id, USER)
        clock.advance(120)

        result = await rollback.undo_proposal(proposal.id, USER)
        assert not result.success
        assert result.results[0].error_code == "expired"
        assert result.errors[0].startswith("mark_shopping_item:")


class TestRecentUndoable:
    """Tests for listing undoable actions."""

    @pytest.mark.asyncio
    async def test_lists_only_undoable_in_window(self, flow, rollback, clock, household):
        """Undone, failed and irreversible entries are left out."""
        kept = await run_now(flow, "mark_shopping_item", item_name="Milk")
        undone = await run_now(flow, "add_to_shopping_list", item_name="Coffee")
        await run_now(flow, "mark_shopping_item", item_name="Caviar")
        await run_now(flow, "delete_employee", employee_id="emp-maria")
        await rollback.undo(undone, USER)

        entries = await rollback.recent_undoable(HOUSEHOLD)
        assert [e.id for e in entries] == [kept]

        clock.advance(61)
        assert await rollback.recent_undoable(HOUSEHOLD) == []
