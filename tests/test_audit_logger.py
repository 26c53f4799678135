"""Tests for the audit logger."""

import pytest

from household_ai.exceptions import InvalidStateError, NotFoundError
from household_ai.models import AuditStatus, EntitySnapshot, RiskLevel

from tests.conftest import HOUSEHOLD, OTHER_HOUSEHOLD, USER


async def start_entry(audit, **kwargs):
    fields = dict(
        household_id=HOUSEHOLD,
        function_name="update_inventory",
        arguments={"item_name": "Rice", "quantity": 3},
        risk_level=RiskLevel.MEDIUM,
        is_reversible=True,
        pre_state=EntitySnapshot(collection="inventory", record_id="inv-rice", data={"quantity": 2.0}),
        user_id=USER,
    )
    fields.update(kwargs)
    return await audit.start(**fields)


class TestLifecycle:
    """Tests for audit entry transitions."""

    @pytest.mark.asyncio
    async def test_start_persists_before_anything_else(self, audit, audit_storage, clock):
        """A STARTED entry with its snapshot is stored immediately."""
        entry = await start_entry(audit)
        stored = await audit_storage.get_entry(entry.id)
        assert stored.status == AuditStatus.STARTED
        assert stored.pre_state.data == {"quantity": 2.0}
        assert stored.started_at == clock.now()

    @pytest.mark.asyncio
    async def test_succeed_then_undo(self, audit, clock):
        """SUCCEEDED → UNDONE records completion and undo times."""
        entry = await start_entry(audit)
        clock.advance(1)
        done = await audit.succeed(entry, {"message": "ok"})
        assert done.completed_at == clock.now()
        assert done.result == {"message": "ok"}

        clock.advance(5)
        undone = await audit.mark_undone(done, USER)
        assert undone.status == AuditStatus.UNDONE
        assert undone.undone_at == clock.now()

    @pytest.mark.asyncio
    async def test_transitions_are_one_way(self, audit):
        """A failed entry can't succeed, a STARTED one can't be undone."""
        entry = await start_entry(audit)
        with pytest.raises(InvalidStateError):
            await audit.mark_undone(entry, USER)

        failed = await audit.fail(entry, "boom")
        assert failed.error_message == "boom"
        with pytest.raises(InvalidStateError):
            await audit.succeed(failed)

    @pytest.mark.asyncio
    async def test_stale_copy_loses(self, audit):
        """Two transitions from the same snapshot: the second is refused."""
        entry = await start_entry(audit)
        await audit.succeed(entry)
        with pytest.raises(InvalidStateError):
            await audit.fail(entry, "late")


class TestQueries:
    """Tests for audit lookups."""

    @pytest.mark.asyncio
    async def test_get_is_household_scoped(self, audit):
        """Other households can't read an entry."""
        entry = await start_entry(audit)
        assert (await audit.get(entry.id, HOUSEHOLD)).id == entry.id
        with pytest.raises(NotFoundError):
            await audit.get(entry.id, OTHER_HOUSEHOLD)
        with pytest.raises(NotFoundError):
            await audit.get("missing")

    @pytest.mark.asyncio
    async def test_list_for_proposal_in_execution_order(self, audit, clock):
        """Entries come back oldest first, insertion order on ties."""
        first = await start_entry(audit, proposal_id="p1")
        second = await start_entry(audit, proposal_id="p1")
        clock.advance(1)
        third = await start_entry(audit, proposal_id="p1")
        await start_entry(audit, proposal_id="p2")

        entries = await audit.list_for_proposal(HOUSEHOLD, "p1")
        assert [e.id for e in entries] == [first.id, second.id, third.id]

    @pytest.mark.asyncio
    async def test_recent_by_status(self, audit):
        """Recent entries can be filtered by status, newest first."""
        a = await audit.succeed(await start_entry(audit))
        await audit.fail(await start_entry(audit), "boom")
        b = await audit.succeed(await start_entry(audit))

        recent = await audit.recent(HOUSEHOLD, status=AuditStatus.SUCCEEDED)
        assert [e.id for e in recent] == [b.id, a.id]
