"""
Unit tests for the in-memory sync gateway.

Tests the server rules it applies, payroll outcomes and scripted
failures/delays.
"""

import asyncio

import pytest

from studiosync.entities import CrewMember, PackageStatus, TaskStatus
from studiosync.exceptions import TransientSyncError
from studiosync.gateway import InMemorySyncGateway
from studiosync.ordering import is_contiguous


class TestServerRules:
    """Tests for the authoritative rules."""

    @pytest.mark.asyncio
    async def test_reorder_renumbers(self, memory_gateway):
        result = await memory_gateway.reorder("evt_boda", ["p2", "p3", "p1"])
        assert [(e.id, e.order) for e in result] == [("p2", 0), ("p3", 1), ("p1", 2)]

    @pytest.mark.asyncio
    async def test_reorder_rejects_mismatched_ids(self, memory_gateway):
        with pytest.raises(TransientSyncError) as exc_info:
            await memory_gateway.reorder("evt_boda", ["p1", "p2"])
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_move_keeps_both_groups_contiguous(self, memory_gateway):
        entity = await memory_gateway.move_to_group("p2", "evt_xv", 5)

        assert (entity.group_id, entity.order) == ("evt_xv", 1)
        assert is_contiguous(memory_gateway.members("evt_boda"))
        assert is_contiguous(memory_gateway.members("evt_xv"))

    @pytest.mark.asyncio
    async def test_move_rejected_for_quote_linked_task(self, memory_gateway):
        with pytest.raises(TransientSyncError, match="Quote-linked"):
            await memory_gateway.move_to_group("t2", "PRODUCTION", 0)

    @pytest.mark.asyncio
    async def test_set_field_featured_exclusive(self, memory_gateway):
        entity = await memory_gateway.set_field("p3", "is_featured", True)

        assert entity.status == PackageStatus.ACTIVE
        assert memory_gateway.state.entities["p1"].is_featured is False

    @pytest.mark.asyncio
    async def test_set_field_unknown_entity(self, memory_gateway):
        with pytest.raises(TransientSyncError) as exc_info:
            await memory_gateway.set_field("nope", "name", "x")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_reorder_groups(self, memory_gateway):
        groups = await memory_gateway.reorder_groups(["evt_xv", "evt_boda"])

        assert [(g.id, g.order) for g in groups] == [("evt_xv", 0), ("evt_boda", 1)]
        assert memory_gateway.state.entities["evt_xv"].order == 0

    @pytest.mark.asyncio
    async def test_reads(self, memory_gateway):
        assert [e.id for e in await memory_gateway.list_group("PRODUCTION")] == ["t3"]
        assert [g.id for g in await memory_gateway.list_groups()] == ["evt_boda", "evt_xv"]
        assert (await memory_gateway.get_crew_member("c1")).name == "Ana López"
        assert await memory_gateway.get_crew_member("c9") is None


class TestDuplicate:
    """Tests for duplicate."""

    @pytest.mark.asyncio
    async def test_copy_appended_unpublished(self, memory_gateway):
        copy = await memory_gateway.duplicate("p1")

        assert copy.id == "p1-copia-1"
        assert (copy.group_id, copy.order) == ("evt_boda", 3)
        assert copy.name == "Esencial (Copia)"
        assert copy.status == PackageStatus.INACTIVE
        assert not copy.is_featured
        assert memory_gateway.state.entities["p1"].is_featured
        assert is_contiguous(memory_gateway.members("evt_boda"))

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, memory_gateway):
        first = await memory_gateway.duplicate("p4")
        second = await memory_gateway.duplicate("p4")
        assert first.id != second.id
        assert [e.id for e in memory_gateway.members("evt_xv")] == ["p4", first.id, second.id]

    @pytest.mark.asyncio
    async def test_unknown_entity(self, memory_gateway):
        with pytest.raises(TransientSyncError) as exc_info:
            await memory_gateway.duplicate("nope")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_only_packages(self, memory_gateway):
        with pytest.raises(TransientSyncError) as exc_info:
            await memory_gateway.duplicate("t1")
        assert exc_info.value.status_code == 400


class TestTaskCompletion:
    """Tests for complete_task and payroll."""

    @pytest.mark.asyncio
    async def test_payroll_for_assigned_crew(self, memory_gateway):
        completion = await memory_gateway.complete_task("t1")

        assert completion.task.status == TaskStatus.COMPLETED
        assert completion.payroll.success is True
        assert completion.payroll.crew_member_name == "Ana López"

    @pytest.mark.asyncio
    async def test_skip_payroll(self, memory_gateway):
        completion = await memory_gateway.complete_task("t1", skip_payroll=True)
        assert completion.payroll is None

    @pytest.mark.asyncio
    async def test_no_crew_with_cost(self, memory_gateway):
        completion = await memory_gateway.complete_task("t2")
        assert completion.payroll.success is False
        assert completion.payroll.error == "No crew member assigned"

    @pytest.mark.asyncio
    async def test_no_crew_without_cost(self, memory_gateway):
        completion = await memory_gateway.complete_task("t1a")
        assert completion.payroll is None

    @pytest.mark.asyncio
    async def test_reopen(self, memory_gateway):
        await memory_gateway.complete_task("t2")
        completion = await memory_gateway.complete_task("t2", completed=False)

        assert completion.task.status == TaskStatus.PENDING
        assert completion.payroll is None

    @pytest.mark.asyncio
    async def test_crew_member_added_later(self, memory_gateway):
        memory_gateway.add_crew_member(CrewMember(id="c3", name="Sofía Ruiz"))
        assert (await memory_gateway.get_crew_member("c3")).name == "Sofía Ruiz"

    @pytest.mark.asyncio
    async def test_not_a_task(self, memory_gateway):
        with pytest.raises(TransientSyncError):
            await memory_gateway.complete_task("p1")


class TestScripting:
    """Tests for fail_next, hold and release."""

    @pytest.mark.asyncio
    async def test_fail_next_fails_once(self, memory_gateway):
        memory_gateway.fail_next("Server unavailable")

        with pytest.raises(TransientSyncError, match="Server unavailable"):
            await memory_gateway.reorder("evt_boda", ["p1", "p2", "p3"])
        await memory_gateway.reorder("evt_boda", ["p1", "p2", "p3"])

    @pytest.mark.asyncio
    async def test_failed_call_changes_nothing(self, memory_gateway):
        before = memory_gateway.state
        memory_gateway.fail_next()

        with pytest.raises(TransientSyncError):
            await memory_gateway.set_field("p2", "is_featured", True)

        assert memory_gateway.state is before

    @pytest.mark.asyncio
    async def test_hold_delays_answer_not_change(self, memory_gateway):
        gate = memory_gateway.hold()
        call = asyncio.create_task(memory_gateway.reorder("evt_boda", ["p3", "p1", "p2"]))
        await asyncio.sleep(0)

        assert not call.done()
        assert [e.id for e in memory_gateway.members("evt_boda")] == ["p3", "p1", "p2"]

        memory_gateway.release(gate)
        result = await call
        assert result[0].id == "p3"

    @pytest.mark.asyncio
    async def test_release_all(self, memory_gateway):
        memory_gateway.hold()
        memory_gateway.hold()
        calls = [
            asyncio.create_task(memory_gateway.list_groups()),
            asyncio.create_task(memory_gateway.list_group("evt_xv")),
        ]
        await asyncio.sleep(0)
        assert not any(c.done() for c in calls)

        memory_gateway.release()
        await asyncio.gather(*calls)

    @pytest.mark.asyncio
    async def test_records_calls(self):
        gateway = InMemorySyncGateway()
        await gateway.list_groups()
        await gateway.list_group(None)
        assert gateway.calls == [("list_groups", None), ("list_group", None)]
