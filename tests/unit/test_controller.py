"""
Unit tests for the ordered list controller.

Tests dispatch end to end over the in-memory gateway, listener snapshots,
notifications, view state and drag-and-drop gestures.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from studiosync.controller import NotificationLevel, OrderedListController, ViewState
from studiosync.entities import PackageStatus, TaskCompletion
from studiosync.exceptions import MutationInFlightError, UnknownEntityError, ValidationError
from studiosync.gateway import SyncGateway
from studiosync.mutations import MoveToGroup, Reorder
from studiosync.store import EntityStore


def _ids(store, group_id):
    return [e.id for e in store.members(group_id)]


class TestDispatch:
    """Tests for dispatch over the in-memory gateway."""

    @pytest.mark.asyncio
    async def test_reorder_commits(self, controller, memory_gateway):
        resolution = await controller.reorder("p3", 0)

        assert resolution.committed
        assert [(e.id, e.order) for e in controller.store.members("evt_boda")] == [
            ("p3", 0), ("p1", 1), ("p2", 2),
        ]
        assert memory_gateway.calls == [("reorder", "evt_boda")]
        assert _ids(memory_gateway, "evt_boda") == ["p3", "p1", "p2"]

    @pytest.mark.asyncio
    async def test_optimistic_state_before_confirmation(self, controller, memory_gateway):
        gate = memory_gateway.hold()
        pending = controller.apply_optimistic(Reorder("p3", 0))

        assert [(e.id, e.order) for e in controller.store.members("evt_boda")] == [
            ("p3", 0), ("p1", 1), ("p2", 2),
        ]

        memory_gateway.release(gate)
        resolution = await controller.sync(pending)
        assert resolution.committed

    @pytest.mark.asyncio
    async def test_failure_rolls_back_and_notifies(self, controller, memory_gateway, notifications):
        before = controller.store.snapshot()
        memory_gateway.fail_next("Error al actualizar la posición")

        resolution = await controller.move("p1", "evt_xv", 0)

        assert resolution.rolled_back
        assert controller.store.state == before
        assert len(notifications) == 1
        assert notifications[0].level == NotificationLevel.ERROR
        assert notifications[0].message == "Error al actualizar la posición"

    @pytest.mark.asyncio
    async def test_validation_error_never_calls_gateway(self, store, notifications):
        gateway = MagicMock(spec=SyncGateway)
        gateway.reorder = AsyncMock()
        controller = OrderedListController(gateway, store=store, notifier=notifications.append)
        before = store.snapshot()

        with pytest.raises(ValidationError):
            await controller.dispatch(MoveToGroup("t2", "PLANNING", "PRODUCTION", 0))
        with pytest.raises(UnknownEntityError):
            await controller.reorder("nope", 0)

        gateway.reorder.assert_not_called()
        gateway.move_to_group.assert_not_called()
        assert store.state == before
        assert notifications == []

    @pytest.mark.asyncio
    async def test_feature_inactive_package(self, controller, memory_gateway):
        resolution = await controller.feature("p3")

        assert resolution.committed
        assert controller.store.get("p3").is_featured is True
        assert controller.store.get("p3").status == PackageStatus.ACTIVE
        assert controller.store.get("p1").is_featured is False
        assert memory_gateway.state.entities["p1"].is_featured is False

    @pytest.mark.asyncio
    async def test_publish_off_unfeatures(self, controller):
        await controller.publish("p1", active=False)
        p1 = controller.store.get("p1")
        assert p1.status == PackageStatus.INACTIVE
        assert p1.is_featured is False

    @pytest.mark.asyncio
    async def test_reorder_groups(self, controller, memory_gateway):
        resolution = await controller.reorder_groups("evt_xv", 0)

        assert resolution.committed
        assert controller.store.group_ids() == ["evt_xv", "evt_boda"]
        assert controller.store.get("evt_xv").order == 0
        assert memory_gateway.calls == [("reorder_groups", None)]

    @pytest.mark.asyncio
    async def test_complete_task_returns_completion(self, controller):
        resolution = await controller.complete_task("t1")

        assert resolution.committed
        assert isinstance(resolution.payload, TaskCompletion)
        assert resolution.payload.payroll.crew_member_name == "Ana López"
        assert controller.store.get("t1").is_completed

    @pytest.mark.asyncio
    async def test_server_values_win(self, controller, memory_gateway):
        """Fields written by another session come back with the commit."""
        memory_gateway.put(memory_gateway.state.entities["p2"].model_copy(update={"name": "Otro"}))

        await controller.set_field("p2", "price", 19000)

        p2 = controller.store.get("p2")
        assert p2.price == 19000
        assert p2.name == "Otro"


class TestListeners:
    """Tests for subscribe and published snapshots."""

    @pytest.mark.asyncio
    async def test_listener_sees_optimistic_and_final_state(self, controller):
        seen = []
        controller.subscribe(lambda state, view: seen.append(
            [e.id for e in sorted(
                (e for e in state.entities.values() if e.group_id == "evt_boda"),
                key=lambda e: e.order,
            )]
        ))

        await controller.reorder("p3", 0)

        assert seen == [["p3", "p1", "p2"], ["p3", "p1", "p2"]]

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self, controller):
        states = []
        controller.subscribe(lambda state, view: states.append(state))
        await controller.reorder("p3", 0)

        states[0].entities.clear()
        assert "p1" in controller.store

    @pytest.mark.asyncio
    async def test_unsubscribe(self, controller):
        listener = MagicMock()
        unsubscribe = controller.subscribe(listener)
        unsubscribe()
        await controller.reorder("p3", 0)
        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_discarded_response_does_not_publish(self, controller, memory_gateway):
        listener = MagicMock()
        gate = memory_gateway.hold()
        first = asyncio.create_task(controller.reorder("p3", 0))
        await asyncio.sleep(0)

        controller.subscribe(listener)
        assert (await controller.reorder("p2", 0)).committed
        calls_after_second = listener.call_count

        memory_gateway.release(gate)
        assert (await first).discarded
        assert listener.call_count == calls_after_second


class TestLoad:
    """Tests for OrderedListController.load."""

    @pytest.mark.asyncio
    async def test_load_from_gateway(self, memory_gateway):
        controller = OrderedListController(memory_gateway)
        await controller.load()

        assert controller.store.group_ids() == ["evt_boda", "evt_xv"]
        assert _ids(controller.store, "evt_boda") == ["p1", "p2", "p3"]
        assert _ids(controller.store, None) == ["evt_boda", "evt_xv"]

    @pytest.mark.asyncio
    async def test_load_selected_groups(self, memory_gateway):
        controller = OrderedListController(memory_gateway)
        await controller.load(["PLANNING"])

        assert _ids(controller.store, "PLANNING") == ["t1", "t1a", "t1b", "t2"]
        assert "p1" not in controller.store


class TestViewState:
    """Tests for view state and drag gestures."""

    def test_toggle_group(self, controller):
        views = []
        controller.subscribe(lambda state, view: views.append(view))

        assert controller.toggle_group("evt_boda") is True
        assert controller.toggle_group("evt_boda") is False
        assert views[0].expanded_group_ids == frozenset({"evt_boda"})
        assert views[1] == ViewState()

    def test_start_drag_unknown_entity(self, controller):
        with pytest.raises(UnknownEntityError):
            controller.start_drag("nope")
        assert controller.view.active_drag_id is None

    @pytest.mark.asyncio
    async def test_drop_over_entity_reorders(self, controller):
        controller.start_drag("p3")
        assert controller.view.active_drag_id == "p3"

        resolution = await controller.drop(over_id="p1")

        assert resolution.committed
        assert _ids(controller.store, "evt_boda") == ["p3", "p1", "p2"]
        assert controller.view.active_drag_id is None

    @pytest.mark.asyncio
    async def test_drop_over_other_group_entity_moves(self, controller):
        controller.start_drag("p2")
        await controller.drop(over_id="p4")

        assert _ids(controller.store, "evt_xv") == ["p2", "p4"]
        assert _ids(controller.store, "evt_boda") == ["p1", "p3"]

    @pytest.mark.asyncio
    async def test_drop_over_empty_group_appends(self, store, memory_gateway):
        store.merge([store.get("p4").model_copy(update={"group_id": "evt_boda", "order": 3})])
        memory_gateway.put(memory_gateway.state.entities["p4"].model_copy(
            update={"group_id": "evt_boda", "order": 3}
        ))
        controller = OrderedListController(memory_gateway, store=store)

        controller.start_drag("p1")
        await controller.drop(over_group_id="evt_xv")

        assert [(e.id, e.order) for e in store.members("evt_xv")] == [("p1", 0)]

    @pytest.mark.asyncio
    async def test_drop_subtask_over_sibling(self, controller, memory_gateway):
        controller.start_drag("t1b")

        resolution = await controller.drop(over_id="t1a")

        assert resolution.committed
        assert _ids(controller.store, "PLANNING") == ["t1", "t1b", "t1a", "t2"]
        assert _ids(memory_gateway, "PLANNING") == ["t1", "t1b", "t1a", "t2"]

    @pytest.mark.asyncio
    async def test_drop_subtask_over_non_sibling_rejected(self, controller, memory_gateway):
        before = controller.store.snapshot()
        controller.start_drag("t1a")

        with pytest.raises(ValidationError):
            await controller.drop(over_id="t2")

        assert controller.store.state == before
        assert controller.view.active_drag_id is None
        assert memory_gateway.calls == []

    @pytest.mark.asyncio
    async def test_drop_on_itself_is_noop(self, controller, memory_gateway):
        controller.start_drag("p1")
        assert await controller.drop(over_id="p1") is None
        assert await controller.drop(over_id="p2") is None
        assert memory_gateway.calls == []


class TestDuplicate:
    """Tests for the duplicate gesture."""

    @pytest.mark.asyncio
    async def test_placeholder_replaced_by_server_copy(self, controller, memory_gateway):
        gate = memory_gateway.hold()
        call = asyncio.create_task(controller.duplicate("p2"))
        await asyncio.sleep(0)

        ids = _ids(controller.store, "evt_boda")
        assert ids[:3] == ["p1", "p2", "p3"]
        assert ids[3].startswith("duplicating-")

        memory_gateway.release(gate)
        resolution = await call

        assert resolution.committed
        assert resolution.payload.id == "p2-copia-1"
        assert _ids(controller.store, "evt_boda") == ["p1", "p2", "p3", "p2-copia-1"]
        assert controller.store.state.entities == memory_gateway.state.entities

    @pytest.mark.asyncio
    async def test_failure_removes_placeholder(self, controller, memory_gateway, notifications):
        before = controller.store.snapshot()
        memory_gateway.fail_next("Error al duplicar paquete")

        resolution = await controller.duplicate("p2")

        assert resolution.rolled_back
        assert controller.store.state == before
        assert notifications[0].message == "Error al duplicar paquete"

    @pytest.mark.asyncio
    async def test_group_locked_until_answer(self, controller, memory_gateway):
        gate = memory_gateway.hold()
        call = asyncio.create_task(controller.duplicate("p2"))
        await asyncio.sleep(0)

        with pytest.raises(MutationInFlightError):
            await controller.reorder("p3", 0)
        assert (await controller.reorder("p4", 0)).committed

        memory_gateway.release(gate)
        assert (await call).committed
        assert (await controller.reorder("p3", 0)).committed


class TestBusyPolicy:
    """Tests for the controller's busy policy wiring."""

    @pytest.mark.asyncio
    async def test_reject_policy(self, studio_records, memory_gateway):
        store = EntityStore()
        store.load(studio_records)
        controller = OrderedListController(memory_gateway, store=store, busy_policy="reject")

        controller.apply_optimistic(Reorder("p3", 0))
        with pytest.raises(MutationInFlightError):
            controller.apply_optimistic(Reorder("p2", 0))
