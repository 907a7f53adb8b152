"""
In-memory sync gateway.

Holds an authoritative store in-process and applies the same server rules
as the studio API (contiguous renumbering, featured exclusivity, task
completion with payroll). Used by tests and offline demos.

Network behavior can be scripted:
- fail_next(): the next call raises TransientSyncError
- hold(): the next call applies its change, then waits before answering
"""

import asyncio
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from studiosync.entities import (
    CrewMember,
    Group,
    OrderedEntity,
    PayrollResult,
    SchedulerTask,
    TaskCompletion,
)
from studiosync.exceptions import TransientSyncError, ValidationError
from studiosync.gateway.base import SyncGateway
from studiosync.logging_config import get_logger
from studiosync.mutations import (
    CompleteTask,
    DuplicateEntity,
    MoveToGroup,
    Mutation,
    SetField,
    StoreState,
)
from studiosync.mutator import reduce
from studiosync.ordering import group_members, renumber
from studiosync.store import EntityStore

logger = get_logger("gateway")


class InMemorySyncGateway(SyncGateway):
    """
    Authoritative in-process store behind the SyncGateway interface.

    Attributes:
        calls: (operation, target) tuples, one per call received

    Usage:
        >>> gateway = InMemorySyncGateway(entities=packages, groups=groups)
        >>> gate = gateway.hold()
        >>> task = asyncio.create_task(controller.dispatch(Reorder("pkg_3", 0)))
        >>> gateway.release(gate)
    """

    def __init__(
        self,
        entities: Iterable[OrderedEntity] = (),
        groups: Iterable[Group] = (),
        crew: Iterable[CrewMember] = (),
    ):
        self._store = EntityStore()
        self._store.load(entities, groups)
        self._crew: Dict[str, CrewMember] = {member.id: member for member in crew}
        self._failures: Deque[str] = deque()
        self._gates: Deque[asyncio.Event] = deque()
        self._held: List[asyncio.Event] = []
        self._copies = 0
        self.calls: List[Tuple[str, Optional[str]]] = []

    # -------------------------------------------------------------------------
    # Scripting
    # -------------------------------------------------------------------------

    def fail_next(self, message: str = "Server unavailable") -> None:
        """Make the next call fail with TransientSyncError(message)."""
        self._failures.append(message)

    def hold(self) -> asyncio.Event:
        """
        Delay the answer to the next call until the returned event is set.

        The change itself is applied when the call arrives.
        """
        gate = asyncio.Event()
        self._gates.append(gate)
        self._held.append(gate)
        return gate

    def release(self, gate: Optional[asyncio.Event] = None) -> None:
        """Let one held call answer, or every held call when ``gate`` is None."""
        if gate is not None:
            gate.set()
            return
        for held in self._held:
            held.set()
        self._held.clear()

    def put(self, *entities: OrderedEntity) -> None:
        """Write records directly, as another session editing the same studio would."""
        self._store.merge(entities)

    def add_crew_member(self, member: CrewMember) -> None:
        self._crew[member.id] = member

    @property
    def state(self) -> StoreState:
        return self._store.state

    def members(self, group_id: Optional[str]) -> List[OrderedEntity]:
        return self._store.members(group_id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _enter(self, operation: str, target: Optional[str]) -> Optional[asyncio.Event]:
        self.calls.append((operation, target))
        gate = self._gates.popleft() if self._gates else None
        if self._failures:
            message = self._failures.popleft()
            if gate is not None:
                await gate.wait()
            logger.debug(f"Scripted failure for {operation} {target}: {message}")
            raise TransientSyncError(message, status_code=503)
        return gate

    @staticmethod
    async def _answer(gate: Optional[asyncio.Event], result):
        if gate is not None:
            await gate.wait()
        return result

    def _apply(self, mutation: Mutation) -> None:
        try:
            self._store.replace(reduce(self._store.state, mutation))
        except ValidationError as e:
            raise TransientSyncError(e.message, status_code=400)

    # -------------------------------------------------------------------------
    # SyncGateway
    # -------------------------------------------------------------------------

    async def reorder(self, group_id: Optional[str], ordered_ids: List[str]) -> List[OrderedEntity]:
        gate = await self._enter("reorder", group_id)

        members = {e.id: e for e in self._store.members(group_id)}
        if sorted(ordered_ids) != sorted(members):
            raise TransientSyncError(
                "Order does not match the current group members", status_code=409
            )
        arranged = renumber([members[entity_id] for entity_id in ordered_ids])
        self._store.merge(arranged)

        return await self._answer(gate, self._store.members(group_id))

    async def move_to_group(
        self,
        entity_id: str,
        new_group_id: Optional[str],
        new_index: int,
    ) -> OrderedEntity:
        gate = await self._enter("move_to_group", entity_id)

        entity = self._store.state.entities.get(entity_id)
        if entity is None:
            raise TransientSyncError(f"Entity {entity_id} not found", status_code=404)
        self._apply(MoveToGroup(entity_id, entity.group_id, new_group_id, new_index))

        return await self._answer(gate, self._store.get(entity_id))

    async def set_field(self, entity_id: str, field_name: str, value: Any) -> OrderedEntity:
        gate = await self._enter("set_field", entity_id)

        if entity_id not in self._store:
            raise TransientSyncError(f"Entity {entity_id} not found", status_code=404)
        self._apply(SetField.single(entity_id, field_name, value))

        return await self._answer(gate, self._store.get(entity_id))

    async def reorder_groups(self, ordered_group_ids: List[str]) -> List[Group]:
        gate = await self._enter("reorder_groups", None)

        current = self._store.state.groups
        if sorted(ordered_group_ids) != sorted(current):
            raise TransientSyncError(
                "Order does not match the current groups", status_code=409
            )
        arranged = renumber([current[group_id] for group_id in ordered_group_ids])
        self._store.merge(groups=arranged)

        return await self._answer(gate, self._store.groups())

    async def complete_task(
        self,
        task_id: str,
        completed: bool = True,
        skip_payroll: bool = False,
    ) -> TaskCompletion:
        gate = await self._enter("complete_task", task_id)

        task = self._store.state.entities.get(task_id)
        if not isinstance(task, SchedulerTask):
            raise TransientSyncError(f"Task {task_id} not found", status_code=404)
        self._apply(CompleteTask(task_id, completed=completed))
        task = self._store.get(task_id)

        payroll = None
        if completed and not skip_payroll:
            payroll = self._payroll_for(task)

        return await self._answer(gate, TaskCompletion(task=task, payroll=payroll))

    async def duplicate(self, entity_id: str) -> OrderedEntity:
        gate = await self._enter("duplicate", entity_id)

        if entity_id not in self._store:
            raise TransientSyncError(f"Entity {entity_id} not found", status_code=404)
        self._copies += 1
        copy_id = f"{entity_id}-copia-{self._copies}"
        self._apply(DuplicateEntity(entity_id, temp_id=copy_id))

        return await self._answer(gate, self._store.get(copy_id))

    def _payroll_for(self, task: SchedulerTask) -> Optional[PayrollResult]:
        if task.assigned_crew_member_id:
            member = self._crew.get(task.assigned_crew_member_id)
            if member is None:
                return PayrollResult(success=False, error="Assigned crew member not found")
            return PayrollResult(success=True, crew_member_name=member.name)
        if task.total_cost > 0:
            return PayrollResult(success=False, error="No crew member assigned")
        return None

    async def list_group(self, group_id: Optional[str]) -> List[OrderedEntity]:
        gate = await self._enter("list_group", group_id)
        return await self._answer(gate, group_members(self._store.state.entities.values(), group_id))

    async def list_groups(self) -> List[Group]:
        gate = await self._enter("list_groups", None)
        return await self._answer(gate, self._store.groups())

    async def get_crew_member(self, crew_member_id: str) -> Optional[CrewMember]:
        gate = await self._enter("get_crew_member", crew_member_id)
        return await self._answer(gate, self._crew.get(crew_member_id))
