"""
Ordered list controller.

Owns one entity store and runs every gesture end to end:

    validate -> snapshot -> optimistic apply -> listeners -> gateway
             -> commit / rollback / discard -> listeners (+ notifier)

Children never touch the store; they receive read-only snapshots through
``subscribe()``. View-only state (expanded groups, the entity being dragged)
lives in an explicit ``ViewState`` handed to listeners with each snapshot.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from studiosync.entities import Group, OrderedEntity, PackageStatus, SchedulerTask
from studiosync.exceptions import TransientSyncError, ValidationError
from studiosync.gateway.base import SyncGateway
from studiosync.logging_config import get_logger
from studiosync.mutations import (
    CompleteTask,
    DuplicateEntity,
    MoveToGroup,
    Mutation,
    PendingMutation,
    Reorder,
    ReorderGroups,
    SetField,
    StoreState,
)
from studiosync.reconciler import DEFAULT_BUSY_POLICY, Reconciler, Resolution
from studiosync.store import EntityStore


logger = get_logger("controller")


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A user-facing, non-blocking message (rendered as a toast by the UI)."""

    level: NotificationLevel
    message: str


@dataclass(frozen=True)
class ViewState:
    """
    View-only state passed to listeners alongside each store snapshot.

    Attributes:
        expanded_group_ids: Groups currently expanded in the list
        active_drag_id: Entity being dragged, if any
    """

    expanded_group_ids: FrozenSet[str] = field(default_factory=frozenset)
    active_drag_id: Optional[str] = None


Listener = Callable[[StoreState, ViewState], None]
Notifier = Callable[[Notification], None]


class OrderedListController:
    """
    Dispatches list gestures against one store and one sync gateway.

    Usage:
        >>> controller = OrderedListController(gateway, notifier=toasts.append)
        >>> await controller.load()
        >>> resolution = await controller.reorder("pkg_3", 0)
        >>> resolution.committed
        True
    """

    def __init__(
        self,
        gateway: SyncGateway,
        store: Optional[EntityStore] = None,
        busy_policy: str = DEFAULT_BUSY_POLICY,
        notifier: Optional[Notifier] = None,
    ):
        self._gateway = gateway
        self._store = store if store is not None else EntityStore()
        self._reconciler = Reconciler(self._store, busy_policy)
        self._notifier = notifier
        self._listeners: List[Listener] = []
        self._view = ViewState()

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    @property
    def gateway(self) -> SyncGateway:
        return self._gateway

    @property
    def view(self) -> ViewState:
        return self._view

    # -------------------------------------------------------------------------
    # Listeners and notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with (snapshot, view) after every change.

        Returns:
            Callable removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self._store.snapshot()
        for listener in list(self._listeners):
            listener(snapshot, self._view)

    def notify(self, level: NotificationLevel, message: str) -> None:
        """Send a user-facing notification (no-op without a notifier)."""
        logger.info(f"Notify [{level.value}]: {message}")
        if self._notifier is not None:
            self._notifier(Notification(level, message))

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self, group_ids: Optional[Iterable[Optional[str]]] = None) -> None:
        """
        Load authoritative state from the gateway, replacing the store.

        Args:
            group_ids: Groups to load; defaults to the top level plus every
                registered group

        Raises:
            TransientSyncError: If the gateway cannot be read
        """
        groups = await self._gateway.list_groups()
        if group_ids is None:
            group_ids = [None] + [group.id for group in groups]

        entities: List[OrderedEntity] = []
        for group_id in group_ids:
            entities.extend(await self._gateway.list_group(group_id))

        self._store.load(entities, groups)
        self._publish()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def apply_optimistic(self, mutation: Mutation) -> PendingMutation:
        """
        Validate and apply a mutation locally, without touching the network.

        Raises:
            ValidationError: If the mutation is invalid (nothing changes)
        """
        pending = self._reconciler.begin(mutation)
        pending.payload = self._payload_for(mutation)
        self._publish()
        return pending

    async def sync(self, pending: PendingMutation) -> Resolution:
        """Persist a pending mutation and reconcile the gateway's answer."""
        try:
            entities, groups, payload = await self._persist(pending)
        except TransientSyncError as e:
            resolution = self._reconciler.rollback(pending, e)
            if resolution.rolled_back:
                self.notify(NotificationLevel.ERROR, e.message)
        else:
            resolution = self._reconciler.commit(pending, entities, groups, payload)

        if not resolution.discarded:
            self._publish()
        return resolution

    async def dispatch(self, mutation: Mutation) -> Resolution:
        """
        Apply a mutation optimistically, persist it and reconcile.

        Raises:
            ValidationError: If the mutation is invalid; the gateway is not called
        """
        pending = self.apply_optimistic(mutation)
        return await self.sync(pending)

    def _payload_for(self, mutation: Mutation) -> Dict[str, Any]:
        """Gateway arguments for a mutation, read from the freshly applied state."""
        if isinstance(mutation, Reorder):
            group_id = self._store.get(mutation.entity_id).group_id
            return {
                "group_id": group_id,
                "ordered_ids": [e.id for e in self._store.members(group_id)],
            }
        if isinstance(mutation, MoveToGroup):
            ids = [e.id for e in self._store.members(mutation.to_group_id)]
            return {
                "entity_id": mutation.entity_id,
                "new_group_id": mutation.to_group_id,
                "new_index": ids.index(mutation.entity_id),
            }
        if isinstance(mutation, SetField):
            return {"entity_id": mutation.entity_id, "changes": dict(mutation.changes)}
        if isinstance(mutation, ReorderGroups):
            return {"ordered_group_ids": self._store.group_ids()}
        if isinstance(mutation, DuplicateEntity):
            return {"entity_id": mutation.entity_id}
        return {
            "task_id": mutation.task_id,
            "completed": mutation.completed,
            "skip_payroll": mutation.skip_payroll,
        }

    async def _persist(
        self,
        pending: PendingMutation,
    ) -> Tuple[List[OrderedEntity], List[Group], Any]:
        """Call the gateway; returns (entities, groups, extra payload)."""
        mutation = pending.mutation
        payload = pending.payload

        if isinstance(mutation, Reorder):
            entities = await self._gateway.reorder(payload["group_id"], payload["ordered_ids"])
            return entities, [], None
        if isinstance(mutation, MoveToGroup):
            entity = await self._gateway.move_to_group(
                payload["entity_id"], payload["new_group_id"], payload["new_index"]
            )
            return [entity], [], None
        if isinstance(mutation, SetField):
            updated = []
            for field_name, value in payload["changes"].items():
                updated.append(
                    await self._gateway.set_field(payload["entity_id"], field_name, value)
                )
            return updated[-1:], [], None
        if isinstance(mutation, ReorderGroups):
            groups = await self._gateway.reorder_groups(payload["ordered_group_ids"])
            return [], groups, None
        if isinstance(mutation, DuplicateEntity):
            copy = await self._gateway.duplicate(payload["entity_id"])
            return [copy], [], copy

        completion = await self._gateway.complete_task(
            payload["task_id"],
            completed=payload["completed"],
            skip_payroll=payload["skip_payroll"],
        )
        return [completion.task], [], completion

    # -------------------------------------------------------------------------
    # Gestures
    # -------------------------------------------------------------------------

    async def reorder(self, entity_id: str, target_index: int) -> Resolution:
        """Move an entity to ``target_index`` within its group."""
        return await self.dispatch(Reorder(entity_id, target_index))

    async def move(
        self,
        entity_id: str,
        to_group_id: Optional[str],
        target_index: int,
    ) -> Resolution:
        """Move an entity into ``to_group_id`` at ``target_index``."""
        from_group_id = self._store.get(entity_id).group_id
        return await self.dispatch(
            MoveToGroup(entity_id, from_group_id, to_group_id, target_index)
        )

    async def set_field(self, entity_id: str, field_name: str, value: Any) -> Resolution:
        return await self.dispatch(SetField.single(entity_id, field_name, value))

    async def feature(self, package_id: str, featured: bool = True) -> Resolution:
        """Feature (or un-feature) a package within its event type."""
        return await self.set_field(package_id, "is_featured", featured)

    async def publish(self, package_id: str, active: bool = True) -> Resolution:
        """Publish (or unpublish) a package."""
        status = PackageStatus.ACTIVE if active else PackageStatus.INACTIVE
        return await self.set_field(package_id, "status", status)

    async def reorder_groups(self, group_id: str, target_index: int) -> Resolution:
        return await self.dispatch(ReorderGroups(group_id, target_index))

    async def duplicate(self, package_id: str) -> Resolution:
        """
        Duplicate a package at the end of its event type.

        A placeholder shows up immediately; on commit it is replaced by the
        server's copy, which is also ``resolution.payload``.
        """
        return await self.dispatch(DuplicateEntity(package_id))

    async def complete_task(
        self,
        task_id: str,
        completed: bool = True,
        skip_payroll: bool = False,
    ) -> Resolution:
        """
        Complete (or reopen) a scheduler task.

        On commit, ``resolution.payload`` is the gateway's TaskCompletion.
        """
        return await self.dispatch(
            CompleteTask(task_id, completed=completed, skip_payroll=skip_payroll)
        )

    # -------------------------------------------------------------------------
    # View state
    # -------------------------------------------------------------------------

    def toggle_group(self, group_id: str) -> bool:
        """Expand or collapse a group. Returns True if it is now expanded."""
        expanded = set(self._view.expanded_group_ids)
        if group_id in expanded:
            expanded.discard(group_id)
        else:
            expanded.add(group_id)
        self._view = replace(self._view, expanded_group_ids=frozenset(expanded))
        self._publish()
        return group_id in expanded

    def start_drag(self, entity_id: str) -> None:
        """
        Raises:
            UnknownEntityError: If the store holds no such entity
        """
        self._store.get(entity_id)
        self._view = replace(self._view, active_drag_id=entity_id)
        self._publish()

    def cancel_drag(self) -> None:
        self._view = replace(self._view, active_drag_id=None)
        self._publish()

    async def drop(
        self,
        over_id: Optional[str] = None,
        over_group_id: Optional[str] = None,
    ) -> Optional[Resolution]:
        """
        Finish the active drag over an entity or over an (empty) group.

        Dropping over an entity takes its position; dropping over a group
        appends to it. Dropping nowhere, or over the dragged entity itself,
        changes nothing and returns None. A subtask takes its position among
        its siblings.

        Raises:
            ValidationError: If a subtask is dropped over anything but a sibling
        """
        active_id = self._view.active_drag_id
        self._view = replace(self._view, active_drag_id=None)

        if active_id is None or over_id == active_id or (over_id is None and over_group_id is None):
            self._publish()
            return None

        entity = self._store.get(active_id)
        if over_id is not None:
            target_group_id = self._store.get(over_id).group_id
            if isinstance(entity, SchedulerTask) and entity.parent_id is not None:
                ids = [
                    e.id for e in self._store.members(entity.group_id)
                    if isinstance(e, SchedulerTask) and e.parent_id == entity.parent_id
                ]
                if over_id not in ids:
                    raise ValidationError(
                        f"Subtask {active_id} can only be dropped among its siblings",
                        field="parent_id",
                    )
            else:
                ids = [e.id for e in self._store.members(target_group_id)]
            target_index = ids.index(over_id)
        else:
            self._store.require_group(over_group_id)
            target_group_id = over_group_id
            target_index = len(self._store.members(target_group_id))

        if target_group_id == entity.group_id:
            return await self.reorder(active_id, target_index)
        return await self.move(active_id, target_group_id, target_index)
