"""
Mutation messages.

Every gesture is expressed as one of these immutable messages and handed to
the single reducer in ``studiosync.mutator``. A ``PendingMutation`` tracks a
message while its gateway call is in flight.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from studiosync.entities import Group, OrderedEntity


class MutationKind(str, Enum):
    """Kinds of optimistic mutation."""

    REORDER = "reorder"
    MOVE_GROUP = "move_group"
    FIELD_TOGGLE = "field_toggle"
    REORDER_GROUPS = "reorder_groups"
    COMPLETE_TASK = "complete_task"
    DUPLICATE = "duplicate"


#: Sequence key for the group registry itself (group reordering).
GROUPS_KEY = "__groups__"

#: Sequence key for entities without a group.
ROOT_KEY = "__root__"


def group_key(group_id: Optional[str]) -> str:
    """Sequence key the reconciler tracks for ``group_id``."""
    return ROOT_KEY if group_id is None else group_id


@dataclass(frozen=True)
class Reorder:
    """Move an entity to ``target_index`` within its own group."""

    entity_id: str
    target_index: int

    kind = MutationKind.REORDER


@dataclass(frozen=True)
class MoveToGroup:
    """Move an entity from one group into another at ``target_index``."""

    entity_id: str
    from_group_id: Optional[str]
    to_group_id: Optional[str]
    target_index: int

    kind = MutationKind.MOVE_GROUP


@dataclass(frozen=True)
class SetField:
    """Shallow-merge ``changes`` into an entity record."""

    entity_id: str
    changes: Mapping[str, Any]

    kind = MutationKind.FIELD_TOGGLE

    @classmethod
    def single(cls, entity_id: str, field_name: str, value: Any) -> "SetField":
        return cls(entity_id=entity_id, changes={field_name: value})


@dataclass(frozen=True)
class ReorderGroups:
    """Move a group to ``target_index`` among the groups."""

    group_id: str
    target_index: int

    kind = MutationKind.REORDER_GROUPS


@dataclass(frozen=True)
class CompleteTask:
    """Mark a scheduler task completed (or reopen it)."""

    task_id: str
    completed: bool = True
    at: Optional[datetime] = None
    skip_payroll: bool = False

    kind = MutationKind.COMPLETE_TASK


def placeholder_id() -> str:
    """Temporary id for a record the server has not created yet."""
    return f"duplicating-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class DuplicateEntity:
    """
    Append a copy of an entity to its group under ``temp_id``.

    The placeholder stands in for the server's copy until the gateway answers;
    commit swaps it for the authoritative record, rollback drops it.
    """

    entity_id: str
    temp_id: str = field(default_factory=placeholder_id)

    kind = MutationKind.DUPLICATE


Mutation = Union[Reorder, MoveToGroup, SetField, ReorderGroups, CompleteTask, DuplicateEntity]


@dataclass(frozen=True)
class StoreState:
    """
    Immutable view of an entity store: entities by id plus the group registry.

    Entities are frozen records, so holding a StoreState is an exact snapshot.
    """

    entities: Mapping[str, OrderedEntity] = field(default_factory=dict)
    groups: Mapping[str, Group] = field(default_factory=dict)


@dataclass
class PendingMutation:
    """
    A mutation whose gateway call is in flight.

    Attributes:
        mutation: The message that was applied optimistically
        target_id: Entity (or group) the gesture targeted
        group_keys: Groups whose ordering the mutation touches
        sequences: Sequence number assigned per touched group
        snapshot: Store state immediately before the optimistic apply
        payload: Gateway arguments captured right after the optimistic apply
    """

    mutation: Mutation
    target_id: str
    group_keys: Tuple[str, ...]
    sequences: Dict[str, int]
    snapshot: StoreState
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> MutationKind:
        return self.mutation.kind
