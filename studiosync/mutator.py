"""
Optimistic mutator.

Pure function: (StoreState, mutation) -> StoreState
No side effects. No IO. Synchronous, so it runs to completion between two
event-loop steps.

Validation happens before anything is computed; an invalid mutation raises
``ValidationError`` and the caller's state is untouched. A valid mutation
never fails.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

import pydantic

from studiosync.entities import (
    EventType,
    OrderedEntity,
    Package,
    PackageStatus,
    SchedulerTask,
    TaskStatus,
)
from studiosync.exceptions import UnknownEntityError, UnknownGroupError, ValidationError
from studiosync.mutations import (
    GROUPS_KEY,
    CompleteTask,
    DuplicateEntity,
    MoveToGroup,
    Mutation,
    Reorder,
    ReorderGroups,
    SetField,
    StoreState,
    group_key,
)
from studiosync.ordering import compute_order, group_members, move_index, renumber


# Fields that only change through reorder/move messages.
STRUCTURAL_FIELDS = frozenset(["id", "kind", "group_id", "order"])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def reduce(state: StoreState, mutation: Mutation) -> StoreState:
    """
    Apply one mutation to a store state.

    Returns a new state; the input state is never modified.

    Raises:
        ValidationError: If the mutation names unknown records or is not allowed
    """
    handler = _HANDLERS.get(type(mutation))
    if handler is None:
        raise ValidationError(f"Unsupported mutation: {type(mutation).__name__}")
    return handler(state, mutation)


def touched_groups(state: StoreState, mutation: Mutation) -> Tuple[str, ...]:
    """
    Sequence keys of the groups whose state a mutation changes.

    Raises:
        ValidationError: If the mutation names unknown records
    """
    if isinstance(mutation, ReorderGroups):
        return (GROUPS_KEY,)
    if isinstance(mutation, MoveToGroup):
        keys = [group_key(mutation.from_group_id), group_key(mutation.to_group_id)]
        return tuple(dict.fromkeys(keys))
    if isinstance(mutation, CompleteTask):
        return (group_key(_get(state, mutation.task_id).group_id),)
    entity = _get(state, mutation.entity_id)
    if isinstance(mutation, Reorder) and _mirrors_group(state, entity):
        # Event types reordered as records also reorder the group registry.
        return (group_key(entity.group_id), GROUPS_KEY)
    return (group_key(entity.group_id),)


def target_of(mutation: Mutation) -> str:
    """Id of the entity or group a mutation targets."""
    if isinstance(mutation, ReorderGroups):
        return mutation.group_id
    if isinstance(mutation, CompleteTask):
        return mutation.task_id
    return mutation.entity_id


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get(state: StoreState, entity_id: str) -> OrderedEntity:
    entity = state.entities.get(entity_id)
    if entity is None:
        raise UnknownEntityError(entity_id)
    return entity


def _has_group(state: StoreState, group_id: Optional[str]) -> bool:
    if group_id is None or group_id in state.groups:
        return True
    return any(e.group_id == group_id for e in state.entities.values())


def _with_entities(state: StoreState, updated: List[OrderedEntity]) -> StoreState:
    entities = dict(state.entities)
    for entity in updated:
        entities[entity.id] = entity
    return StoreState(entities=entities, groups=state.groups)


def _mirrors_group(state: StoreState, entity: OrderedEntity) -> bool:
    return isinstance(entity, EventType) and entity.id in state.groups


def _with_mirrored_groups(state: StoreState, updated: List[OrderedEntity]) -> StoreState:
    """Apply ``updated`` and carry event type orders over to the group registry."""
    groups = dict(state.groups)
    for entity in updated:
        if _mirrors_group(state, entity):
            groups[entity.id] = groups[entity.id].model_copy(update={"order": entity.order})
    entities = _with_entities(state, updated).entities
    return StoreState(entities=entities, groups=groups)


def _children(members: List[OrderedEntity], parent_id: str) -> List[OrderedEntity]:
    return [
        e for e in members
        if isinstance(e, SchedulerTask) and e.parent_id == parent_id
    ]


def _block(members: List[OrderedEntity], entity: OrderedEntity) -> List[OrderedEntity]:
    """The entity plus the subtasks that travel with it."""
    if isinstance(entity, SchedulerTask) and entity.parent_id is None:
        return [entity] + _children(members, entity.id)
    return [entity]


def _insert_block(
    rest: List[OrderedEntity],
    block: List[OrderedEntity],
    target_index: int,
) -> List[OrderedEntity]:
    target_index = max(0, min(target_index, len(rest)))
    return rest[:target_index] + block + rest[target_index:]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _reorder(state: StoreState, mutation: Reorder) -> StoreState:
    entity = _get(state, mutation.entity_id)
    members = group_members(state.entities.values(), entity.group_id)

    if isinstance(entity, SchedulerTask) and entity.parent_id is not None:
        # Subtasks only trade places with their siblings.
        siblings = [
            e for e in members
            if isinstance(e, SchedulerTask) and e.parent_id == entity.parent_id
        ]
        slots = [members.index(s) for s in siblings]
        reordered = move_index(siblings, siblings.index(entity), mutation.target_index)
        arranged = list(members)
        for slot, sibling in zip(slots, reordered):
            arranged[slot] = sibling
    else:
        block = _block(members, entity)
        block_ids = {e.id for e in block}
        rest = [e for e in members if e.id not in block_ids]
        arranged = _insert_block(rest, block, mutation.target_index)

    return _with_mirrored_groups(state, renumber(arranged))


def _move_to_group(state: StoreState, mutation: MoveToGroup) -> StoreState:
    entity = _get(state, mutation.entity_id)
    if not _has_group(state, mutation.to_group_id):
        raise UnknownGroupError(mutation.to_group_id)
    if entity.group_id != mutation.from_group_id:
        raise ValidationError(
            f"Entity {entity.id} is in group {entity.group_id}, "
            f"not {mutation.from_group_id}",
            field="from_group_id",
        )
    if mutation.from_group_id == mutation.to_group_id:
        return _reorder(state, Reorder(entity.id, mutation.target_index))

    if isinstance(entity, SchedulerTask):
        if not entity.is_manual:
            raise ValidationError(
                "Quote-linked tasks cannot change category", field="group_id"
            )
        if entity.parent_id is not None:
            raise ValidationError(
                "Subtasks cannot be moved out of their parent task", field="group_id"
            )

    source = group_members(state.entities.values(), mutation.from_group_id)
    block = _block(source, entity)
    block_ids = {e.id for e in block}
    remaining = [e for e in source if e.id not in block_ids]

    destination = group_members(state.entities.values(), mutation.to_group_id)
    moved = [e.model_copy(update={"group_id": mutation.to_group_id}) for e in block]
    arranged = _insert_block(destination, moved, mutation.target_index)

    return _with_entities(state, renumber(remaining) + renumber(arranged))


def _set_field(state: StoreState, mutation: SetField) -> StoreState:
    entity = _get(state, mutation.entity_id)
    changes = dict(mutation.changes)
    if not changes:
        return state

    model_fields = type(entity).model_fields
    for name in changes:
        if name in STRUCTURAL_FIELDS:
            raise ValidationError(
                f"Field '{name}' can only change through reorder or move", field=name
            )
        if name not in model_fields:
            raise ValidationError(
                f"Unknown field '{name}' for {type(entity).__name__}", field=name
            )

    if isinstance(entity, Package):
        if changes.get("is_featured") is True and "status" not in changes:
            if entity.status != PackageStatus.ACTIVE:
                changes["status"] = PackageStatus.ACTIVE
        if changes.get("status") == PackageStatus.INACTIVE and "is_featured" not in changes:
            if entity.is_featured:
                changes["is_featured"] = False

    try:
        updated = type(entity).model_validate({**entity.model_dump(), **changes})
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid value for {type(entity).__name__} {entity.id}: {e.errors()[0]['msg']}",
            field=next(iter(changes)),
        ) from None

    result = [updated]
    for exclusive in entity.exclusive_fields:
        if changes.get(exclusive) is True:
            for other in state.entities.values():
                if (
                    other.id != entity.id
                    and other.group_id == entity.group_id
                    and getattr(other, exclusive, False) is True
                ):
                    result.append(other.model_copy(update={exclusive: False}))

    return _with_entities(state, result)


def _reorder_groups(state: StoreState, mutation: ReorderGroups) -> StoreState:
    if mutation.group_id not in state.groups:
        raise UnknownGroupError(mutation.group_id)

    ordered = compute_order(state.groups.values())
    ids = [g.id for g in ordered]
    arranged = renumber(move_index(ordered, ids.index(mutation.group_id), mutation.target_index))
    groups = {group.id: group for group in arranged}

    entities = dict(state.entities)
    for group in arranged:
        event_type = entities.get(group.id)
        if isinstance(event_type, EventType) and event_type.order != group.order:
            entities[group.id] = event_type.model_copy(update={"order": group.order})

    return StoreState(entities=entities, groups=groups)


def _complete_task(state: StoreState, mutation: CompleteTask) -> StoreState:
    task = _get(state, mutation.task_id)
    if not isinstance(task, SchedulerTask):
        raise ValidationError(
            f"Entity {task.id} is not a scheduler task", field="task_id"
        )

    if mutation.completed:
        updated = task.model_copy(update={
            "status": TaskStatus.COMPLETED,
            "completed_at": mutation.at or datetime.now(timezone.utc),
            "progress_percent": 100,
        })
    else:
        updated = task.model_copy(update={
            "status": TaskStatus.PENDING,
            "completed_at": None,
        })
    return _with_entities(state, [updated])


def _duplicate(state: StoreState, mutation: DuplicateEntity) -> StoreState:
    source = _get(state, mutation.entity_id)
    if not isinstance(source, Package):
        raise ValidationError(
            f"Only packages can be duplicated, not {type(source).__name__}",
            field="entity_id",
        )
    if mutation.temp_id in state.entities:
        raise ValidationError(
            f"Placeholder id {mutation.temp_id} is already in use", field="temp_id"
        )

    members = group_members(state.entities.values(), source.group_id)
    placeholder = source.model_copy(update={
        "id": mutation.temp_id,
        "name": f"{source.name} (Copia)",
        "order": len(members),
        "is_featured": False,
        "status": PackageStatus.INACTIVE,
    })
    return _with_entities(state, renumber(members + [placeholder]))


_HANDLERS: Dict[type, Callable[[StoreState, Mutation], StoreState]] = {
    Reorder: _reorder,
    MoveToGroup: _move_to_group,
    SetField: _set_field,
    ReorderGroups: _reorder_groups,
    CompleteTask: _complete_task,
    DuplicateEntity: _duplicate,
}
