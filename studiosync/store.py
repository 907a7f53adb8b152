"""
In-memory entity store.

Mirrors the last known server state for one list owner: entities keyed by id
and the registry of orderable groups. State is held as an immutable
``StoreState``; every change swaps in a new one, so ``snapshot()`` is exact
and cheap.
"""

from typing import Iterable, List, Optional

from studiosync.entities import EventType, Group, OrderedEntity
from studiosync.exceptions import UnknownEntityError, UnknownGroupError
from studiosync.logging_config import get_logger
from studiosync.mutations import GROUPS_KEY, StoreState, group_key
from studiosync.ordering import compute_order, group_members


logger = get_logger("store")


class EntityStore:
    """
    Keyed collection of entities plus their group registry.

    Groups are known either from the registry (orderable groups such as event
    types) or because at least one entity references them.

    Usage:
        >>> store = EntityStore()
        >>> store.load(packages, groups=[Group(id="evt_boda", order=0)])
        >>> store.members("evt_boda")
        [Package(id='pkg_1', ...), ...]
    """

    def __init__(self, state: Optional[StoreState] = None):
        self._state = state or StoreState()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(
        self,
        entities: Iterable[OrderedEntity],
        groups: Iterable[Group] = (),
    ) -> None:
        """
        Replace the store contents with server state.

        Event types among ``entities`` are also registered as groups, unless
        ``groups`` already names them.
        """
        entity_map = {entity.id: entity for entity in entities}
        group_map = {group.id: group for group in groups}
        for entity in entity_map.values():
            if isinstance(entity, EventType) and entity.id not in group_map:
                group_map[entity.id] = entity.as_group()

        self._state = StoreState(entities=entity_map, groups=group_map)
        logger.debug(
            "Loaded %d entities in %d groups", len(entity_map), len(group_map)
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    def snapshot(self) -> StoreState:
        """Exact copy of the current state for later rollback."""
        return StoreState(
            entities=dict(self._state.entities),
            groups=dict(self._state.groups),
        )

    def get(self, entity_id: str) -> OrderedEntity:
        """
        Look up an entity.

        Raises:
            UnknownEntityError: If the store holds no entity with this id
        """
        try:
            return self._state.entities[entity_id]
        except KeyError:
            raise UnknownEntityError(entity_id) from None

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._state.entities

    def __len__(self) -> int:
        return len(self._state.entities)

    def has_group(self, group_id: Optional[str]) -> bool:
        if group_id is None or group_id in self._state.groups:
            return True
        return any(e.group_id == group_id for e in self._state.entities.values())

    def require_group(self, group_id: Optional[str]) -> None:
        """
        Raises:
            UnknownGroupError: If the group is neither registered nor referenced
        """
        if not self.has_group(group_id):
            raise UnknownGroupError(group_id)

    def members(self, group_id: Optional[str]) -> List[OrderedEntity]:
        """Members of a group in display order."""
        return group_members(self._state.entities.values(), group_id)

    def groups(self) -> List[Group]:
        """Registered groups in display order."""
        return compute_order(self._state.groups.values())

    def group_ids(self) -> List[str]:
        return [group.id for group in self.groups()]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def replace(self, state: StoreState) -> None:
        """Swap in a new state (optimistic apply)."""
        self._state = state

    def restore(self, snapshot: StoreState, group_keys: Optional[Iterable[str]] = None) -> None:
        """
        Restore a previously captured snapshot (rollback).

        With ``group_keys``, only those groups are put back; records of other
        groups keep their current values. ``GROUPS_KEY`` restores the group
        registry together with the event types mirroring it.
        """
        if group_keys is None:
            self._state = snapshot
            logger.debug("Restored snapshot with %d entities", len(snapshot.entities))
            return

        keys = set(group_keys)
        entities = {
            entity_id: entity
            for entity_id, entity in self._state.entities.items()
            if group_key(entity.group_id) not in keys
        }
        for entity_id, entity in snapshot.entities.items():
            if group_key(entity.group_id) in keys:
                entities[entity_id] = entity

        groups = self._state.groups
        if GROUPS_KEY in keys:
            groups = dict(snapshot.groups)
            for group_id in groups:
                event_type = snapshot.entities.get(group_id)
                if isinstance(event_type, EventType):
                    entities[group_id] = event_type

        self._state = StoreState(entities=entities, groups=groups)
        logger.debug("Restored groups %s from snapshot", sorted(keys))

    def merge(
        self,
        entities: Iterable[OrderedEntity] = (),
        groups: Iterable[Group] = (),
        remove: Iterable[str] = (),
    ) -> None:
        """
        Merge authoritative records, server values winning over local ones.

        Records the server did not return are left untouched. Ids in ``remove``
        (placeholders the server has replaced) are dropped first.
        """
        entity_map = dict(self._state.entities)
        group_map = dict(self._state.groups)
        for entity_id in remove:
            entity_map.pop(entity_id, None)

        merged = 0
        for entity in entities:
            entity_map[entity.id] = entity
            merged += 1
            if isinstance(entity, EventType) and entity.id in group_map:
                group_map[entity.id] = entity.as_group()
        for group in groups:
            group_map[group.id] = group
            event_type = entity_map.get(group.id)
            if isinstance(event_type, EventType) and event_type.order != group.order:
                entity_map[group.id] = event_type.model_copy(update={"order": group.order})
            merged += 1

        self._state = StoreState(entities=entity_map, groups=group_map)
        logger.debug("Merged %d authoritative records", merged)
