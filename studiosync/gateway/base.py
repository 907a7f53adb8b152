"""
Abstract base class for sync gateways.

Defines the interface the reconciler uses to persist mutations and read back
authoritative state. Concrete gateways talk to the studio server over HTTP
(HttpSyncGateway) or keep an authoritative store in-process
(InMemorySyncGateway).

Design Pattern: Strategy pattern for pluggable persistence backends

Every operation is a coroutine. Success returns the authoritative records
(including server-assigned ``order``); failure raises TransientSyncError or a
subclass carrying a human-readable message.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from studiosync.entities import CrewMember, Group, OrderedEntity, TaskCompletion


class SyncGateway(ABC):
    """
    Abstract base class for sync gateways.

    Methods:
        reorder(): Persist the display order of a group
        move_to_group(): Move an entity into another group
        set_field(): Persist one field change
        reorder_groups(): Persist the order of the groups themselves
        complete_task(): Complete or reopen a scheduler task
        duplicate(): Create a copy of an entity at the end of its group
        list_group()/list_groups(): Read authoritative state
        get_crew_member(): Look up the crew member assigned to a task

    Usage:
        >>> gateway = HttpSyncGateway(server_url, studio_slug="mi-estudio")
        >>> snapshots = await gateway.reorder("evt_boda", ["pkg_3", "pkg_1", "pkg_2"])
    """

    @abstractmethod
    async def reorder(self, group_id: Optional[str], ordered_ids: List[str]) -> List[OrderedEntity]:
        """
        Persist a new display order for a group.

        Args:
            group_id: Group being reordered
            ordered_ids: Every member id of the group in the new order

        Returns:
            Authoritative members with server-assigned ``order``

        Raises:
            TransientSyncError: If the change could not be persisted
        """
        pass

    @abstractmethod
    async def move_to_group(
        self,
        entity_id: str,
        new_group_id: Optional[str],
        new_index: int,
    ) -> OrderedEntity:
        """
        Move an entity into another group at ``new_index``.

        Returns:
            The authoritative moved entity

        Raises:
            TransientSyncError: If the change could not be persisted
        """
        pass

    @abstractmethod
    async def set_field(self, entity_id: str, field_name: str, value: Any) -> OrderedEntity:
        """
        Persist one field change.

        Returns:
            The authoritative entity after the change

        Raises:
            TransientSyncError: If the change could not be persisted
        """
        pass

    @abstractmethod
    async def reorder_groups(self, ordered_group_ids: List[str]) -> List[Group]:
        """
        Persist the order of the groups themselves (e.g. event types).

        Returns:
            Authoritative groups with server-assigned ``order``
        """
        pass

    @abstractmethod
    async def complete_task(
        self,
        task_id: str,
        completed: bool = True,
        skip_payroll: bool = False,
    ) -> TaskCompletion:
        """
        Complete (or reopen) a scheduler task.

        Completing a task with an assigned crew member makes the server attempt
        a payroll entry unless ``skip_payroll`` is set.

        Returns:
            The authoritative task plus the payroll outcome, if any
        """
        pass

    @abstractmethod
    async def duplicate(self, entity_id: str) -> OrderedEntity:
        """
        Create a copy of an entity, appended to the end of its group.

        Returns:
            The new authoritative record (server-assigned id and ``order``)

        Raises:
            TransientSyncError: If the copy could not be created
        """
        pass

    @abstractmethod
    async def list_group(self, group_id: Optional[str]) -> List[OrderedEntity]:
        """Authoritative members of a group."""
        pass

    @abstractmethod
    async def list_groups(self) -> List[Group]:
        """Authoritative group registry."""
        pass

    @abstractmethod
    async def get_crew_member(self, crew_member_id: str) -> Optional[CrewMember]:
        """Crew member by id, or None if unknown."""
        pass

    async def close(self) -> None:
        """Release any resources held by the gateway."""
        return None

    async def __aenter__(self) -> "SyncGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
