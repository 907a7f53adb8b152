"""
Record types mirrored by the client-side entity store.

Each domain kind is a tagged variant sharing the ordered-entity fields
(``id``, ``group_id``, ``order``). Records are frozen: mutations produce new
records through ``model_copy(update=...)``, so any captured snapshot stays
exactly as it was.

Payloads coming back from the sync gateway are validated through the
discriminated ``Entity`` union keyed on ``kind``.

Design:
- Package: grouped by event type, at most one featured per event type
- EventType: orderable among themselves, and the groups packages live in
- SchedulerTask: grouped by stage/category key, optional parent task
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# ============================================================================
# Enumerations
# ============================================================================


class PackageStatus(str, Enum):
    """Publication status of a package."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class TaskStatus(str, Enum):
    """Scheduler task status."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# ============================================================================
# Base Types
# ============================================================================


class OrderedEntity(BaseModel):
    """
    Fields shared by every record that lives in an ordered group.

    Attributes:
        id: Server-assigned unique identifier
        group_id: Grouping key (event type id, stage key), None for top-level records
        order: Position within the group; missing/null reads as 0
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    #: Boolean fields for which a group holds at most one True value.
    exclusive_fields: ClassVar[Tuple[str, ...]] = ()

    id: str = Field(..., min_length=1, description="Server-assigned identifier")
    group_id: Optional[str] = Field(None, description="Grouping key")
    order: int = Field(0, ge=0, description="Position within the group")

    @field_validator("order", mode="before")
    @classmethod
    def default_missing_order(cls, v: Any) -> Any:
        return 0 if v is None else v


class Group(BaseModel):
    """An orderable partition of entities sharing an ordering sequence."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    order: int = Field(0, ge=0)

    @field_validator("order", mode="before")
    @classmethod
    def default_missing_order(cls, v: Any) -> Any:
        return 0 if v is None else v


# ============================================================================
# Domain Variants
# ============================================================================


class Package(OrderedEntity):
    """
    A sellable package, grouped under an event type.

    Featuring a package is exclusive within its event type.
    """

    kind: Literal["package"] = "package"
    name: str = ""
    is_featured: bool = False
    status: PackageStatus = PackageStatus.ACTIVE
    price: Optional[float] = Field(None, ge=0)
    cover_url: Optional[str] = None

    exclusive_fields: ClassVar[Tuple[str, ...]] = ("is_featured",)


class EventType(OrderedEntity):
    """An event type (wedding, quinceañera, ...), ordered among its peers."""

    kind: Literal["event_type"] = "event_type"
    name: str = ""
    status: PackageStatus = PackageStatus.ACTIVE

    def as_group(self) -> Group:
        """Project this event type onto the group its packages live in."""
        return Group(id=self.id, order=self.order)


class SchedulerTask(OrderedEntity):
    """
    A task in an event scheduler, grouped by stage/category key.

    Tasks linked to a quote item (``is_manual`` False) keep their group;
    manual tasks may be moved. Subtasks (``parent_id`` set) follow their parent.
    """

    kind: Literal["scheduler_task"] = "scheduler_task"
    name: str = ""
    status: TaskStatus = TaskStatus.PENDING
    progress_percent: int = Field(0, ge=0, le=100)
    completed_at: Optional[datetime] = None
    is_manual: bool = False
    parent_id: Optional[str] = None
    assigned_crew_member_id: Optional[str] = None
    cost: float = Field(0.0, ge=0)
    quantity: int = Field(1, ge=0)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def total_cost(self) -> float:
        return self.cost * (self.quantity or 1)


Entity = Annotated[
    Union[Package, EventType, SchedulerTask],
    Field(discriminator="kind"),
]

_entity_adapter: TypeAdapter = TypeAdapter(Entity)
_entity_list_adapter: TypeAdapter = TypeAdapter(List[Entity])


def parse_entity(data: Any) -> Union[Package, EventType, SchedulerTask]:
    """
    Validate a raw payload into the matching entity variant.

    Raises:
        pydantic.ValidationError: If ``kind`` is missing/unknown or fields are invalid
    """
    return _entity_adapter.validate_python(data)


def parse_entities(data: Any) -> List[Union[Package, EventType, SchedulerTask]]:
    """Validate a list payload into entity variants."""
    return _entity_list_adapter.validate_python(data)


# ============================================================================
# Crew and Payroll
# ============================================================================


class CrewMember(BaseModel):
    """A crew member who can be assigned to scheduler tasks."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    fixed_salary: Optional[float] = Field(None, ge=0)

    @property
    def has_fixed_salary(self) -> bool:
        return self.fixed_salary is not None and self.fixed_salary > 0


class PayrollResult(BaseModel):
    """Outcome of the payroll entry the server attempts when a task completes."""

    model_config = ConfigDict(frozen=True)

    success: bool
    crew_member_name: Optional[str] = None
    error: Optional[str] = None


class TaskCompletion(BaseModel):
    """Authoritative answer to a task completion request."""

    model_config = ConfigDict(frozen=True)

    task: SchedulerTask
    payroll: Optional[PayrollResult] = None


__all__ = [
    "PackageStatus",
    "TaskStatus",
    "OrderedEntity",
    "Group",
    "Package",
    "EventType",
    "SchedulerTask",
    "Entity",
    "parse_entity",
    "parse_entities",
    "CrewMember",
    "PayrollResult",
    "TaskCompletion",
]
