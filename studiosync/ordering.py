"""
Ordering index for grouped entities.

Derives a deterministic display sequence from the integer ``order`` field.
Ties keep their relative input position: the sort key carries the original
index, so the result does not depend on sort stability.
"""

from typing import Iterable, List, Optional, Sequence, TypeVar

from studiosync.entities import Group, OrderedEntity


T = TypeVar("T", OrderedEntity, Group)


def compute_order(entities: Iterable[T]) -> List[T]:
    """
    Return entities in display order.

    Sort key is ascending ``order`` (None reads as 0), then original index.
    Empty input yields an empty list. Applying it twice gives the same result
    as applying it once.

    Args:
        entities: Entities (or groups) of a single group

    Returns:
        New list in display order
    """
    decorated = [
        ((entity.order or 0), index, entity)
        for index, entity in enumerate(entities)
    ]
    decorated.sort(key=lambda item: (item[0], item[1]))
    return [entity for _, _, entity in decorated]


def renumber(entities: Sequence[T]) -> List[T]:
    """
    Assign ``order = index`` (0-based, contiguous) following the given sequence.

    Entities whose order already matches are returned as-is.
    """
    return [
        entity if entity.order == index else entity.model_copy(update={"order": index})
        for index, entity in enumerate(entities)
    ]


def group_members(
    entities: Iterable[OrderedEntity],
    group_id: Optional[str],
) -> List[OrderedEntity]:
    """Members of ``group_id`` in display order."""
    return compute_order(e for e in entities if e.group_id == group_id)


def is_contiguous(entities: Iterable[T]) -> bool:
    """True when the orders are exactly {0, 1, ..., n-1}."""
    orders = sorted(entity.order for entity in entities)
    return orders == list(range(len(orders)))


def move_index(items: Sequence[T], source_index: int, target_index: int) -> List[T]:
    """
    Move the item at ``source_index`` to ``target_index``.

    ``target_index`` is clamped to the bounds of the resulting list.
    """
    result = list(items)
    item = result.pop(source_index)
    target_index = max(0, min(target_index, len(result)))
    result.insert(target_index, item)
    return result
