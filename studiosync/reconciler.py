"""
Reconciler.

Tracks every group through ``IDLE -> MUTATING -> IDLE`` and decides what to
do with each gateway response:

- success, still the latest mutation for its groups: merge the authoritative
  records (server values win)
- failure, still the latest: restore the pre-mutation snapshot of the
  touched groups
- anything else: discard; a newer local mutation owns those groups now

Sequence numbers are monotonic per group key and never reused. A move touches
two groups and carries one sequence for each; it is current only while it is
the latest for both.

A duplicate appends a placeholder record; until its answer arrives the group
accepts no other mutation, so the placeholder id never reaches the gateway.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from studiosync.entities import Group, OrderedEntity
from studiosync.exceptions import MutationInFlightError, StaleResponseDiscarded, SyncError
from studiosync.logging_config import get_logger
from studiosync.mutations import DuplicateEntity, Mutation, PendingMutation
from studiosync.mutator import reduce, target_of, touched_groups
from studiosync.store import EntityStore


logger = get_logger("reconciler")


# Busy policies: what a new mutation does to a group that is already MUTATING.
BUSY_SUPERSEDE = "supersede"
BUSY_REJECT = "reject"
BUSY_POLICIES = frozenset([BUSY_SUPERSEDE, BUSY_REJECT])
DEFAULT_BUSY_POLICY = BUSY_SUPERSEDE


class GroupState(str, Enum):
    """Per-group synchronization state."""

    IDLE = "idle"
    MUTATING = "mutating"


class ReconcileOutcome(str, Enum):
    """What happened to a gateway response."""

    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class Resolution:
    """
    Result of reconciling one gateway response.

    Attributes:
        outcome: Committed, rolled back or discarded
        pending: The mutation the response belonged to
        error: The gateway error for rollbacks (and discarded failures)
        payload: Extra authoritative data returned by the gateway, if any
    """

    outcome: ReconcileOutcome
    pending: PendingMutation
    error: Optional[SyncError] = None
    payload: Optional[object] = None

    @property
    def committed(self) -> bool:
        return self.outcome == ReconcileOutcome.COMMITTED

    @property
    def rolled_back(self) -> bool:
        return self.outcome == ReconcileOutcome.ROLLED_BACK

    @property
    def discarded(self) -> bool:
        return self.outcome == ReconcileOutcome.DISCARDED


class Reconciler:
    """
    Applies mutations optimistically and reconciles their gateway responses.

    Usage:
        >>> reconciler = Reconciler(store)
        >>> pending = reconciler.begin(Reorder("pkg_3", 0))
        >>> entities = await gateway.reorder("evt_boda", ["pkg_3", "pkg_1", "pkg_2"])
        >>> reconciler.commit(pending, entities).outcome
        <ReconcileOutcome.COMMITTED: 'committed'>
    """

    def __init__(self, store: EntityStore, busy_policy: str = DEFAULT_BUSY_POLICY):
        if busy_policy not in BUSY_POLICIES:
            raise ValueError(
                f"busy_policy must be one of {sorted(BUSY_POLICIES)}, got {busy_policy!r}"
            )
        self._store = store
        self._busy_policy = busy_policy
        # Latest sequence issued per group key.
        self._latest: Dict[str, int] = {}
        # Sequence currently in flight per MUTATING group key.
        self._in_flight: Dict[str, int] = {}
        # Unconfirmed placeholder per group key; the group is locked until it settles.
        self._placeholders: Dict[str, str] = {}

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def busy_policy(self) -> str:
        return self._busy_policy

    def state_of(self, key: str) -> GroupState:
        """State of the group with sequence key ``key``."""
        return GroupState.MUTATING if key in self._in_flight else GroupState.IDLE

    def placeholder_in(self, key: str) -> Optional[str]:
        """Temp id of the unconfirmed duplicate in a group, if any."""
        return self._placeholders.get(key)

    def latest_sequence(self, key: str) -> int:
        return self._latest.get(key, 0)

    def is_current(self, pending: PendingMutation) -> bool:
        """True while ``pending`` is the latest mutation for every group it touches."""
        return all(
            self._latest.get(key) == sequence
            for key, sequence in pending.sequences.items()
        )

    # -------------------------------------------------------------------------
    # Optimistic apply
    # -------------------------------------------------------------------------

    def begin(self, mutation: Mutation) -> PendingMutation:
        """
        Apply ``mutation`` to the store and open it for reconciliation.

        Raises:
            ValidationError: If the mutation is invalid (store unchanged)
            MutationInFlightError: Under the reject policy, if a touched group
                is MUTATING; under any policy, if a touched group holds an
                unconfirmed placeholder (store unchanged)
        """
        state = self._store.state
        keys = touched_groups(state, mutation)

        for key in keys:
            if key in self._placeholders:
                raise MutationInFlightError(key, self._in_flight.get(key, 0))

        if self._busy_policy == BUSY_REJECT:
            for key in keys:
                if key in self._in_flight:
                    raise MutationInFlightError(key, self._in_flight[key])

        new_state = reduce(state, mutation)
        snapshot = self._store.snapshot()

        sequences = {}
        for key in keys:
            sequence = self._latest.get(key, 0) + 1
            self._latest[key] = sequence
            self._in_flight[key] = sequence
            sequences[key] = sequence
            if isinstance(mutation, DuplicateEntity):
                self._placeholders[key] = mutation.temp_id

        self._store.replace(new_state)
        logger.debug(
            f"Applied {mutation.kind.value} on {target_of(mutation)} "
            f"optimistically (sequences {sequences})"
        )

        return PendingMutation(
            mutation=mutation,
            target_id=target_of(mutation),
            group_keys=keys,
            sequences=sequences,
            snapshot=snapshot,
        )

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def commit(
        self,
        pending: PendingMutation,
        entities: Iterable[OrderedEntity] = (),
        groups: Iterable[Group] = (),
        payload: Optional[object] = None,
    ) -> Resolution:
        """Merge the authoritative records of a successful gateway call."""
        if not self.is_current(pending):
            return self._discard(pending, None)

        self._settle(pending)
        remove = ()
        if isinstance(pending.mutation, DuplicateEntity):
            remove = (pending.mutation.temp_id,)
        self._store.merge(entities, groups, remove)
        logger.debug(f"Committed {pending.kind.value} on {pending.target_id}")
        return Resolution(ReconcileOutcome.COMMITTED, pending, payload=payload)

    def rollback(self, pending: PendingMutation, error: SyncError) -> Resolution:
        """Restore the pre-mutation state of the groups a failed call touched."""
        if not self.is_current(pending):
            return self._discard(pending, error)

        self._settle(pending)
        self._store.restore(pending.snapshot, pending.group_keys)
        logger.warning(
            f"Rolled back {pending.kind.value} on {pending.target_id}: {error}"
        )
        return Resolution(ReconcileOutcome.ROLLED_BACK, pending, error=error)

    def _settle(self, pending: PendingMutation) -> None:
        """Return the groups ``pending`` still holds to IDLE."""
        for key, sequence in pending.sequences.items():
            if self._in_flight.get(key) == sequence:
                del self._in_flight[key]
        if isinstance(pending.mutation, DuplicateEntity):
            for key in pending.group_keys:
                if self._placeholders.get(key) == pending.mutation.temp_id:
                    del self._placeholders[key]

    def _discard(self, pending: PendingMutation, error: Optional[SyncError]) -> Resolution:
        self._settle(pending)
        for key, sequence in pending.sequences.items():
            latest = self._latest.get(key, 0)
            if latest != sequence:
                logger.debug(str(StaleResponseDiscarded(key, sequence, latest)))
                break
        return Resolution(ReconcileOutcome.DISCARDED, pending, error=error)
