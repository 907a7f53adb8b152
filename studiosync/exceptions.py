"""
Exception taxonomy for list synchronization.

- ValidationError: local, raised before any state change or network call
- TransientSyncError: remote, the gateway call failed and the change is rolled back
- StaleResponseDiscarded: internal, a superseded response arrived late

None of these is fatal to the application: a failed reorder degrades to
"change not applied".
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base exception for list synchronization errors."""
    pass


class ValidationError(SyncError):
    """Raised when a mutation targets unknown records or is not allowed."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class UnknownEntityError(ValidationError):
    """Raised when a mutation names an entity the store does not hold."""

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"Entity {entity_id} not found", field="entity_id")


class UnknownGroupError(ValidationError):
    """Raised when a mutation names a group the store does not hold."""

    def __init__(self, group_id: Any):
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found", field="group_id")


class MutationInFlightError(ValidationError):
    """Raised under the ``reject`` busy policy when a group is already mutating."""

    def __init__(self, group_id: str, sequence: int):
        self.group_id = group_id
        self.sequence = sequence
        super().__init__(
            f"Group {group_id} already has mutation #{sequence} in flight",
            field="group_id",
        )


class TransientSyncError(SyncError):
    """
    Raised when the sync gateway fails to persist a mutation.

    The message is human-readable and meant for user-facing notifications.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class StaleResponseDiscarded(SyncError):
    """
    Signals that a gateway response was superseded by a newer local mutation.

    Never surfaced to the user; the reconciler logs it and drops the response.
    """

    def __init__(self, group_id: str, sequence: int, latest: int):
        self.group_id = group_id
        self.sequence = sequence
        self.latest = latest
        super().__init__(
            f"Response for mutation #{sequence} on group {group_id} "
            f"superseded by #{latest}"
        )
