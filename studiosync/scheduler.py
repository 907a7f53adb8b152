"""
Scheduler task completion.

Completing a task may create a payroll entry for the crew member assigned to
it. Before completing, the caller asks ``decide_completion`` what the user
has to be asked, if anything:

| crew assigned | fixed salary | total cost | crew preference | action                   |
|---------------|--------------|------------|-----------------|--------------------------|
| yes           | yes          | any        | any             | CONFIRM_FIXED_SALARY     |
| yes           | no           | any        | any             | COMPLETE_WITH_PAYROLL    |
| no (manual)   | -            | any        | any             | ASSIGN_CREW_OR_SKIP      |
| no            | -            | > 0        | not False       | ASSIGN_CREW_OR_SKIP      |
| no            | -            | > 0        | False           | COMPLETE_WITHOUT_PAYROLL |
| no            | -            | 0          | any             | COMPLETE_WITH_PAYROLL    |
"""

from enum import Enum
from typing import Optional, Tuple

from studiosync.controller import NotificationLevel, OrderedListController
from studiosync.entities import CrewMember, SchedulerTask, TaskCompletion
from studiosync.exceptions import TransientSyncError, ValidationError
from studiosync.logging_config import get_logger
from studiosync.reconciler import Resolution


logger = get_logger("scheduler")


class CompletionAction(str, Enum):
    """What completing a task requires from the user."""

    COMPLETE_WITH_PAYROLL = "complete_with_payroll"
    CONFIRM_FIXED_SALARY = "confirm_fixed_salary"
    ASSIGN_CREW_OR_SKIP = "assign_crew_or_skip"
    COMPLETE_WITHOUT_PAYROLL = "complete_without_payroll"


def decide_completion(
    task: SchedulerTask,
    crew_member: Optional[CrewMember] = None,
    has_crew_preference: Optional[bool] = None,
) -> CompletionAction:
    """
    Decide how to complete ``task``.

    Args:
        task: Task being completed
        crew_member: The crew member assigned to the task, if it could be looked up
        has_crew_preference: Studio preference for events with crew; None when unset

    Returns:
        The CompletionAction to take
    """
    if task.assigned_crew_member_id:
        if crew_member is not None and crew_member.has_fixed_salary:
            return CompletionAction.CONFIRM_FIXED_SALARY
        return CompletionAction.COMPLETE_WITH_PAYROLL

    if task.is_manual:
        return CompletionAction.ASSIGN_CREW_OR_SKIP

    if task.total_cost > 0:
        if has_crew_preference is False:
            return CompletionAction.COMPLETE_WITHOUT_PAYROLL
        return CompletionAction.ASSIGN_CREW_OR_SKIP

    return CompletionAction.COMPLETE_WITH_PAYROLL


def completion_notification(
    completion: TaskCompletion,
    skip_payroll: bool = False,
) -> Tuple[NotificationLevel, str]:
    """User-facing message for a committed task completion."""
    if skip_payroll:
        return NotificationLevel.SUCCESS, "Task completed (no payroll entry created)"

    payroll = completion.payroll
    if payroll is None:
        return NotificationLevel.SUCCESS, "Task completed"
    if payroll.success:
        return (
            NotificationLevel.SUCCESS,
            f"Task completed. Payroll entry created for {payroll.crew_member_name}",
        )
    return (
        NotificationLevel.WARNING,
        f"Task completed. No payroll entry created: {payroll.error or 'No crew member assigned'}",
    )


class TaskCompletionFlow:
    """
    Runs task completion through a list controller.

    Usage:
        >>> flow = TaskCompletionFlow(controller, has_crew_preference=True)
        >>> action = await flow.decide("task_1")
        >>> if action == CompletionAction.CONFIRM_FIXED_SALARY:
        ...     await flow.complete("task_1", skip_payroll=not user_wants_payroll)
    """

    def __init__(
        self,
        controller: OrderedListController,
        has_crew_preference: Optional[bool] = None,
    ):
        self._controller = controller
        self._has_crew_preference = has_crew_preference

    def _task(self, task_id: str) -> SchedulerTask:
        task = self._controller.store.get(task_id)
        if not isinstance(task, SchedulerTask):
            raise ValidationError(f"Entity {task_id} is not a scheduler task", field="task_id")
        return task

    async def decide(self, task_id: str) -> CompletionAction:
        """
        Decide how to complete a task, looking up its crew member.

        A failed crew lookup is treated as "no fixed salary".

        Raises:
            ValidationError: If the task is unknown
        """
        task = self._task(task_id)

        crew_member = None
        if task.assigned_crew_member_id:
            try:
                crew_member = await self._controller.gateway.get_crew_member(
                    task.assigned_crew_member_id
                )
            except TransientSyncError as e:
                logger.warning(
                    f"Could not look up crew member {task.assigned_crew_member_id}: {e}"
                )

        return decide_completion(task, crew_member, self._has_crew_preference)

    async def complete(self, task_id: str, skip_payroll: bool = False) -> Resolution:
        """Complete a task and notify the payroll outcome once committed."""
        self._task(task_id)
        resolution = await self._controller.complete_task(
            task_id, completed=True, skip_payroll=skip_payroll
        )
        if resolution.committed and resolution.payload is not None:
            level, message = completion_notification(resolution.payload, skip_payroll)
            self._controller.notify(level, message)
        return resolution

    async def reopen(self, task_id: str) -> Resolution:
        """Mark a completed task as pending again."""
        self._task(task_id)
        resolution = await self._controller.complete_task(task_id, completed=False)
        if resolution.committed:
            self._controller.notify(NotificationLevel.SUCCESS, "Task marked as pending")
        return resolution

    async def assign_crew(self, task_id: str, crew_member_id: str) -> Optional[CompletionAction]:
        """
        Assign a crew member, then decide again for the new assignment.

        Returns:
            The new CompletionAction, or None if the assignment did not commit
        """
        self._task(task_id)
        resolution = await self._controller.set_field(
            task_id, "assigned_crew_member_id", crew_member_id
        )
        if not resolution.committed:
            return None
        return await self.decide(task_id)

    async def run(self, task_id: str) -> Tuple[CompletionAction, Optional[Resolution]]:
        """
        Complete a task directly when no question needs asking.

        Returns:
            (action, resolution); resolution is None when the action needs the
            user (CONFIRM_FIXED_SALARY or ASSIGN_CREW_OR_SKIP)
        """
        action = await self.decide(task_id)
        if action == CompletionAction.COMPLETE_WITH_PAYROLL:
            return action, await self.complete(task_id)
        if action == CompletionAction.COMPLETE_WITHOUT_PAYROLL:
            return action, await self.complete(task_id, skip_payroll=True)
        return action, None
