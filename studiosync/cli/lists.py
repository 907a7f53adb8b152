"""
List CLI commands.

Provides subcommands over a studio's ordered lists:
- groups list / reorder
- entities list / reorder / move / feature / publish
- tasks complete

Every change goes through the list controller: applied locally, persisted
through the studio server, then committed or rolled back.
"""

import asyncio
import sys
from typing import Awaitable, Callable, List, Optional, TypeVar

import click

from studiosync.config import ConfigError, SyncConfig
from studiosync.controller import Notification, NotificationLevel, OrderedListController
from studiosync.entities import OrderedEntity, Package, SchedulerTask
from studiosync.exceptions import TransientSyncError, ValidationError
from studiosync.gateway import (
    ApiError,
    AuthenticationError,
    ConnectionError as GatewayConnectionError,
    HttpSyncGateway,
)
from studiosync.logging_config import get_logger
from studiosync.reconciler import Resolution
from studiosync.scheduler import CompletionAction, TaskCompletionFlow


logger = get_logger("cli")

T = TypeVar("T")

_LEVEL_COLORS = {
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.INFO: "cyan",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}


# ============================================================================
# Helpers
# ============================================================================


def _error(message: str) -> None:
    click.echo(click.style("Error: ", fg="red", bold=True) + message)


def _load_config() -> SyncConfig:
    try:
        config = SyncConfig()
        config.validate()
        config.require_server()
    except ConfigError as e:
        _error(str(e))
        sys.exit(1)
    return config


def _echo_notification(notification: Notification) -> None:
    color = _LEVEL_COLORS.get(notification.level)
    click.echo(click.style(notification.message, fg=color))


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, mapping failures to exit codes (1 local, 2 remote, 3 conflict)."""
    try:
        return asyncio.run(coro)
    except ValidationError as e:
        _error(e.message)
        sys.exit(1)
    except GatewayConnectionError as e:
        _error(f"Connection failed: {e}")
        sys.exit(2)
    except AuthenticationError as e:
        _error(f"Authentication failed: {e}")
        sys.exit(2)
    except ApiError as e:
        _error(str(e))
        if e.status_code == 409:
            sys.exit(3)
        sys.exit(2)
    except TransientSyncError as e:
        _error(str(e))
        sys.exit(2)


def _gateway(config: SyncConfig) -> HttpSyncGateway:
    return HttpSyncGateway(
        server_url=config.server_url,
        studio_slug=config.studio_slug,
        api_key=config.api_key or None,
        timeout=config.timeout_seconds,
    )


async def _with_controller(
    config: SyncConfig,
    group_ids: List[Optional[str]],
    action: Callable[[OrderedListController], Awaitable[T]],
) -> T:
    async with _gateway(config) as gateway:
        controller = OrderedListController(
            gateway,
            busy_policy=config.busy_policy,
            notifier=_echo_notification,
        )
        await controller.load(group_ids)
        return await action(controller)


def _finish(resolution: Resolution, success_message: str) -> None:
    """Report a resolution; rollbacks were already notified."""
    if resolution.committed:
        click.echo(click.style(success_message, fg="green"))
        return
    if resolution.rolled_back:
        sys.exit(2)


def _describe(entity: OrderedEntity) -> str:
    name = getattr(entity, "name", "")
    flags = []
    if isinstance(entity, Package):
        if entity.is_featured:
            flags.append("featured")
        flags.append(entity.status.value)
    elif isinstance(entity, SchedulerTask):
        flags.append(entity.status.value)
        if entity.parent_id:
            flags.append(f"subtask of {entity.parent_id}")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"{entity.order:>3}  {entity.id}  {name}{suffix}"


group_option = click.option(
    "--group",
    "-g",
    "group_id",
    default=None,
    help="Group id (event type, stage); omit for top-level records.",
)


# ============================================================================
# groups
# ============================================================================


@click.group("groups")
def groups() -> None:
    """List and reorder groups (event types)."""
    pass


@groups.command("list")
def list_groups() -> None:
    """List groups in display order."""
    config = _load_config()

    async def fetch():
        async with _gateway(config) as gateway:
            return await gateway.list_groups()

    result = _run(fetch())
    if not result:
        click.echo("No groups found.")
        return
    for group in sorted(result, key=lambda g: g.order):
        click.echo(f"{group.order:>3}  {group.id}")


@groups.command("reorder")
@click.argument("group_id")
@click.argument("index", type=click.IntRange(min=0))
def reorder_groups(group_id: str, index: int) -> None:
    """
    Move GROUP_ID to position INDEX among the groups.

    Example:

        studio-sync groups reorder evt_boda 0
    """
    config = _load_config()
    resolution = _run(
        _with_controller(
            config, [None], lambda c: c.reorder_groups(group_id, index)
        )
    )
    _finish(resolution, f"Moved group {group_id} to position {index}")


# ============================================================================
# entities
# ============================================================================


@click.group("entities")
def entities() -> None:
    """List, reorder, move, feature and publish records."""
    pass


@entities.command("list")
@group_option
def list_entities(group_id: Optional[str]) -> None:
    """List the records of a group in display order."""
    config = _load_config()

    async def fetch():
        async with _gateway(config) as gateway:
            return await gateway.list_group(group_id)

    result = _run(fetch())
    if not result:
        click.echo("No records found.")
        return
    for entity in sorted(result, key=lambda e: e.order):
        click.echo(_describe(entity))


@entities.command("reorder")
@click.argument("entity_id")
@click.argument("index", type=click.IntRange(min=0))
@group_option
def reorder_entity(entity_id: str, index: int, group_id: Optional[str]) -> None:
    """
    Move ENTITY_ID to position INDEX within its group.

    Example:

        studio-sync entities reorder pkg_3 0 --group evt_boda
    """
    config = _load_config()
    resolution = _run(
        _with_controller(config, [group_id], lambda c: c.reorder(entity_id, index))
    )
    _finish(resolution, f"Moved {entity_id} to position {index}")


@entities.command("move")
@click.argument("entity_id")
@click.option("--from", "from_group_id", default=None, help="Current group; omit for top level.")
@click.option("--to", "to_group_id", required=True, help="Destination group.")
@click.option("--index", type=click.IntRange(min=0), default=0, show_default=True)
def move_entity(
    entity_id: str,
    from_group_id: Optional[str],
    to_group_id: str,
    index: int,
) -> None:
    """
    Move ENTITY_ID into another group.

    Example:

        studio-sync entities move pkg_1 --from evt_boda --to evt_xv --index 0
    """
    config = _load_config()
    resolution = _run(
        _with_controller(
            config,
            [from_group_id, to_group_id],
            lambda c: c.move(entity_id, to_group_id, index),
        )
    )
    _finish(resolution, f"Moved {entity_id} to {to_group_id} at position {index}")


@entities.command("feature")
@click.argument("package_id")
@group_option
@click.option("--off", is_flag=True, default=False, help="Remove the featured flag.")
def feature_package(package_id: str, group_id: Optional[str], off: bool) -> None:
    """
    Feature PACKAGE_ID within its event type.

    Featuring an unpublished package also publishes it.
    """
    config = _load_config()
    resolution = _run(
        _with_controller(config, [group_id], lambda c: c.feature(package_id, not off))
    )
    _finish(resolution, f"{'Unfeatured' if off else 'Featured'} {package_id}")


@entities.command("publish")
@click.argument("package_id")
@group_option
@click.option("--off", is_flag=True, default=False, help="Unpublish instead.")
def publish_package(package_id: str, group_id: Optional[str], off: bool) -> None:
    """
    Publish PACKAGE_ID.

    Unpublishing a featured package also removes its featured flag.
    """
    config = _load_config()
    resolution = _run(
        _with_controller(config, [group_id], lambda c: c.publish(package_id, not off))
    )
    _finish(resolution, f"{'Unpublished' if off else 'Published'} {package_id}")


@entities.command("duplicate")
@click.argument("package_id")
@group_option
def duplicate_package(package_id: str, group_id: Optional[str]) -> None:
    """
    Duplicate PACKAGE_ID at the end of its event type.

    The copy is created unpublished and not featured.
    """
    config = _load_config()
    resolution = _run(
        _with_controller(config, [group_id], lambda c: c.duplicate(package_id))
    )
    copy_id = resolution.payload.id if resolution.committed else None
    _finish(resolution, f"Duplicated {package_id} as {copy_id}")


# ============================================================================
# tasks
# ============================================================================


@click.group("tasks")
def tasks() -> None:
    """Complete or reopen scheduler tasks."""
    pass


async def _complete_task(
    controller: OrderedListController,
    task_id: str,
    crew_member_id: Optional[str],
    has_crew_preference: Optional[bool],
    skip_payroll: bool,
) -> Optional[Resolution]:
    flow = TaskCompletionFlow(controller, has_crew_preference=has_crew_preference)

    if skip_payroll:
        return await flow.complete(task_id, skip_payroll=True)

    action = await flow.decide(task_id)
    if action == CompletionAction.ASSIGN_CREW_OR_SKIP and crew_member_id:
        action = await flow.assign_crew(task_id, crew_member_id)
        if action is None:
            return None

    if action == CompletionAction.CONFIRM_FIXED_SALARY:
        pay = click.confirm(
            "The assigned crew member has a fixed salary. Create a payroll entry anyway?",
            default=False,
        )
        return await flow.complete(task_id, skip_payroll=not pay)
    if action == CompletionAction.ASSIGN_CREW_OR_SKIP:
        click.confirm(
            "No crew member is assigned. Complete without a payroll entry?",
            abort=True,
        )
        return await flow.complete(task_id, skip_payroll=True)
    if action == CompletionAction.COMPLETE_WITHOUT_PAYROLL:
        return await flow.complete(task_id, skip_payroll=True)
    return await flow.complete(task_id)


@tasks.command("complete")
@click.argument("task_id")
@group_option
@click.option("--crew", "crew_member_id", default=None, help="Assign this crew member first.")
@click.option("--skip-payroll", is_flag=True, default=False, help="Do not create a payroll entry.")
@click.option(
    "--crew-preference/--no-crew-preference",
    default=None,
    help="Whether the event is staffed with crew.",
)
@click.option("--reopen", is_flag=True, default=False, help="Mark the task as pending again.")
def complete_task(
    task_id: str,
    group_id: Optional[str],
    crew_member_id: Optional[str],
    skip_payroll: bool,
    crew_preference: Optional[bool],
    reopen: bool,
) -> None:
    """
    Complete TASK_ID, creating a payroll entry for its crew member.

    Example:

        studio-sync tasks complete task_12 --group PRODUCTION
    """
    config = _load_config()

    if reopen:
        resolution = _run(
            _with_controller(
                config,
                [group_id],
                lambda c: TaskCompletionFlow(c).reopen(task_id),
            )
        )
        if resolution.rolled_back:
            sys.exit(2)
        return

    resolution = _run(
        _with_controller(
            config,
            [group_id],
            lambda c: _complete_task(c, task_id, crew_member_id, crew_preference, skip_payroll),
        )
    )
    if resolution is None or resolution.rolled_back:
        sys.exit(2)
