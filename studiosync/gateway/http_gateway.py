"""
HTTP sync gateway for the studio server.

Persists list mutations through the studio API and validates the
authoritative records it returns. Handles authentication, timeouts and
status-code mapping; every failure surfaces as a TransientSyncError subclass
so the reconciler can roll back.
"""

from typing import Any, List, Optional
from urllib.parse import quote

import httpx
import pydantic
from pydantic_core import to_jsonable_python

from studiosync import __version__
from studiosync.entities import (
    CrewMember,
    Group,
    OrderedEntity,
    TaskCompletion,
    parse_entities,
    parse_entity,
)
from studiosync.exceptions import TransientSyncError
from studiosync.gateway.base import SyncGateway
from studiosync.logging_config import get_logger

logger = get_logger("gateway")


# ============================================================================
# Constants
# ============================================================================

API_VERSION = "v1"
DEFAULT_TIMEOUT = 30.0  # seconds
USER_AGENT = f"StudioSync/{__version__}"
ROOT_GROUP_SEGMENT = "_root"


# ============================================================================
# Exceptions
# ============================================================================


class ApiError(TransientSyncError):
    """Base exception for studio API errors."""

    pass


class ConnectionError(ApiError):
    """Raised when connection to server fails."""

    pass


class AuthenticationError(ApiError):
    """Raised when authentication fails (invalid API key)."""

    pass


# ============================================================================
# HttpSyncGateway Class
# ============================================================================


class HttpSyncGateway(SyncGateway):
    """
    HTTP client for the studio list API.

    Attributes:
        server_url: Base URL of the studio server
        studio_slug: Tenant slug the lists belong to
    """

    def __init__(
        self,
        server_url: str,
        studio_slug: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the gateway.

        Args:
            server_url: Base URL of the studio server
            studio_slug: Tenant slug
            api_key: Optional API key for authenticated requests
            timeout: Request timeout in seconds

        Raises:
            ValueError: If server_url or studio_slug is empty
        """
        if not server_url:
            raise ValueError("server_url is required")
        if not studio_slug:
            raise ValueError("studio_slug is required")

        self._server_url = server_url.rstrip("/")
        self._studio_slug = studio_slug
        self._base_path = f"/api/studio/{quote(studio_slug, safe='')}/{API_VERSION}"

        headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=self._server_url,
            headers=headers,
            timeout=timeout,
        )

    @property
    def server_url(self) -> str:
        """Get the server URL."""
        return self._server_url

    @property
    def studio_slug(self) -> str:
        """Get the studio slug."""
        return self._studio_slug

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _group_path(self, group_id: Optional[str]) -> str:
        segment = ROOT_GROUP_SEGMENT if group_id is None else quote(group_id, safe="")
        return f"{self._base_path}/groups/{segment}"

    def _entity_path(self, entity_id: str) -> str:
        return f"{self._base_path}/entities/{quote(entity_id, safe='')}"

    async def _send(self, method: str, path: str, payload: Optional[dict] = None) -> httpx.Response:
        """Issue a request, mapping transport failures to ConnectionError."""
        try:
            if payload is None:
                return await self._client.request(method, path)
            return await self._client.request(method, path, json=payload)
        except httpx.ConnectError as e:
            raise ConnectionError(f"Failed to connect to server: {e}")
        except httpx.TimeoutException as e:
            raise ConnectionError(f"Connection timed out: {e}")

    @staticmethod
    def _detail(response: httpx.Response, default: str) -> str:
        try:
            return response.json().get("detail", default)
        except (ValueError, AttributeError):
            return default

    def _raise_for_status(self, response: httpx.Response, action: str, not_found: str) -> None:
        """Raise the ApiError matching a non-200 response."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid API key", status_code=401)
        elif response.status_code == 403:
            raise AuthenticationError(
                self._detail(response, "Not allowed for this studio"), status_code=403
            )
        elif response.status_code == 404:
            raise ApiError(self._detail(response, not_found), status_code=404)
        elif response.status_code in (400, 409, 422):
            raise ApiError(
                self._detail(response, f"{action} rejected"),
                status_code=response.status_code,
            )
        else:
            raise ApiError(
                f"{action} failed with status {response.status_code}",
                status_code=response.status_code,
            )

    @staticmethod
    def _parse(parser, data: Any, action: str):
        try:
            return parser(data)
        except (pydantic.ValidationError, KeyError, TypeError) as e:
            logger.error(f"Invalid {action} response from server: {e}")
            raise ApiError(f"Invalid response from server for {action}")

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def reorder(self, group_id: Optional[str], ordered_ids: List[str]) -> List[OrderedEntity]:
        """
        Persist the display order of a group.

        Raises:
            ApiError: If the server rejects the order
            ConnectionError: If connection to server fails
        """
        response = await self._send(
            "PUT",
            f"{self._group_path(group_id)}/order",
            {"ordered_ids": list(ordered_ids)},
        )
        if response.status_code == 200:
            return self._parse(
                lambda d: parse_entities(d["entities"]), response.json(), "reorder"
            )
        self._raise_for_status(response, "Reorder", "Group not found")

    async def move_to_group(
        self,
        entity_id: str,
        new_group_id: Optional[str],
        new_index: int,
    ) -> OrderedEntity:
        """
        Move an entity into another group.

        Raises:
            ApiError: If the server rejects the move
            ConnectionError: If connection to server fails
        """
        response = await self._send(
            "POST",
            f"{self._entity_path(entity_id)}/move",
            {"group_id": new_group_id, "index": new_index},
        )
        if response.status_code == 200:
            return self._parse(parse_entity, response.json(), "move")
        self._raise_for_status(response, "Move", "Entity or group not found")

    async def set_field(self, entity_id: str, field_name: str, value: Any) -> OrderedEntity:
        """
        Persist one field change.

        Raises:
            ApiError: If the server rejects the value
            ConnectionError: If connection to server fails
        """
        response = await self._send(
            "PATCH",
            self._entity_path(entity_id),
            {field_name: to_jsonable_python(value)},
        )
        if response.status_code == 200:
            return self._parse(parse_entity, response.json(), "update")
        self._raise_for_status(response, "Update", "Entity not found")

    async def reorder_groups(self, ordered_group_ids: List[str]) -> List[Group]:
        """
        Persist the order of the groups.

        Raises:
            ApiError: If the server rejects the order
            ConnectionError: If connection to server fails
        """
        response = await self._send(
            "PUT",
            f"{self._base_path}/groups/order",
            {"ordered_ids": list(ordered_group_ids)},
        )
        if response.status_code == 200:
            return self._parse(
                lambda d: [Group.model_validate(g) for g in d["groups"]],
                response.json(),
                "group reorder",
            )
        self._raise_for_status(response, "Group reorder", "Group not found")

    async def complete_task(
        self,
        task_id: str,
        completed: bool = True,
        skip_payroll: bool = False,
    ) -> TaskCompletion:
        """
        Complete or reopen a scheduler task.

        Raises:
            ApiError: If the server rejects the change
            ConnectionError: If connection to server fails
        """
        response = await self._send(
            "POST",
            f"{self._base_path}/tasks/{quote(task_id, safe='')}/completion",
            {"completed": completed, "skip_payroll": skip_payroll},
        )
        if response.status_code == 200:
            return self._parse(TaskCompletion.model_validate, response.json(), "completion")
        self._raise_for_status(response, "Task completion", "Task not found")

    async def duplicate(self, entity_id: str) -> OrderedEntity:
        """
        Create a copy of an entity at the end of its group.

        Raises:
            ApiError: If the server refuses the copy
            ConnectionError: If connection to server fails
        """
        response = await self._send("POST", f"{self._entity_path(entity_id)}/duplicate")
        if response.status_code in (200, 201):
            return self._parse(parse_entity, response.json(), "duplicate")
        self._raise_for_status(response, "Duplicate", "Entity not found")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_group(self, group_id: Optional[str]) -> List[OrderedEntity]:
        """Authoritative members of a group."""
        response = await self._send("GET", f"{self._group_path(group_id)}/entities")
        if response.status_code == 200:
            return self._parse(
                lambda d: parse_entities(d["entities"]), response.json(), "list"
            )
        self._raise_for_status(response, "List", "Group not found")

    async def list_groups(self) -> List[Group]:
        """Authoritative group registry."""
        response = await self._send("GET", f"{self._base_path}/groups")
        if response.status_code == 200:
            return self._parse(
                lambda d: [Group.model_validate(g) for g in d["groups"]],
                response.json(),
                "group list",
            )
        self._raise_for_status(response, "Group list", "Studio not found")

    async def get_crew_member(self, crew_member_id: str) -> Optional[CrewMember]:
        """Crew member by id, or None when the server does not know it."""
        response = await self._send(
            "GET", f"{self._base_path}/crew/{quote(crew_member_id, safe='')}"
        )
        if response.status_code == 200:
            return self._parse(CrewMember.model_validate, response.json(), "crew member")
        elif response.status_code == 404:
            return None
        self._raise_for_status(response, "Crew lookup", "Crew member not found")

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
