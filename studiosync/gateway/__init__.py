"""
Sync gateways persisting list mutations to the studio's source of truth.

This package provides a unified interface through the SyncGateway abstract
base class. The reconciler only ever talks to that interface.

Gateways:
- HttpSyncGateway: Studio server over HTTP (httpx)
- InMemorySyncGateway: Authoritative in-process store (tests, demos)

Usage:
    >>> from studiosync.gateway import HttpSyncGateway
    >>> async with HttpSyncGateway("https://estudio.example.com", "mi-estudio") as gateway:
    ...     entities = await gateway.list_group("evt_boda")
"""

from studiosync.gateway.base import SyncGateway
from studiosync.gateway.http_gateway import (
    ApiError,
    AuthenticationError,
    ConnectionError,
    HttpSyncGateway,
)
from studiosync.gateway.memory_gateway import InMemorySyncGateway

__all__ = [
    "SyncGateway",
    "HttpSyncGateway",
    "InMemorySyncGateway",
    "ApiError",
    "AuthenticationError",
    "ConnectionError",
]
