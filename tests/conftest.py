"""
Pytest configuration and fixtures for studio-sync tests.

This module provides shared fixtures: sample studio records (event types,
packages, scheduler tasks, crew), loaded stores, an in-memory gateway and a
controller wired to it, plus temporary configuration files.
"""

import tempfile
from pathlib import Path
from typing import Generator, List

import pytest
import yaml

from studiosync.controller import Notification, OrderedListController
from studiosync.entities import (
    CrewMember,
    EventType,
    OrderedEntity,
    Package,
    PackageStatus,
    SchedulerTask,
)
from studiosync.gateway import InMemorySyncGateway
from studiosync.store import EntityStore


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for configuration files.

    Yields:
        Path to temporary configuration directory
    """
    with tempfile.TemporaryDirectory(prefix="studiosync_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sync_config_data() -> dict:
    """Sample configuration file contents."""
    return {
        "server_url": "http://localhost:8000",
        "api_key": "sk_test_1234567890abcdef",
        "studio_slug": "mi-estudio",
        "timeout_seconds": 15,
        "busy_policy": "supersede",
        "log_level": "DEBUG",
    }


@pytest.fixture
def sync_config_file(temp_config_dir: Path, sync_config_data: dict) -> Path:
    """
    Write the sample configuration to a temporary studio-sync.yaml.

    Returns:
        Path to the configuration file
    """
    config_path = temp_config_dir / "studio-sync.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sync_config_data, f)
    return config_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep STUDIOSYNC_* variables from the developer's shell out of tests."""
    for name in (
        "STUDIOSYNC_SERVER_URL",
        "STUDIOSYNC_API_KEY",
        "STUDIOSYNC_STUDIO_SLUG",
        "STUDIOSYNC_LOG_LEVEL",
        "STUDIOSYNC_CONFIG_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Mock Server Fixtures
# ============================================================================


@pytest.fixture
def mock_server_url() -> str:
    return "http://localhost:8000"


@pytest.fixture
def mock_api_key() -> str:
    return "sk_test_1234567890abcdef1234567890abcdef"


@pytest.fixture
def mock_studio_slug() -> str:
    return "mi-estudio"


# ============================================================================
# Record Fixtures
# ============================================================================


@pytest.fixture
def event_types() -> List[EventType]:
    """Two event types; packages are grouped under them."""
    return [
        EventType(id="evt_boda", name="Boda", order=0),
        EventType(id="evt_xv", name="XV Años", order=1),
    ]


@pytest.fixture
def packages() -> List[Package]:
    """
    Packages for "Boda" (p1 featured, p3 unpublished) and one for "XV Años".
    """
    return [
        Package(id="p1", group_id="evt_boda", order=0, name="Esencial", is_featured=True, price=12000),
        Package(id="p2", group_id="evt_boda", order=1, name="Clásico", price=18000),
        Package(
            id="p3",
            group_id="evt_boda",
            order=2,
            name="Premium",
            status=PackageStatus.INACTIVE,
            price=25000,
        ),
        Package(id="p4", group_id="evt_xv", order=0, name="XV Básico", price=9000),
    ]


@pytest.fixture
def tasks() -> List[SchedulerTask]:
    """
    Scheduler tasks in two stages.

    PLANNING: t1 (manual, crew c1) with subtasks t1a/t1b, t2 (quote-linked, no crew)
    PRODUCTION: t3 (manual, crew c2 with fixed salary)
    """
    return [
        SchedulerTask(
            id="t1", group_id="PLANNING", order=0, name="Visita de locación",
            is_manual=True, assigned_crew_member_id="c1", cost=800,
        ),
        SchedulerTask(id="t1a", group_id="PLANNING", order=1, name="Fotos de referencia", is_manual=True, parent_id="t1"),
        SchedulerTask(id="t1b", group_id="PLANNING", order=2, name="Plano de luces", is_manual=True, parent_id="t1"),
        SchedulerTask(id="t2", group_id="PLANNING", order=3, name="Sesión preboda", cost=500, quantity=2),
        SchedulerTask(
            id="t3", group_id="PRODUCTION", order=0, name="Cobertura",
            is_manual=True, assigned_crew_member_id="c2", cost=3000,
        ),
    ]


@pytest.fixture
def crew() -> List[CrewMember]:
    return [
        CrewMember(id="c1", name="Ana López"),
        CrewMember(id="c2", name="Luis Pérez", fixed_salary=15000),
    ]


@pytest.fixture
def studio_records(event_types, packages, tasks) -> List[OrderedEntity]:
    return [*event_types, *packages, *tasks]


@pytest.fixture
def store(studio_records) -> EntityStore:
    """Entity store loaded with every sample record."""
    entity_store = EntityStore()
    entity_store.load(studio_records)
    return entity_store


@pytest.fixture
def memory_gateway(studio_records, crew) -> InMemorySyncGateway:
    """In-memory gateway holding the same records as ``store``."""
    return InMemorySyncGateway(entities=studio_records, crew=crew)


@pytest.fixture
def notifications() -> List[Notification]:
    return []


@pytest.fixture
def controller(memory_gateway, store, notifications) -> OrderedListController:
    """Controller over ``store`` persisting through ``memory_gateway``."""
    return OrderedListController(
        memory_gateway,
        store=store,
        notifier=notifications.append,
    )

