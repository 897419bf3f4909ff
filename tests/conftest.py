"""
Pytest fixtures for propauth tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Generator

import pytest

from propauth import (
    ALL_REGIONS,
    ALL_TYPES,
    AccessController,
    AuditConfig,
    AuditSink,
    CallbackEscalationTransport,
    CacheConfig,
    DecisionCache,
    EngineConfig,
    Identity,
    InMemoryAuditStore,
    InMemoryMetadataProvider,
    ResourceKind,
    ResourceMetadata,
    Role,
)
from propauth.exceptions import MetadataUnavailableError


class FakeClock:
    """Manually advanced clock for cache tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FailingMetadataProvider:
    """Provider whose lookups always fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.fetch_count = 0

    async def fetch_metadata(self, resource_kind, resource_id):
        self.fetch_count += 1
        raise self.error or MetadataUnavailableError(str(resource_kind), resource_id, "db down")


class SlowMetadataProvider:
    """Provider that takes longer than any sensible timeout."""

    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay

    async def fetch_metadata(self, resource_kind, resource_id):
        await asyncio.sleep(self.delay)
        return ResourceMetadata("south_florida", "office")


# ============================================================================
# Identity Fixtures
# ============================================================================


@pytest.fixture
def admin() -> Identity:
    """An administrator with no scope of their own."""
    return Identity(identity_id="admin_1", role=Role.ADMIN, label="admin@example.com")


@pytest.fixture
def researcher() -> Identity:
    """A researcher scoped to south Florida offices."""
    return Identity(
        identity_id="researcher_1",
        role=Role.RESEARCHER,
        label="researcher@example.com",
        regions={"south_florida"},
        property_types={"office"},
    )


@pytest.fixture
def broker() -> Identity:
    """A broker with two regions, one property type and two assigned buildings."""
    return Identity(
        identity_id="broker_1",
        role=Role.BROKER,
        label="broker@example.com",
        regions={"south_florida", "central_florida"},
        property_types={"office"},
        assigned_resource_ids={"B123", "B456"},
    )


@pytest.fixture
def unassigned_broker() -> Identity:
    """A broker with scope but no assigned buildings."""
    return Identity(
        identity_id="broker_2",
        role=Role.BROKER,
        label="broker2@example.com",
        regions={"south_florida"},
        property_types={"office"},
    )


@pytest.fixture
def viewer() -> Identity:
    """A viewer scoped to south Florida retail."""
    return Identity(
        identity_id="viewer_1",
        role=Role.VIEWER,
        label="viewer@example.com",
        regions={"south_florida"},
        property_types={"retail"},
    )


@pytest.fixture
def universal_viewer() -> Identity:
    """A viewer holding universal access."""
    return Identity(
        identity_id="viewer_2",
        role=Role.VIEWER,
        label="viewer2@example.com",
        universal_access=True,
    )


@pytest.fixture
def wildcard_viewer() -> Identity:
    """A viewer holding both wildcard tags."""
    return Identity(
        identity_id="viewer_3",
        role=Role.VIEWER,
        regions={ALL_REGIONS},
        property_types={ALL_TYPES},
    )


@pytest.fixture
def roleless() -> Identity:
    """An identity without a role."""
    return Identity(
        identity_id="nobody_1",
        role=None,
        regions={"south_florida"},
        property_types={"office"},
    )


# ============================================================================
# Metadata Fixtures
# ============================================================================


@pytest.fixture
def south_office() -> ResourceMetadata:
    return ResourceMetadata(region_tag="south_florida", property_type_tag="office")


@pytest.fixture
def north_office() -> ResourceMetadata:
    return ResourceMetadata(region_tag="north_florida", property_type_tag="office")


@pytest.fixture
def south_retail() -> ResourceMetadata:
    return ResourceMetadata(region_tag="south_florida", property_type_tag="retail")


@pytest.fixture
def provider(south_office, north_office, south_retail) -> InMemoryMetadataProvider:
    """Metadata provider with a handful of buildings and suites."""
    provider = InMemoryMetadataProvider()
    provider.add(ResourceKind.BUILDING, "B123", south_office)
    provider.add(ResourceKind.BUILDING, "B456", south_office)
    provider.add(ResourceKind.BUILDING, "B789", south_office)
    provider.add(ResourceKind.BUILDING, "N001", north_office)
    provider.add(ResourceKind.BUILDING, "R001", south_retail)
    provider.add(ResourceKind.SUITE, "S100", south_office)
    return provider


@pytest.fixture
def failing_provider() -> FailingMetadataProvider:
    return FailingMetadataProvider()


@pytest.fixture
def slow_provider() -> SlowMetadataProvider:
    return SlowMetadataProvider()


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> DecisionCache:
    """Decision cache driven by the fake clock."""
    return DecisionCache(CacheConfig(ttl_seconds=300), clock=clock)


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def escalations() -> list:
    """Records passed to the escalation transport."""
    return []


@pytest.fixture
def audit_sink(audit_store, escalations) -> Generator[AuditSink, None, None]:
    """Synchronous audit sink recording into memory."""
    sink = AuditSink(
        store=audit_store,
        escalation=CallbackEscalationTransport(escalations.append),
        config=AuditConfig(synchronous=True),
    )
    yield sink
    sink.close()


@pytest.fixture
def controller(cache, audit_sink, provider) -> Generator[AccessController, None, None]:
    """Access controller wired to the fake-clock cache and in-memory audit."""
    ctrl = AccessController(
        cache=cache,
        audit_sink=audit_sink,
        config=EngineConfig(metadata_timeout_seconds=0.2),
        provider=provider,
    )
    yield ctrl
    ctrl.close()


@pytest.fixture
def temp_audit_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "denials.jsonl"
