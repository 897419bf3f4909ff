"""
External collaborators consumed by propauth.

The engine itself performs no I/O. Identities arrive from the session
layer as payloads, validated here with pydantic, and resource metadata
comes from a MetadataProvider that the access controller awaits before
evaluating.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from propauth.exceptions import IdentityError
from propauth.types import Identity, ResourceKind, ResourceMetadata, Role

logger = logging.getLogger(__name__)


@runtime_checkable
class MetadataProvider(Protocol):
    """
    Source of resource scope metadata.

    fetch_metadata() returns None when the resource does not exist and
    raises (preferably MetadataUnavailableError) when the lookup fails.
    The controller maps both, and timeouts, to a deny.
    """

    async def fetch_metadata(
        self,
        resource_kind: ResourceKind | str,
        resource_id: str | None,
    ) -> ResourceMetadata | None:
        ...


class InMemoryMetadataProvider:
    """
    Dictionary-backed metadata provider.

    Useful for testing and local development.

    Example:
        >>> provider = InMemoryMetadataProvider()
        >>> provider.add("building", "B123", ResourceMetadata("south_florida", "office"))
        >>> await provider.fetch_metadata("building", "B123")
        ResourceMetadata(region_tag='south_florida', property_type_tag='office')
    """

    def __init__(self) -> None:
        self._metadata: dict[tuple[str, str], ResourceMetadata] = {}
        self._lock = threading.Lock()
        self.fetch_count = 0

    @staticmethod
    def _key(resource_kind: ResourceKind | str, resource_id: str | None) -> tuple[str, str]:
        kind = resource_kind.value if isinstance(resource_kind, ResourceKind) else str(resource_kind)
        return kind, resource_id or ""

    def add(
        self,
        resource_kind: ResourceKind | str,
        resource_id: str,
        metadata: ResourceMetadata,
    ) -> None:
        with self._lock:
            self._metadata[self._key(resource_kind, resource_id)] = metadata

    def remove(self, resource_kind: ResourceKind | str, resource_id: str) -> None:
        with self._lock:
            self._metadata.pop(self._key(resource_kind, resource_id), None)

    def get(
        self,
        resource_kind: ResourceKind | str,
        resource_id: str | None,
    ) -> ResourceMetadata | None:
        """Synchronous lookup."""
        with self._lock:
            self.fetch_count += 1
            return self._metadata.get(self._key(resource_kind, resource_id))

    async def fetch_metadata(
        self,
        resource_kind: ResourceKind | str,
        resource_id: str | None,
    ) -> ResourceMetadata | None:
        return self.get(resource_kind, resource_id)


class IdentityRecord(BaseModel):
    """
    Identity payload as stored in the session.

    Accepts the session layer's camelCase field names as well as
    snake_case ones.

    Example:
        >>> record = IdentityRecord.model_validate({
        ...     "id": "u_42",
        ...     "email": "broker@example.com",
        ...     "role": "broker",
        ...     "regions": ["south_florida", "central_florida"],
        ...     "propertyTypes": ["office"],
        ...     "assignedBuildings": ["B123", "B456"],
        ...     "universalAccess": False,
        ... })
        >>> identity = record.to_identity()
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    email: str = ""
    role: Role | None = None
    regions: list[str] = Field(default_factory=list)
    property_types: list[str] = Field(default_factory=list, alias="propertyTypes")
    assigned_buildings: list[str] = Field(default_factory=list, alias="assignedBuildings")
    universal_access: bool = Field(default=False, alias="universalAccess")
    last_activity: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="lastActivity"
    )

    def to_identity(self) -> Identity:
        last_activity = self.last_activity
        if last_activity.tzinfo is None:
            last_activity = last_activity.replace(tzinfo=timezone.utc)
        return Identity(
            identity_id=self.id,
            role=self.role,
            label=self.email,
            regions=frozenset(self.regions),
            property_types=frozenset(self.property_types),
            assigned_resource_ids=frozenset(self.assigned_buildings),
            universal_access=self.universal_access,
            last_activity_at=last_activity,
        )


def load_identity(payload: dict[str, Any]) -> Identity:
    """
    Validate a session payload and build an Identity from it.

    Args:
        payload: The identity as stored by the session layer.

    Returns:
        The Identity.

    Raises:
        IdentityError: If the payload does not validate.
    """
    try:
        record = IdentityRecord.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Rejected identity payload: {e.error_count()} validation errors")
        raise IdentityError(
            "Invalid identity payload",
            errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e
    return record.to_identity()
