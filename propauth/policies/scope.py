"""
Scope predicates for propauth.

Each predicate answers one scoping question about an identity and a
resource: is the resource in one of the identity's regions, of one of its
property types, and (for the compound check) on its explicit allow-list.
All predicates are pure functions with the same signature so that rules can
refer to them by name:

    predicate(identity, resource_id, metadata, allow_list_policy) -> bool

Missing metadata always fails closed.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType

from propauth.types import Identity, ResourceMetadata, Role

HAS_REGION_ACCESS = "has_region_access"
HAS_PROPERTY_TYPE_ACCESS = "has_property_type_access"
HAS_RESOURCE_ACCESS = "has_resource_access"


class AllowListPolicy(str, Enum):
    """
    What an empty resource allow-list means.

    UNASSIGNED_IS_BROAD is the inherited behaviour: an identity with no
    assigned resources is scoped by region and property type alone.
    UNASSIGNED_IS_EMPTY is the strict reading: no assignments means no
    access to any specific resource id.

    The evaluator and the filter deriver must be configured with the same
    value, otherwise bulk listings and single-resource checks disagree.
    """

    UNASSIGNED_IS_BROAD = "unassigned_is_broad"
    UNASSIGNED_IS_EMPTY = "unassigned_is_empty"


ScopePredicate = Callable[
    [Identity, "str | None", "ResourceMetadata | None", AllowListPolicy], bool
]


def has_region_access(
    identity: Identity,
    resource_id: str | None,
    metadata: ResourceMetadata | None,
    allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
) -> bool:
    """Check the region dimension."""
    if identity.has_all_regions():
        return True
    if metadata is None or not metadata.region_tag:
        return False
    return metadata.region_tag in identity.regions


def has_property_type_access(
    identity: Identity,
    resource_id: str | None,
    metadata: ResourceMetadata | None,
    allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
) -> bool:
    """Check the property-type dimension."""
    if identity.has_all_property_types():
        return True
    if metadata is None or not metadata.property_type_tag:
        return False
    return metadata.property_type_tag in identity.property_types


def allow_list_permits(
    identity: Identity,
    resource_id: str | None,
    allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
) -> bool:
    """
    Check the explicit allow-list dimension on its own.

    The check only applies when a resource id is supplied. An empty
    allow-list is resolved by allow_list_policy.
    """
    if not resource_id:
        return True
    if identity.assigned_resource_ids:
        return resource_id in identity.assigned_resource_ids
    return allow_list_policy is AllowListPolicy.UNASSIGNED_IS_BROAD


def has_resource_access(
    identity: Identity,
    resource_id: str | None,
    metadata: ResourceMetadata | None,
    allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
) -> bool:
    """
    Check all three scope dimensions at once.

    Admins and universal-access identities pass unconditionally. Everyone
    else needs region and property-type access, and, when a resource id is
    given, must also pass the allow-list.

    Args:
        identity: The identity being checked.
        resource_id: The specific resource, if the request names one.
        metadata: Scope tags of the resource.
        allow_list_policy: How to treat an empty allow-list.

    Returns:
        True if the identity's scope covers the resource.
    """
    if identity.role is Role.ADMIN or identity.universal_access:
        return True

    if not has_region_access(identity, resource_id, metadata, allow_list_policy):
        return False
    if not has_property_type_access(identity, resource_id, metadata, allow_list_policy):
        return False

    return allow_list_permits(identity, resource_id, allow_list_policy)


SCOPE_PREDICATES: Mapping[str, ScopePredicate] = MappingProxyType({
    HAS_REGION_ACCESS: has_region_access,
    HAS_PROPERTY_TYPE_ACCESS: has_property_type_access,
    HAS_RESOURCE_ACCESS: has_resource_access,
})
