"""
Scope filters for bulk listings.

Instead of evaluating every row of a listing, the data layer asks for the
identity's scope as a declarative filter and applies it in the query. The
filter is derived from the same rule table and allow-list policy as the
evaluator, so a row passes the filter iff a per-row read check would pass.

A filter is not a decision. Checks on a single, already-identified
resource must still go through evaluate().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from propauth.policies.rules import DEFAULT_RULE_SET, RuleSet
from propauth.policies.scope import HAS_RESOURCE_ACCESS, AllowListPolicy
from propauth.types import Action, coerce_kind

if TYPE_CHECKING:
    from propauth.types import Identity, ResourceKind, ResourceMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeFilter:
    """
    Constraints on a bulk query, one per scope dimension.

    None means the dimension is unrestricted. An empty set means nothing
    passes along that dimension.

    Attributes:
        region_in: Allowed region tags.
        property_type_in: Allowed property-type tags.
        resource_id_in: Allowed resource ids.

    Example:
        >>> f = ScopeFilter(region_in=frozenset({"south_florida"}))
        >>> f.to_query()
        {'region_id': {'in': ['south_florida']}}
    """

    region_in: frozenset[str] | None = None
    property_type_in: frozenset[str] | None = None
    resource_id_in: frozenset[str] | None = None

    @classmethod
    def unrestricted(cls) -> ScopeFilter:
        return cls()

    @classmethod
    def nothing(cls) -> ScopeFilter:
        """A filter that no row passes."""
        return cls(
            region_in=frozenset(),
            property_type_in=frozenset(),
            resource_id_in=frozenset(),
        )

    @property
    def is_unrestricted(self) -> bool:
        return (
            self.region_in is None
            and self.property_type_in is None
            and self.resource_id_in is None
        )

    def matches(self, metadata: ResourceMetadata | None, resource_id: str | None = None) -> bool:
        """
        Apply the filter to one row in memory.

        Missing tags fail a restricted dimension, the same way the scope
        predicates fail closed.
        """
        if self.region_in is not None:
            if metadata is None or metadata.region_tag not in self.region_in:
                return False
        if self.property_type_in is not None:
            if metadata is None or metadata.property_type_tag not in self.property_type_in:
                return False
        if self.resource_id_in is not None:
            if resource_id is None or resource_id not in self.resource_id_in:
                return False
        return True

    def to_query(self) -> dict[str, dict[str, list[str]]]:
        """
        Render as a data-layer filter mapping.

        Only restricted dimensions appear. Values are sorted for stable
        query text.
        """
        query: dict[str, dict[str, list[str]]] = {}
        if self.region_in is not None:
            query["region_id"] = {"in": sorted(self.region_in)}
        if self.property_type_in is not None:
            query["property_type"] = {"in": sorted(self.property_type_in)}
        if self.resource_id_in is not None:
            query["id"] = {"in": sorted(self.resource_id_in)}
        return query

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "region_in": sorted(self.region_in) if self.region_in is not None else None,
            "property_type_in": (
                sorted(self.property_type_in) if self.property_type_in is not None else None
            ),
            "resource_id_in": (
                sorted(self.resource_id_in) if self.resource_id_in is not None else None
            ),
        }


class FilterDeriver:
    """
    Turns an identity's scope into a ScopeFilter.

    Rules:
        - No rule lets the role read the kind: matches nothing.
        - Admin, universal access, or an unconditional read rule:
          unrestricted.
        - region_in is the identity's regions unless it holds ALL_REGIONS;
          the same for property_type_in and ALL_TYPES.
        - resource_id_in is the allow-list, applied only to kinds whose
          rules for the identity's role check has_resource_access. With an
          empty allow-list it is omitted under UNASSIGNED_IS_BROAD and empty
          under UNASSIGNED_IS_EMPTY.

    Example:
        >>> deriver = FilterDeriver()
        >>> deriver.derive_filter(broker, ResourceKind.BUILDING).to_query()
        {'region_id': {'in': ['central_florida', 'south_florida']},
         'property_type': {'in': ['office']},
         'id': {'in': ['B123', 'B456']}}
    """

    def __init__(
        self,
        rule_set: RuleSet | None = None,
        allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
    ) -> None:
        self.rule_set = rule_set if rule_set is not None else DEFAULT_RULE_SET
        self.allow_list_policy = AllowListPolicy(allow_list_policy)

    def derive_filter(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
    ) -> ScopeFilter:
        """
        Derive the bulk-query filter for an identity.

        Args:
            identity: The authenticated identity.
            resource_kind: Kind of resource being listed.

        Returns:
            The ScopeFilter to hand to the data layer.
        """
        if identity is None:
            return ScopeFilter.nothing()

        kind = coerce_kind(resource_kind)
        read_rules = [
            rule for rule in self.rule_set.rules_for(identity.role, resource_kind)
            if Action.READ in rule.actions
        ]
        if kind is None or not read_rules:
            logger.debug(
                f"No read rule for identity={identity.identity_id} "
                f"role={identity.role} kind={resource_kind}, filter matches nothing"
            )
            return ScopeFilter.nothing()

        if (
            identity.is_admin
            or identity.universal_access
            or any(rule.condition.is_unconditional for rule in read_rules)
        ):
            return ScopeFilter.unrestricted()

        region_in = None if identity.has_all_regions() else identity.regions
        property_type_in = (
            None if identity.has_all_property_types() else identity.property_types
        )

        resource_id_in = None
        allow_listed = self.rule_set.kinds_with_condition(identity.role, HAS_RESOURCE_ACCESS)
        if kind in allow_listed:
            if identity.assigned_resource_ids:
                resource_id_in = identity.assigned_resource_ids
            elif self.allow_list_policy is AllowListPolicy.UNASSIGNED_IS_EMPTY:
                resource_id_in = frozenset()

        scope_filter = ScopeFilter(
            region_in=region_in,
            property_type_in=property_type_in,
            resource_id_in=resource_id_in,
        )
        logger.debug(
            f"Derived filter for identity={identity.identity_id} "
            f"kind={resource_kind}: {scope_filter.to_dict()}"
        )
        return scope_filter
