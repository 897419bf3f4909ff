"""
Rule conditions for propauth.

A rule is either unconditional or gated by one or more named scope
predicates. Conditions are plain data (a tag plus predicate names) rather
than function references, so rule tables can be serialized, compared and
inspected in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from propauth.policies.scope import SCOPE_PREDICATES, AllowListPolicy

if TYPE_CHECKING:
    from propauth.types import AccessRequest

logger = logging.getLogger(__name__)


class ConditionKind(Enum):
    """Variants of a rule condition."""

    UNCONDITIONAL = "unconditional"
    NAMED = "named"


@dataclass(frozen=True)
class Condition:
    """
    A tagged predicate guarding a rule.

    A NAMED condition passes when every named predicate passes.

    Example:
        >>> Condition.unconditional()
        >>> Condition.named("has_resource_access")
        >>> Condition.named("has_region_access", "has_property_type_access")
    """

    kind: ConditionKind = ConditionKind.UNCONDITIONAL
    names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.kind is ConditionKind.NAMED and not self.names:
            raise ValueError("A named condition needs at least one predicate name")
        if self.kind is ConditionKind.UNCONDITIONAL and self.names:
            raise ValueError("An unconditional condition takes no predicate names")

    @classmethod
    def unconditional(cls) -> Condition:
        return cls()

    @classmethod
    def named(cls, *names: str) -> Condition:
        return cls(kind=ConditionKind.NAMED, names=tuple(names))

    @property
    def is_unconditional(self) -> bool:
        return self.kind is ConditionKind.UNCONDITIONAL

    def unknown_names(self) -> list[str]:
        """Names that do not resolve to a known predicate."""
        return [name for name in self.names if name not in SCOPE_PREDICATES]

    def evaluate(
        self,
        request: AccessRequest,
        allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
    ) -> bool:
        """
        Evaluate the condition against an access request.

        Unknown predicate names and predicates that raise both count as a
        failed condition.

        Args:
            request: The access attempt being decided.
            allow_list_policy: How to treat an empty allow-list.

        Returns:
            True if the rule guarded by this condition may apply.
        """
        if self.is_unconditional:
            return True

        identity = request.identity
        if identity is None:
            return False

        for name in self.names:
            predicate = SCOPE_PREDICATES.get(name)
            if predicate is None:
                logger.warning(f"Unknown condition '{name}', treating as failed")
                return False
            try:
                passed = predicate(
                    identity, request.resource_id, request.metadata, allow_list_policy
                )
            except Exception:
                logger.exception(f"Condition '{name}' raised, treating as failed")
                return False
            if not passed:
                return False

        return True

    def to_value(self) -> list[str] | None:
        """Serialize: None for unconditional, else the predicate names."""
        return None if self.is_unconditional else list(self.names)

    @classmethod
    def from_value(cls, value: str | list[str] | tuple[str, ...] | None) -> Condition:
        """Inverse of to_value(); a bare string names a single predicate."""
        if not value:
            return cls.unconditional()
        if isinstance(value, str):
            return cls.named(value)
        return cls.named(*value)

    def __str__(self) -> str:
        if self.is_unconditional:
            return "unconditional"
        return " and ".join(self.names)
