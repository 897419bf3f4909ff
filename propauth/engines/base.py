"""
Policy engine base classes and protocols for propauth.

This module defines the PolicyEngine protocol that evaluators implement.
The access controller and decorators depend only on this protocol, so an
alternative evaluator (for example one backed by a remote policy service)
can be dropped in without touching them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from propauth.types import (
        Action,
        AuthorizationResult,
        Identity,
        ResourceKind,
        ResourceMetadata,
    )


@runtime_checkable
class PolicyEngine(Protocol):
    """
    Protocol defining the interface for policy engines.

    Implementations must be pure and must never raise for well-formed
    input: every call returns a decision.
    """

    def evaluate(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> bool:
        """
        Decide one access attempt.

        Args:
            identity: The authenticated identity.
            resource_kind: Kind of resource targeted.
            action: Action being attempted.
            resource_id: The specific resource, if any.
            metadata: Scope tags of the resource.

        Returns:
            True if the attempt is allowed.
        """
        ...

    def evaluate_result(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> AuthorizationResult:
        """Like evaluate(), but with the reason and matched rule attached."""
        ...


class BasePolicyEngine(ABC):
    """
    Abstract base class for policy engines.

    Provides configuration access and the bool-returning evaluate() on top
    of evaluate_result(), so subclasses implement a single method.

    Attributes:
        name: Human-readable name for the engine.
        config: Configuration dictionary passed during initialization.
    """

    name: str = "base"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    @abstractmethod
    def evaluate_result(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> AuthorizationResult:
        """
        Evaluate an access attempt.

        Subclasses must implement this method.
        """
        pass

    def evaluate(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> bool:
        return self.evaluate_result(
            identity, resource_kind, action, resource_id, metadata
        ).allowed

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.config.get(key, default)

