"""
Custom exceptions for propauth.

This module defines the exception hierarchy for the library. Note that the
decision path itself never raises: evaluate() and check() always return a
boolean. These exceptions surface at the edges, when configuration is
loaded, when a guarded callable is invoked without permission, or when a
collaborator fails.
"""

from __future__ import annotations

from typing import Any

# The only denial text an end user ever sees.
INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


class PropAuthError(Exception):
    """
    Base exception for all propauth errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     controller.authorize_or_raise(identity, "building", "delete")
        ... except PropAuthError as e:
        ...     logger.error(f"propauth error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class AuthorizationError(PropAuthError):
    """
    Raised when an identity is not permitted to perform an action.

    The string form is the generic "Insufficient permissions" message so
    the exception can be rendered to end users directly. Rule names,
    condition names and cache state are kept out of it; the attributes
    carry only what the caller already knew.

    Attributes:
        identity_id: The identity that attempted the action.
        action: The action that was attempted.
        resource_kind: The kind of resource targeted.
        resource_id: The specific resource, if any.
    """

    def __init__(
        self,
        identity_id: str | None,
        action: str,
        resource_kind: str,
        resource_id: str | None = None,
    ) -> None:
        self.identity_id = identity_id
        self.action = action
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        super().__init__(INSUFFICIENT_PERMISSIONS)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "required": f"{self.action} permission on {self.resource_kind}",
        }


class AuthenticationRequiredError(PropAuthError):
    """Raised by guards when no identity accompanies a request."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ConfigurationError(PropAuthError):
    """
    Raised when the engine is configured with invalid values.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="ttl_seconds",
        ...     expected="a positive number",
        ...     received=-1,
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)


class RuleSetError(ConfigurationError):
    """Raised when a rule table fails validation at load time."""

    def __init__(self, reason: str, received: Any = None) -> None:
        super().__init__("rule_set", expected=reason, received=received)


class IdentityError(PropAuthError):
    """Raised when an identity payload from the session layer is malformed."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message, {"errors": self.errors} if self.errors else None)


class MetadataUnavailableError(PropAuthError):
    """
    Raised by metadata providers when a lookup fails.

    The controller maps this, a not-found result, and a timed-out fetch to
    a deny decision with reason ``metadata_unavailable``. It never escapes
    check_async().
    """

    def __init__(
        self,
        resource_kind: str,
        resource_id: str | None,
        cause: str | None = None,
    ) -> None:
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        message = f"Metadata unavailable for {resource_kind}:{resource_id or ''}"
        if cause:
            message += f" ({cause})"
        super().__init__(
            message,
            {"resource_kind": resource_kind, "resource_id": resource_id},
        )
