"""
Configuration for propauth.

Configuration is plain dataclasses with defaults, so it can be built in
code or loaded from a parsed settings file via from_dict(). Invalid values
are rejected at construction with ConfigurationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from propauth.exceptions import ConfigurationError
from propauth.policies.scope import AllowListPolicy

DEFAULT_TTL_SECONDS = 300.0  # 5 minutes
DEFAULT_MAX_CACHE_SIZE = 10_000
DEFAULT_METADATA_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_PENDING_AUDIT_RECORDS = 10_000


@dataclass
class CacheConfig:
    """
    Configuration for the decision cache.

    Attributes:
        ttl_seconds: Maximum age of a cached decision.
        max_size: Maximum number of cached decisions.
        sweep_interval_seconds: Period of the background sweeper, or None
            to rely on lazy eviction and explicit sweep_expired() calls.

    Example:
        >>> config = CacheConfig(ttl_seconds=60, max_size=500)
    """

    ttl_seconds: float = DEFAULT_TTL_SECONDS
    max_size: int = DEFAULT_MAX_CACHE_SIZE
    sweep_interval_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds", "a positive number", self.ttl_seconds)
        if self.max_size < 1:
            raise ConfigurationError("max_size", "an integer >= 1", self.max_size)
        if self.sweep_interval_seconds is not None and self.sweep_interval_seconds <= 0:
            raise ConfigurationError(
                "sweep_interval_seconds", "a positive number or None",
                self.sweep_interval_seconds,
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "ttl_seconds": self.ttl_seconds,
            "max_size": self.max_size,
            "sweep_interval_seconds": self.sweep_interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheConfig:
        """Create config from dictionary."""
        return cls(
            ttl_seconds=data.get("ttl_seconds", DEFAULT_TTL_SECONDS),
            max_size=data.get("max_size", DEFAULT_MAX_CACHE_SIZE),
            sweep_interval_seconds=data.get("sweep_interval_seconds"),
        )


@dataclass
class AuditConfig:
    """
    Configuration for the audit sink.

    Attributes:
        enabled: Record denials at all.
        escalate_suspicious: Raise an escalation for suspicious denials.
        synchronous: Process records on the calling thread instead of the
            background worker. Useful in tests and short scripts.
        max_pending: Upper bound on records waiting for the background
            worker. Records beyond it are dropped with a warning.
    """

    enabled: bool = True
    escalate_suspicious: bool = True
    synchronous: bool = False
    max_pending: int = DEFAULT_MAX_PENDING_AUDIT_RECORDS

    def __post_init__(self) -> None:
        if self.max_pending < 1:
            raise ConfigurationError("max_pending", "an integer >= 1", self.max_pending)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "enabled": self.enabled,
            "escalate_suspicious": self.escalate_suspicious,
            "synchronous": self.synchronous,
            "max_pending": self.max_pending,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditConfig:
        """Create config from dictionary."""
        return cls(
            enabled=data.get("enabled", True),
            escalate_suspicious=data.get("escalate_suspicious", True),
            synchronous=data.get("synchronous", False),
            max_pending=data.get("max_pending", DEFAULT_MAX_PENDING_AUDIT_RECORDS),
        )


@dataclass
class EngineConfig:
    """
    Top-level configuration for the access controller.

    Attributes:
        allow_list_policy: How an empty resource allow-list is treated, by
            both the evaluator and the filter deriver.
        cache_enabled: Put a decision cache in front of the evaluator.
        cache: Decision cache settings.
        audit: Audit sink settings.
        metadata_timeout_seconds: Upper bound on a metadata fetch. A
            timed-out fetch is a deny.

    Example:
        >>> config = EngineConfig.from_dict({
        ...     "allow_list_policy": "unassigned_is_empty",
        ...     "cache": {"ttl_seconds": 120},
        ...     "audit": {"synchronous": True},
        ... })
    """

    allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD
    cache_enabled: bool = True
    cache: CacheConfig = field(default_factory=CacheConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    metadata_timeout_seconds: float = DEFAULT_METADATA_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        try:
            self.allow_list_policy = AllowListPolicy(self.allow_list_policy)
        except ValueError:
            raise ConfigurationError(
                "allow_list_policy",
                f"one of: {', '.join(p.value for p in AllowListPolicy)}",
                self.allow_list_policy,
            ) from None
        if self.metadata_timeout_seconds <= 0:
            raise ConfigurationError(
                "metadata_timeout_seconds", "a positive number",
                self.metadata_timeout_seconds,
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "allow_list_policy": self.allow_list_policy.value,
            "cache_enabled": self.cache_enabled,
            "cache": self.cache.to_dict(),
            "audit": self.audit.to_dict(),
            "metadata_timeout_seconds": self.metadata_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Create config from dictionary."""
        return cls(
            allow_list_policy=data.get(
                "allow_list_policy", AllowListPolicy.UNASSIGNED_IS_BROAD
            ),
            cache_enabled=data.get("cache_enabled", True),
            cache=CacheConfig.from_dict(data.get("cache", {})),
            audit=AuditConfig.from_dict(data.get("audit", {})),
            metadata_timeout_seconds=data.get(
                "metadata_timeout_seconds", DEFAULT_METADATA_TIMEOUT_SECONDS
            ),
        )
