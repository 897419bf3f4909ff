"""
Access controller for propauth.

The AccessController is the entry point request handlers use. It puts the
decision cache in front of the policy evaluator, fetches resource metadata
from a provider when asked to, records denials with the audit sink, and
derives bulk-listing filters.

Decision path:

    cache.get(key) --hit--> decision (audited if denied)
        |
       miss
        |
    started = cache.now()
    metadata = await provider.fetch_metadata(...)   (check_async only, no lock held)
    allowed = evaluator.evaluate(...)
    cache.put(key, Decision(allowed, started))   (skipped for a named resource without metadata)
    if not allowed: audit_sink.record_denial(...)

The cache and the audit sink are optimizations and side channels: if
either fails, the decision is still computed and returned unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from propauth.audit.sink import AuditSink
from propauth.caching.decision_cache import DecisionCache, DecisionStore
from propauth.config import EngineConfig
from propauth.engines.rule_engine import PolicyEvaluator
from propauth.exceptions import AuthorizationError, MetadataUnavailableError
from propauth.filters import FilterDeriver, ScopeFilter
from propauth.policies.rules import DEFAULT_RULE_SET, RuleSet
from propauth.types import (
    AccessRequest,
    Decision,
    DecisionReason,
    ResourceMetadata,
)

if TYPE_CHECKING:
    from propauth.providers import MetadataProvider
    from propauth.types import Action, Identity, ResourceKind

logger = logging.getLogger(__name__)


class AccessController:
    """
    Cached, audited access decisions.

    Example:
        >>> controller = AccessController(
        ...     config=EngineConfig(metadata_timeout_seconds=2.0),
        ... )
        >>>
        >>> # Metadata already at hand
        >>> controller.check(identity, ResourceKind.BUILDING, Action.READ, "B123", metadata)
        True
        >>>
        >>> # Let the controller fetch it
        >>> await controller.check_async(
        ...     identity, ResourceKind.BUILDING, Action.READ, "B123", provider=provider
        ... )
        True
        >>>
        >>> # Bulk listings
        >>> controller.derive_filter(identity, ResourceKind.BUILDING).to_query()
        >>>
        >>> # After changing an identity's role or scope
        >>> controller.invalidate_identity(identity.identity_id)
    """

    def __init__(
        self,
        rule_set: RuleSet | None = None,
        cache: DecisionStore | None = None,
        audit_sink: AuditSink | None = None,
        config: EngineConfig | None = None,
        provider: MetadataProvider | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            rule_set: The rule table. Defaults to DEFAULT_RULE_SET.
            cache: Decision cache. Defaults to a DecisionCache built from
                config.cache, or no cache if config.cache_enabled is False.
            audit_sink: Audit sink. Defaults to an AuditSink built from
                config.audit.
            config: Engine configuration.
            provider: Default metadata provider for check_async().
        """
        self.config = config or EngineConfig()
        self.rule_set = rule_set if rule_set is not None else DEFAULT_RULE_SET
        self.evaluator = PolicyEvaluator(self.rule_set, self.config.allow_list_policy)
        self.filter_deriver = FilterDeriver(self.rule_set, self.config.allow_list_policy)
        self.provider = provider

        if cache is not None:
            self.cache: DecisionStore | None = cache
        elif self.config.cache_enabled:
            self.cache = DecisionCache(self.config.cache)
        else:
            self.cache = None

        self.audit_sink = audit_sink if audit_sink is not None else AuditSink(
            config=self.config.audit
        )

        logger.debug(
            f"AccessController initialized: {self.rule_set!r}, "
            f"cache={'on' if self.cache is not None else 'off'}, "
            f"allow_list_policy={self.config.allow_list_policy.value}"
        )

    def check(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> bool:
        """
        Decide an access attempt with the metadata at hand.

        Passing metadata=None means the resource has no scope tags, so any
        scoped rule fails closed. Such a decision is not cached when a
        resource_id is named. Callers whose metadata lookup failed
        should use deny_unavailable() or check_async() instead.

        Args:
            identity: The authenticated identity.
            resource_kind: Kind of resource targeted.
            action: Action being attempted.
            resource_id: The specific resource, if any.
            metadata: Scope tags of the resource.

        Returns:
            True if the attempt is allowed.
        """
        request = AccessRequest(identity, resource_kind, action, resource_id, metadata)
        cached = self._cache_get(request)
        if cached is not None:
            return self._serve_cached(request, cached)

        started = self._now()
        return self._decide(request, started)

    async def check_async(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        provider: MetadataProvider | None = None,
    ) -> bool:
        """
        Decide an access attempt, fetching metadata on a cache miss.

        The fetch runs with no lock held and is bounded by
        config.metadata_timeout_seconds. A missing resource, a failed
        lookup, or a timeout denies without consulting the rules; such
        denials are audited but not cached. Requests that name no resource
        are evaluated without metadata.

        Args:
            identity: The authenticated identity.
            resource_kind: Kind of resource targeted.
            action: Action being attempted.
            resource_id: The specific resource, if any.
            provider: Metadata provider. Defaults to the controller's.

        Returns:
            True if the attempt is allowed.
        """
        request = AccessRequest(identity, resource_kind, action, resource_id)
        cached = self._cache_get(request)
        if cached is not None:
            return self._serve_cached(request, cached)

        started = self._now()
        provider = provider or self.provider
        if provider is None or identity is None or not resource_id:
            return self._decide(request, started)

        try:
            metadata = await asyncio.wait_for(
                provider.fetch_metadata(resource_kind, resource_id),
                timeout=self.config.metadata_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Metadata fetch timed out after {self.config.metadata_timeout_seconds}s "
                f"for {request.kind_name}:{resource_id or ''}"
            )
            metadata = None
        except MetadataUnavailableError as e:
            logger.warning(f"Metadata fetch failed: {e.message}")
            metadata = None
        except Exception:
            logger.exception(
                f"Metadata provider raised for {request.kind_name}:{resource_id or ''}"
            )
            metadata = None
        else:
            if metadata is None:
                logger.warning(f"No metadata for {request.kind_name}:{resource_id or ''}")

        if metadata is None:
            return self._deny_unavailable(request, started)

        request = AccessRequest(identity, resource_kind, action, resource_id, metadata)
        return self._decide(request, started)

    def deny_unavailable(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
    ) -> bool:
        """
        Record a deny for a request whose metadata could not be fetched.

        For callers that fetch metadata themselves. Always returns False.
        """
        request = AccessRequest(identity, resource_kind, action, resource_id)
        return self._deny_unavailable(request, self._now())

    def authorize_or_raise(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> None:
        """
        Like check(), but raise on denial.

        Raises:
            AuthorizationError: If the attempt is denied. Its message is
                the generic "Insufficient permissions".
        """
        if not self.check(identity, resource_kind, action, resource_id, metadata):
            raise self._authorization_error(identity, resource_kind, action, resource_id)

    async def authorize_or_raise_async(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        provider: MetadataProvider | None = None,
    ) -> None:
        """
        Like check_async(), but raise on denial.

        Raises:
            AuthorizationError: If the attempt is denied.
        """
        allowed = await self.check_async(identity, resource_kind, action, resource_id, provider)
        if not allowed:
            raise self._authorization_error(identity, resource_kind, action, resource_id)

    def derive_filter(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
    ) -> ScopeFilter:
        """Derive the bulk-listing filter for an identity."""
        return self.filter_deriver.derive_filter(identity, resource_kind)

    def invalidate_identity(self, identity_id: str) -> int:
        """
        Drop every cached decision of an identity.

        Must be called by whatever changes the identity's role, scope or
        assignments, before its next request is checked.

        Returns:
            Number of cached decisions removed.
        """
        if self.cache is None:
            return 0
        return self.cache.invalidate_identity(identity_id)

    def explain(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> dict[str, Any]:
        """Explain a decision without caching or auditing it."""
        return self.evaluator.explain(identity, resource_kind, action, resource_id, metadata)

    def close(self) -> None:
        """Flush the audit sink and stop background threads."""
        self.audit_sink.close()
        if isinstance(self.cache, DecisionCache):
            self.cache.stop_sweeper()

    def __enter__(self) -> AccessController:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _now(self) -> float:
        if self.cache is None:
            return 0.0
        try:
            return self.cache.now()
        except Exception:
            logger.exception("Decision cache clock failed")
            return 0.0

    def _cache_get(self, request: AccessRequest) -> Decision | None:
        if self.cache is None or request.identity is None:
            return None
        try:
            decision = self.cache.get(request.cache_key)
        except Exception:
            logger.exception("Decision cache lookup failed, evaluating uncached")
            return None
        if decision is not None:
            logger.debug(f"Cache hit for {request.cache_key}")
        return decision

    def _serve_cached(self, request: AccessRequest, decision: Decision) -> bool:
        # Every denied attempt is audited, including ones answered from cache
        if not decision.allowed:
            self.audit_sink.record_denial(request, decision)
        return decision.allowed

    def _decide(self, request: AccessRequest, started: float) -> bool:
        result = self.evaluator.evaluate_result(
            request.identity,
            request.resource_kind,
            request.action,
            request.resource_id,
            request.metadata,
        )
        decision = Decision(allowed=result.allowed, computed_at=started, reason=result.reason)

        if self._cacheable(request):
            try:
                self.cache.put(request.cache_key, decision)
            except Exception:
                logger.exception("Decision cache write failed, continuing uncached")

        if not decision.allowed:
            self.audit_sink.record_denial(request, decision)
        return decision.allowed

    def _cacheable(self, request: AccessRequest) -> bool:
        if self.cache is None or request.identity is None:
            return False
        # A named resource decided without its metadata says nothing about
        # the resource, so it must not shadow a later fetch
        if request.resource_id and request.metadata is None:
            logger.debug(f"Not caching {request.cache_key}: no metadata for named resource")
            return False
        return True

    def _deny_unavailable(self, request: AccessRequest, started: float) -> bool:
        decision = Decision(
            allowed=False,
            computed_at=started,
            reason=DecisionReason.METADATA_UNAVAILABLE,
        )
        self.audit_sink.record_denial(request, decision)
        return False

    @staticmethod
    def _authorization_error(
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None,
    ) -> AuthorizationError:
        return AuthorizationError(
            identity_id=identity.identity_id if identity else None,
            action=str(getattr(action, "value", action)),
            resource_kind=str(getattr(resource_kind, "value", resource_kind)),
            resource_id=resource_id,
        )
