"""
Decorators for guarding request handlers.

These are the framework-agnostic counterparts of request middleware: the
identity and resource id are read from the decorated callable's arguments,
the access controller decides, and the handler only runs when allowed.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from propauth.exceptions import AuthenticationRequiredError, AuthorizationError

if TYPE_CHECKING:
    from propauth.core import AccessController
    from propauth.providers import MetadataProvider
    from propauth.types import Action, ResourceKind

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def _argument_reader(func: Callable[..., Any]) -> Callable[..., dict[str, Any]]:
    """Build a function mapping a call's arguments to parameter names."""
    signature = inspect.signature(func)

    def read(args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
        try:
            bound = signature.bind_partial(*args, **kwargs)
        except TypeError:
            return dict(kwargs)
        return dict(bound.arguments)

    return read


def require_permission(
    controller: AccessController,
    resource_kind: ResourceKind | str,
    action: Action | str,
    resource_id_param: str = "resource_id",
    identity_param: str = "identity",
    provider: MetadataProvider | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator that requires permission before the handler runs.

    Async handlers are checked with check_async(), which fetches resource
    metadata from the provider (or the controller's default provider).
    Sync handlers are checked with check() and a ``metadata`` argument, if
    the handler takes one.

    Args:
        controller: The access controller that decides.
        resource_kind: Kind of resource the handler acts on.
        action: Action the handler performs.
        resource_id_param: Name of the argument holding the resource id.
        identity_param: Name of the argument holding the identity.
        provider: Metadata provider for async handlers.

    Raises:
        AuthenticationRequiredError: If the call carries no identity.
        AuthorizationError: If the controller denies the attempt.

    Example:
        >>> @require_permission(controller, ResourceKind.BUILDING, Action.UPDATE,
        ...                     resource_id_param="building_id")
        ... async def update_building(building_id: str, changes: dict, identity=None):
        ...     ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        is_async = inspect.iscoroutinefunction(func)
        read_arguments = _argument_reader(func)

        def resolve(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, Any, Any]:
            arguments = read_arguments(args, kwargs)
            identity = arguments.get(identity_param)
            if identity is None:
                logger.warning(f"Unauthenticated call to {func.__name__}")
                raise AuthenticationRequiredError()
            resource_id = arguments.get(resource_id_param)
            if resource_id is not None:
                resource_id = str(resource_id)
            return identity, resource_id, arguments.get("metadata")

        def denied(identity: Any, resource_id: str | None) -> AuthorizationError:
            return AuthorizationError(
                identity_id=identity.identity_id,
                action=str(getattr(action, "value", action)),
                resource_kind=str(getattr(resource_kind, "value", resource_kind)),
                resource_id=resource_id,
            )

        if is_async:
            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                identity, resource_id, _ = resolve(args, kwargs)
                allowed = await controller.check_async(
                    identity, resource_kind, action, resource_id, provider=provider
                )
                if not allowed:
                    raise denied(identity, resource_id)
                return await func(*args, **kwargs)

            return async_wrapper  # type: ignore
        else:
            @functools.wraps(func)
            def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                identity, resource_id, metadata = resolve(args, kwargs)
                if not controller.check(identity, resource_kind, action, resource_id, metadata):
                    raise denied(identity, resource_id)
                return func(*args, **kwargs)

            return sync_wrapper  # type: ignore

    return decorator


def filter_by_permission(
    controller: AccessController,
    resource_kind: ResourceKind | str,
    identity_param: str = "identity",
    filter_param: str = "scope_filter",
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator that injects the identity's ScopeFilter into a listing handler.

    Example:
        >>> @filter_by_permission(controller, ResourceKind.BUILDING)
        ... def list_buildings(identity=None, scope_filter=None):
        ...     return db.buildings.find(scope_filter.to_query())
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        is_async = inspect.iscoroutinefunction(func)
        read_arguments = _argument_reader(func)

        def inject(args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
            identity = read_arguments(args, kwargs).get(identity_param)
            if identity is None:
                raise AuthenticationRequiredError()
            kwargs[filter_param] = controller.derive_filter(identity, resource_kind)

        if is_async:
            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                inject(args, kwargs)
                return await func(*args, **kwargs)

            return async_wrapper  # type: ignore
        else:
            @functools.wraps(func)
            def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                inject(args, kwargs)
                return func(*args, **kwargs)

            return sync_wrapper  # type: ignore

    return decorator
