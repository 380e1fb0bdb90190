"""Container for shared service instances with optional parent lookup.

The construction engine uses a container for two things: short-circuiting
dependencies that were already built (or supplied by the host application), and
storing services configured as singletons. It only needs ``has``/``get``/``attach``,
so any object implementing :class:`Container` can be attached to a factory.

Containers can be layered: a child container sees its parent's instances, while
instances attached to the child stay invisible to the parent. This models
application-wide singletons with request-scoped overrides.
"""

from typing import Any, Optional, Protocol, runtime_checkable

__all__ = ["Container", "ServiceContainer"]


@runtime_checkable
class Container(Protocol):
    """The narrow capability the construction engine needs from a container."""

    def has(self, service_id: str) -> bool: ...

    def get(self, service_id: str) -> Any: ...

    def attach(self, service_id: str, instance: Any) -> None: ...


class ServiceContainer:
    """Collection of service instances with hierarchical lookup.

    Attributes:
        instances: Dictionary mapping service ids to instances attached here.
        _parent: Optional parent container for hierarchical lookup.

    Example:
        >>> application = ServiceContainer({"app.db.Database": db})
        >>> request = ServiceContainer(parent=application)
        >>> request.attach("app.auth.User", user)
        >>> request.get("app.db.Database")  # Found in parent
        >>> application.has("app.auth.User")
        False
    """

    def __init__(
        self,
        instances: Optional[dict[str, Any]] = None,
        parent: Optional[Container] = None,
    ):
        self.instances: dict[str, Any] = dict(instances or {})
        self._parent = parent

    def has(self, service_id: str) -> bool:
        return service_id in self.instances or bool(
            self._parent and self._parent.has(service_id)
        )

    def get(self, service_id: str) -> Any:
        if service_id in self.instances:
            return self.instances[service_id]
        if self._parent and self._parent.has(service_id):
            return self._parent.get(service_id)
        raise KeyError(service_id)

    def attach(self, service_id: str, instance: Any) -> None:
        self.instances[service_id] = instance

    def __contains__(self, service_id: str) -> bool:
        return self.has(service_id)

    def __getitem__(self, service_id: str) -> Any:
        return self.get(service_id)
