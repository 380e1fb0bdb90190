"""Per-call construction state.

A :class:`ConstructionSession` is opened for every top-level ``create`` call and
threaded explicitly through the nested calls made while resolving parameters. It
owns a private copy of the configuration tree, the stack of services under
construction and the cache of reflected types, so concurrent or re-entrant
top-level calls never observe each other's merges.

A :class:`ConstructionContext` holds the scratch state of one (possibly nested)
``create`` call and is discarded once the instance is returned.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from prefab.container import Container
from prefab.domain import EffectiveConfig, TypeDescriptor
from prefab.errors import CircularInstantiationError
from prefab.introspection import reflect_type, service_id_for
from prefab.resolver import ConfigurationResolver
from prefab.store import ConfigStore

__all__ = ["ConstructionContext", "ConstructionSession"]


@dataclass
class ConstructionContext:
    """Scratch state for building one service.

    Attributes:
        service_id: The service being built.
        arguments: Positional arguments supplied by the caller. When non-empty they
            replace configuration-driven parameter resolution.
        config: The effective configuration, once resolved.
        descriptor: The reflected class, once located.
        instance: The produced instance, once constructed.
    """

    service_id: str
    arguments: tuple[Any, ...] = ()
    config: Optional[EffectiveConfig] = None
    descriptor: Optional[TypeDescriptor] = None
    instance: Any = None


class ConstructionSession:
    """State shared by one top-level ``create`` call and all of its nested calls."""

    def __init__(self, store: ConfigStore, container: Optional[Container] = None):
        # the session's tree is private and dropped with the session on failure
        self.resolver = ConfigurationResolver(store, transactional=False)
        self.container = container
        self.known_types: dict[str, type] = {}
        self._descriptors: dict[type, TypeDescriptor] = {}
        self._stack: list[str] = []

    @property
    def stack(self) -> tuple[str, ...]:
        """Services currently under construction, outermost first."""
        return tuple(self._stack)

    @contextmanager
    def constructing(self, service_id: str) -> Iterator[None]:
        """Keep ``service_id`` on the construction stack for the duration of the block.

        The entry is popped when the block exits, whether it succeeds or raises.

        Raises:
            CircularInstantiationError: If ``service_id`` is already being constructed.
        """
        if service_id in self._stack:
            raise CircularInstantiationError(service_id, self._stack)
        self._stack.append(service_id)
        try:
            yield
        finally:
            self._stack.pop()

    def remember(self, cls: type) -> str:
        """Record ``cls`` under its service id so it is found without an import."""
        service_id = service_id_for(cls)
        self.known_types.setdefault(service_id, cls)
        return service_id

    def describe(self, cls: type) -> TypeDescriptor:
        descriptor = self._descriptors.get(cls)
        if descriptor is None:
            descriptor = reflect_type(cls)
            self._descriptors[cls] = descriptor
        return descriptor
