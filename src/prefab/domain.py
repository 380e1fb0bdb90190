"""Domain models used throughout the framework."""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

NODE_DI = "di"
NODE_NAMESPACE = "namespace"
NODE_PACKAGE = "package"
NODE_DEPENDS = "depends"
NODE_PREFERENCE = "preference"
NODE_REFERENCE = "reference"
NODE_CLASS = "class"
NODE_CONFIG = "config"
NODE_SINGLETON = "singleton"
NODE_PARAMETERS = "parameters"
NODE_PARAMETER_VALUE = "value"
NODE_PRIORITY = "priority"

MERGED_MARKER = "___merged"
DEFAULT_PACKAGE_PRIORITY = 0
MAX_REFERENCE_HOPS = 16

ServicePath = tuple[str, ...]


@dataclass(frozen=True)
class EffectiveConfig:
    """The fully merged configuration for one service identifier.

    Attributes:
        service_id: The identifier the configuration was resolved for.
        data: A detached copy of ``preference.<service_id>`` after resolution.
    """

    service_id: str
    data: dict[str, Any]

    @property
    def class_ref(self) -> Any:
        """The ``class`` node: an import path string or a class object."""
        return self.data.get(NODE_CLASS, self.service_id)

    @property
    def singleton(self) -> bool:
        return bool(self.data.get(NODE_SINGLETON, False))

    @property
    def parameters(self) -> dict[str, Any]:
        return self.data.get(NODE_PARAMETERS) or {}

    @property
    def config(self) -> Optional[dict[str, Any]]:
        return self.data.get(NODE_CONFIG)


@dataclass(frozen=True)
class ParameterDescriptor:
    """Describes one parameter of a constructor or injector method.

    Attributes:
        name: The parameter name in the signature.
        annotation: The resolved type hint, the raw annotation string if it could not
            be evaluated, or None when the parameter is not annotated.
        default: The default value, or ``inspect.Parameter.empty``.
        kind: The ``inspect.Parameter`` kind.
    """

    name: str
    annotation: Any
    default: Any
    kind: Any

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def is_variadic(self) -> bool:
        return self.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        )

    @property
    def is_keyword_only(self) -> bool:
        return self.kind is inspect.Parameter.KEYWORD_ONLY


@dataclass(frozen=True)
class MethodDescriptor:
    """A callable member of a reflected type together with its parameters."""

    name: str
    parameters: list[ParameterDescriptor]


@dataclass(frozen=True)
class TypeDescriptor:
    """Reflected metadata for a class, computed once per class and session.

    Attributes:
        cls: The reflected class.
        constructor: The ``__init__`` (or ``__new__``) descriptor, or None when the
            class defines neither or has no signature metadata.
        injectors: Post-construction hook methods in definition order.
        abstract_reason: Why the class cannot be instantiated, or None.
    """

    cls: type
    constructor: Optional[MethodDescriptor]
    injectors: list[MethodDescriptor] = field(default_factory=list)
    abstract_reason: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.cls.__module__}.{self.cls.__qualname__}"

    @property
    def is_instantiable(self) -> bool:
        return self.abstract_reason is None


LazyHandle = Callable[[], Any]
"""A deferred ``create`` call bound to a snapshot of the configuration tree."""
