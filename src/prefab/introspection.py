"""Class location and reflection utilities for the construction engine."""

import builtins
import importlib
import inspect
import logging
from typing import (
    Annotated,
    Any,
    Callable,
    Optional,
    Protocol,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)

from prefab.domain import MethodDescriptor, ParameterDescriptor, TypeDescriptor
from prefab.errors import ClassNotFoundError
from prefab.store import ConfigStore

__all__ = [
    "Configurable",
    "ServiceKey",
    "injector",
    "is_injector",
    "service_id_for",
    "locate_class",
    "reflect_type",
    "dependency_service_id",
]

logger = logging.getLogger(__name__)

INJECTOR_MARKER = "__prefab_injector__"

ServiceKey = Union[str, type]
"""Key used to request a service.

A string is used as the service id verbatim. A class is keyed by its dotted
``module.qualname`` path.

Example:
    >>> factory.create("app.mail.Mailer")
    >>> factory.create(Mailer)   # same as factory.create("app.mail.Mailer")
"""


@runtime_checkable
class Configurable(Protocol):
    """Instances receiving the ``config`` node of their preference after construction."""

    def set_config(self, config: ConfigStore) -> None: ...


def injector(method: Callable) -> Callable:
    """Mark a method to be called with resolved parameters after construction.

    Example:
        >>> class Mailer:
        ...     @injector
        ...     def set_transport(self, transport: Transport) -> None:
        ...         self.transport = transport
    """
    setattr(method, INJECTOR_MARKER, True)
    return method


def is_injector(member: Any) -> bool:
    return inspect.isfunction(member) and getattr(member, INJECTOR_MARKER, False)


def service_id_for(key: ServiceKey) -> str:
    """Return the service id for a string or class key."""
    if isinstance(key, str):
        return key
    if inspect.isclass(key):
        return f"{key.__module__}.{key.__qualname__}"
    raise TypeError(f"Service key must be a string or a class, got {key!r}")


def locate_class(reference: Any, known_types: Optional[dict[str, type]] = None) -> Any:
    """Locate the object named by a ``class`` node.

    Args:
        reference: A class object, or an import path such as ``"app.mail.Mailer"``,
            ``"app.mail:Mailer"`` or a builtin name like ``"dict"``.
        known_types: Classes already seen under their service id; consulted before
            importing anything.

    Returns:
        The located object. It is not guaranteed to be a class.

    Raises:
        ClassNotFoundError: If the path cannot be imported or resolved.
    """
    if not isinstance(reference, str):
        return reference
    if known_types and reference in known_types:
        return known_types[reference]

    module_name, separator, qualname = reference.partition(":")
    if separator:
        return _resolve_attribute(_import(module_name, reference), qualname, reference)

    parts = reference.split(".")
    if len(parts) == 1:
        if hasattr(builtins, reference):
            return getattr(builtins, reference)
        raise ClassNotFoundError(f"Class '{reference}' not found")

    for index in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:index])
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as error:
            if error.name and (
                module_name == error.name or module_name.startswith(error.name + ".")
            ):
                continue
            raise ClassNotFoundError(
                f"Unable to import '{module_name}' for class '{reference}': {error}"
            ) from error
        except ImportError as error:
            raise ClassNotFoundError(
                f"Unable to import '{module_name}' for class '{reference}': {error}"
            ) from error
        logger.debug("Located module %s for class %s", module_name, reference)
        return _resolve_attribute(module, ".".join(parts[index:]), reference)

    raise ClassNotFoundError(f"Class '{reference}' not found: no importable module")


def _import(module_name: str, reference: str) -> Any:
    try:
        return importlib.import_module(module_name)
    except ImportError as error:
        raise ClassNotFoundError(
            f"Unable to import '{module_name}' for class '{reference}': {error}"
        ) from error


def _resolve_attribute(module: Any, qualname: str, reference: str) -> Any:
    target = module
    for name in qualname.split("."):
        try:
            target = getattr(target, name)
        except AttributeError:
            raise ClassNotFoundError(
                f"Class '{reference}' not found: "
                f"'{getattr(target, '__name__', target)}' has no attribute '{name}'"
            ) from None
    return target


def reflect_type(cls: type) -> TypeDescriptor:
    """Reflect the constructor and injector methods of ``cls``.

    Injector methods are collected from the whole class hierarchy, base classes
    first, in definition order. An override only counts when it is marked too.
    """
    abstract_reason = None
    if getattr(cls, "_is_protocol", False):
        abstract_reason = "it is a protocol"
    elif inspect.isabstract(cls):
        missing = ", ".join(sorted(getattr(cls, "__abstractmethods__", ())))
        abstract_reason = f"it is abstract (abstract methods: {missing})"

    constructor = None
    if cls.__init__ is not object.__init__:
        constructor_name = "__init__"
    elif cls.__new__ is not object.__new__:
        constructor_name = "__new__"
    else:
        constructor_name = None
    if constructor_name:
        function = getattr(cls, constructor_name)
        try:
            constructor = MethodDescriptor(constructor_name, _parameters(function))
        except ValueError:
            # extension types without signature metadata are built without arguments
            logger.debug("No signature for %s.%s", cls.__qualname__, constructor_name)
        else:
            if not inspect.isfunction(function) and all(
                parameter.is_variadic for parameter in constructor.parameters
            ):
                # builtin bases such as dict take (*args, **kwargs)
                constructor = None

    seen: list[str] = []
    for klass in reversed(cls.__mro__):
        for name in vars(klass):
            if name not in seen:
                seen.append(name)
    injectors = [
        MethodDescriptor(name, _parameters(getattr(cls, name)))
        for name in seen
        if is_injector(getattr(cls, name, None))
    ]

    return TypeDescriptor(cls, constructor, injectors, abstract_reason)


def _parameters(func: Callable) -> list[ParameterDescriptor]:
    signature = inspect.signature(func)
    try:
        hints = get_type_hints(func, include_extras=True)
    except (NameError, TypeError):
        hints = {}

    parameters = list(signature.parameters.values())[1:]
    return [
        ParameterDescriptor(
            parameter.name,
            hints.get(
                parameter.name,
                None
                if parameter.annotation is inspect.Parameter.empty
                else parameter.annotation,
            ),
            parameter.default,
            parameter.kind,
        )
        for parameter in parameters
    ]


def dependency_service_id(annotation: Any) -> Optional[str]:
    """Return the service id a parameter annotation names, if it names exactly one.

    Example:
        >>> dependency_service_id(Mailer)                       # "app.mail.Mailer"
        >>> dependency_service_id(Annotated[Mailer, "mailer"])  # "mailer"
        >>> dependency_service_id("app.mail.Mailer")            # "app.mail.Mailer"
        >>> dependency_service_id(Optional[Mailer])             # None
    """
    if annotation is None:
        return None
    if get_origin(annotation) is Annotated:
        base_type, *metadata = get_args(annotation)
        qualifier = next((m for m in metadata if isinstance(m, str)), None)
        return qualifier or dependency_service_id(base_type)
    if isinstance(annotation, str):
        return annotation or None
    if get_origin(annotation) is None and inspect.isclass(annotation):
        if annotation.__module__ == "builtins":
            return None
        return service_id_for(annotation)
    return None
