"""Reflective construction of services from resolved configuration.

:class:`ServiceFactory` turns a service id into an instance:

1. the id is pushed onto the session's construction stack (re-entry is a
   circular instantiation);
2. the :class:`~prefab.resolver.ConfigurationResolver` produces its effective
   configuration;
3. the configured class is located and reflected;
4. constructor parameters are resolved and the class is instantiated;
5. configurable instances receive their ``config`` node;
6. injector methods are called with independently resolved parameters;
7. singletons are attached to the container.

Parameters are resolved in declaration order from, in turn: explicit positional
arguments passed to ``create`` (which replace the whole list), the ``parameters``
node of the preference, the parameter default, and finally the parameter's type,
which names another service that is taken from the container or built
recursively within the same session.
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from prefab.container import Container
from prefab.domain import (
    NODE_PARAMETER_VALUE,
    NODE_PARAMETERS,
    EffectiveConfig,
    LazyHandle,
    MethodDescriptor,
    ParameterDescriptor,
    TypeDescriptor,
)
from prefab.errors import (
    ClassNotFoundError,
    ConfigurationError,
    NotInstantiableError,
    UnresolvableParameterError,
)
from prefab.introspection import (
    Configurable,
    ServiceKey,
    dependency_service_id,
    locate_class,
    service_id_for,
)
from prefab.session import ConstructionContext, ConstructionSession
from prefab.store import ConfigStore

__all__ = ["ServiceFactory"]

logger = logging.getLogger(__name__)


class ServiceFactory:
    """Build services described by a configuration tree.

    The factory never mutates its own tree while building: every top-level call
    works on a private copy held by a :class:`ConstructionSession`. The attached
    container, if any, is the only state shared between calls.

    Example:
        >>> factory = ServiceFactory(
        ...     {"preference": {"app.mail.Mailer": {"class": "app.smtp.SmtpMailer",
        ...                                          "parameters": {"host": {"value": "mx"}},
        ...                                          "singleton": True}}},
        ...     container=ServiceContainer(),
        ... )
        >>> mailer = factory.create("app.mail.Mailer")
        >>> factory.get("app.mail.Mailer") is mailer
        True
    """

    def __init__(
        self,
        config: Union[ConfigStore, Mapping[str, Any], None] = None,
        container: Optional[Container] = None,
    ):
        self._store = config if isinstance(config, ConfigStore) else ConfigStore(config)
        self._container = container

    @property
    def config(self) -> ConfigStore:
        return self._store

    @property
    def container(self) -> Optional[Container]:
        return self._container

    def with_config(self, config: Union[ConfigStore, Mapping[str, Any]]) -> "ServiceFactory":
        """Return a factory using ``config`` and this factory's container."""
        return ServiceFactory(config, self._container)

    def with_container(self, container: Container) -> "ServiceFactory":
        """Return a factory using this factory's configuration and ``container``."""
        return ServiceFactory(self._store, container)

    def create(self, service_id: ServiceKey, *args: Any) -> Any:
        """Build a new instance of ``service_id``.

        Args:
            service_id: The service id, or a class keyed by its dotted path.
            *args: Positional arguments passed verbatim to the constructor (and to
                injector methods), bypassing configuration-driven resolution.

        Returns:
            The constructed instance.

        Raises:
            DependencyError: If the configuration cannot be resolved or the service
                or one of its dependencies cannot be built.
        """
        return self._create(self._open_session(), service_id, args)

    def get(self, service_id: ServiceKey) -> Any:
        """Return the container's instance of ``service_id``, building it if absent."""
        key = service_id_for(service_id)
        if self._container is not None and self._container.has(key):
            return self._container.get(key)
        return self.create(service_id)

    def resolve(self, service_id: ServiceKey) -> EffectiveConfig:
        """Return the effective configuration ``create`` would use for ``service_id``."""
        return self._open_session().resolver.resolve(service_id_for(service_id))

    def lazy_create(self, service_id: ServiceKey, *args: Any) -> LazyHandle:
        """Return a callable that builds ``service_id`` when invoked.

        The configuration tree is captured when ``lazy_create`` is called; later
        changes to this factory's configuration are not seen by the handle.
        """
        snapshot = ServiceFactory(self._store.copy(), self._container)

        def create() -> Any:
            return snapshot.create(service_id, *args)

        return create

    def _open_session(self) -> ConstructionSession:
        return ConstructionSession(self._store.copy(), self._container)

    def _create(
        self, session: ConstructionSession, key: ServiceKey, args: tuple[Any, ...]
    ) -> Any:
        service_id = session.remember(key) if inspect.isclass(key) else service_id_for(key)

        with session.constructing(service_id):
            context = ConstructionContext(service_id, tuple(args))
            context.config = session.resolver.resolve(service_id)
            context.descriptor = self._describe(session, context)
            context.instance = self._instantiate(session, context)
            self._configure(context)
            self._invoke_injectors(session, context)
            self._apply_lifecycle(session, context)

        logger.debug("Created service %s as %s", service_id, context.descriptor.name)
        return context.instance

    def _describe(
        self, session: ConstructionSession, context: ConstructionContext
    ) -> TypeDescriptor:
        class_ref = context.config.class_ref
        try:
            target = locate_class(class_ref, session.known_types)
        except ClassNotFoundError as error:
            raise ClassNotFoundError(
                f"Unable to create dependency: service '{context.service_id}' "
                f"(resolved preference: '{class_ref}'): {error}"
            ) from error

        if not inspect.isclass(target):
            raise NotInstantiableError(
                f"Service '{context.service_id}' (resolved preference: '{class_ref}') "
                f"is not a class"
            )

        descriptor = session.describe(target)
        if not descriptor.is_instantiable:
            raise NotInstantiableError(
                f"Service '{context.service_id}' (resolved preference: "
                f"'{descriptor.name}') is not instantiable: "
                f"{descriptor.abstract_reason}. Check dependency configuration"
            )
        return descriptor

    def _instantiate(
        self, session: ConstructionSession, context: ConstructionContext
    ) -> Any:
        descriptor = context.descriptor
        if descriptor.constructor is None:
            return descriptor.cls()

        args, kwargs = self._resolve_parameters(session, context, descriptor.constructor)
        return descriptor.cls(*args, **kwargs)

    def _configure(self, context: ConstructionContext) -> None:
        config = context.config.config
        if config is None or not isinstance(context.instance, Configurable):
            return
        if not isinstance(config, Mapping):
            raise ConfigurationError(
                f"'config' of service '{context.service_id}' must be a mapping, "
                f"got {type(config).__name__}"
            )
        context.instance.set_config(ConfigStore(config))

    def _invoke_injectors(
        self, session: ConstructionSession, context: ConstructionContext
    ) -> None:
        for method in context.descriptor.injectors:
            args, kwargs = self._resolve_parameters(session, context, method)
            logger.debug("Invoking injector %s of %s", method.name, context.service_id)
            getattr(context.instance, method.name)(*args, **kwargs)

    def _apply_lifecycle(
        self, session: ConstructionSession, context: ConstructionContext
    ) -> None:
        if not context.config.singleton:
            return
        if session.container is None:
            logger.warning(
                "Service %s is configured as a singleton but no container is attached",
                context.service_id,
            )
            return
        session.container.attach(context.service_id, context.instance)
        logger.debug("Attached singleton %s to the container", context.service_id)

    def _resolve_parameters(
        self,
        session: ConstructionSession,
        context: ConstructionContext,
        method: MethodDescriptor,
    ) -> tuple[list[Any], dict[str, Any]]:
        if context.arguments:
            return list(context.arguments), {}

        configured = context.config.parameters
        if not isinstance(configured, Mapping):
            raise ConfigurationError(
                f"'{NODE_PARAMETERS}' of service '{context.service_id}' must be a "
                f"mapping, got {type(configured).__name__}"
            )

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for parameter in method.parameters:
            if parameter.name in configured:
                value = _configured_value(configured[parameter.name], parameter, method, context)
                if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
                    args.extend(value)
                elif parameter.kind is inspect.Parameter.VAR_KEYWORD:
                    kwargs.update(value)
                elif parameter.is_keyword_only:
                    kwargs[parameter.name] = value
                else:
                    args.append(value)
                continue

            if parameter.has_default:
                if parameter.is_keyword_only:
                    kwargs[parameter.name] = parameter.default
                else:
                    args.append(parameter.default)
                continue

            if parameter.is_variadic:
                raise UnresolvableParameterError(
                    f"Unable to create dependency: variadic parameter "
                    f"'{parameter.name}' is not supported. "
                    f"{_where(method, context)}"
                )

            value = self._resolve_dependency(session, context, method, parameter)
            if parameter.is_keyword_only:
                kwargs[parameter.name] = value
            else:
                args.append(value)

        return args, kwargs

    def _resolve_dependency(
        self,
        session: ConstructionSession,
        context: ConstructionContext,
        method: MethodDescriptor,
        parameter: ParameterDescriptor,
    ) -> Any:
        annotation = parameter.annotation
        if annotation is None:
            raise UnresolvableParameterError(
                f"Unable to create dependency: parameter '{parameter.name}' is not "
                f"typed and has no configured value. {_where(method, context)}"
            )

        dependency_id = dependency_service_id(annotation)
        if dependency_id is None:
            raise UnresolvableParameterError(
                f"Unable to create dependency: parameter '{parameter.name}' has no "
                f"single named service type ({annotation!r}) and no configured value. "
                f"{_where(method, context)}"
            )
        if inspect.isclass(annotation) and dependency_id == service_id_for(annotation):
            session.remember(annotation)

        container = session.container
        if container is not None and container.has(dependency_id):
            return container.get(dependency_id)
        return self._create(session, dependency_id, ())


def _configured_value(
    entry: Any,
    parameter: ParameterDescriptor,
    method: MethodDescriptor,
    context: ConstructionContext,
) -> Any:
    if isinstance(entry, Mapping):
        if NODE_PARAMETER_VALUE not in entry:
            raise UnresolvableParameterError(
                f"Parameter '{parameter.name}' is configured without a "
                f"'{NODE_PARAMETER_VALUE}' node. {_where(method, context)}"
            )
        value = entry[NODE_PARAMETER_VALUE]
    else:
        value = entry

    if parameter.kind is inspect.Parameter.VAR_POSITIONAL and not isinstance(
        value, (list, tuple)
    ):
        raise UnresolvableParameterError(
            f"Variadic parameter '{parameter.name}' needs a list value. "
            f"{_where(method, context)}"
        )
    if parameter.kind is inspect.Parameter.VAR_KEYWORD and not isinstance(
        value, Mapping
    ):
        raise UnresolvableParameterError(
            f"Variadic keyword parameter '{parameter.name}' needs a mapping value. "
            f"{_where(method, context)}"
        )
    return value


def _where(method: MethodDescriptor, context: ConstructionContext) -> str:
    return (
        f"Method: {context.descriptor.name}.{method.name} "
        f"(service '{context.service_id}')"
    )
