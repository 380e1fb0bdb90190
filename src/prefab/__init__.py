"""Prefab configuration-driven dependency injection.

Prefab builds object graphs from a hierarchical configuration tree. Services are
requested by identifier; the tree says which class implements each one, which
literal parameters it receives and whether the instance is shared. Everything
else is wired by reflecting constructor type hints.

Key Features:
    - Namespace and package fragments merged on demand, in priority order
    - Preference aliases through ``reference`` and nested ``di`` overlays
    - Constructor and ``@injector`` method injection from standard type hints
    - Singleton attachment to a layered service container
    - Lazy creation bound to a snapshot of the configuration
    - YAML/JSON configuration files and per-package manifests

Basic Usage:
    >>> from prefab import ServiceContainer, make_factory
    >>>
    >>> factory = make_factory(
    ...     {"preference": {"app.mail.Mailer": {"class": "app.smtp.SmtpMailer",
    ...                                          "singleton": True}}},
    ...     container=ServiceContainer(),
    ... )
    >>> mailer = factory.create("app.mail.Mailer")

The framework consists of several core modules:
    - store: Path-keyed configuration tree
    - resolver: Per-service configuration resolution
    - introspection: Class location, reflection and the ``@injector`` marker
    - factory: Service construction and lazy handles
    - container: Shared instance storage
    - loader, manifests: Configuration files and package manifests
    - builders: High-level factory construction functions
    - errors: Framework-specific exceptions
"""

from prefab.builders import make_config, make_factory
from prefab.container import Container, ServiceContainer
from prefab.domain import EffectiveConfig, LazyHandle
from prefab.errors import (
    CircularInstantiationError,
    CircularPackageDependencyError,
    ClassNotFoundError,
    ConfigurationError,
    ConstructionError,
    DependencyError,
    ManifestError,
    MissingConfigPathError,
    NotInstantiableError,
    UnresolvableParameterError,
    UnresolvedReferenceError,
)
from prefab.factory import ServiceFactory
from prefab.introspection import Configurable, injector
from prefab.loader import load_config
from prefab.resolver import ConfigurationResolver
from prefab.store import ConfigStore

__all__ = [
    "make_config",
    "make_factory",
    "Container",
    "ServiceContainer",
    "EffectiveConfig",
    "LazyHandle",
    "CircularInstantiationError",
    "CircularPackageDependencyError",
    "ClassNotFoundError",
    "ConfigurationError",
    "ConstructionError",
    "DependencyError",
    "ManifestError",
    "MissingConfigPathError",
    "NotInstantiableError",
    "UnresolvableParameterError",
    "UnresolvedReferenceError",
    "ServiceFactory",
    "Configurable",
    "injector",
    "load_config",
    "ConfigurationResolver",
    "ConfigStore",
]
