"""Exception hierarchy shared by the resolver and the construction engine.

Every failure aborts the whole top-level ``create`` call, so callers only need to
catch :class:`DependencyError`. The subclasses let tests and diagnostics
distinguish circular *configuration* from circular *instantiation*.
"""

__all__ = [
    "DependencyError",
    "ConfigurationError",
    "CircularPackageDependencyError",
    "MissingConfigPathError",
    "UnresolvedReferenceError",
    "ConstructionError",
    "ClassNotFoundError",
    "NotInstantiableError",
    "UnresolvableParameterError",
    "CircularInstantiationError",
    "ManifestError",
]


class DependencyError(Exception):
    """Raised when a service's dependency cannot be resolved or constructed."""

    pass


class ConfigurationError(DependencyError):
    """Raised when the configuration tree cannot be resolved for a service."""


class CircularPackageDependencyError(ConfigurationError):
    """Raised when a package reappears on the active merge stack."""

    def __init__(self, package: str, stack: list[str]):
        chain = " -> ".join([*stack, package])
        super().__init__(
            f"Circular package dependency detected for package '{package}' ({chain})"
        )
        self.package = package
        self.stack = list(stack)


class MissingConfigPathError(ConfigurationError):
    """Raised when a namespace, package or preference path is absent from the tree."""

    def __init__(self, path: tuple[str, ...], context: str = ""):
        message = f"Configuration path not found: '{'.'.join(path)}'"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)
        self.path = path


class UnresolvedReferenceError(ConfigurationError):
    """Raised when a ``reference`` points at a missing, empty or cyclic path."""


class ConstructionError(DependencyError):
    """Raised when a resolved service cannot be instantiated."""


class ClassNotFoundError(ConstructionError):
    """Raised when the ``class`` of a preference cannot be located."""


class NotInstantiableError(ConstructionError):
    """Raised for abstract classes, protocols and non-class targets."""


class UnresolvableParameterError(ConstructionError):
    """Raised when a constructor or injector parameter has no viable source."""


class CircularInstantiationError(ConstructionError):
    """Raised when a service reappears on the active construction stack."""

    def __init__(self, service_id: str, stack: list[str]):
        chain = " -> ".join([*stack, service_id])
        super().__init__(
            f"Circular dependency detected for service '{service_id}' ({chain})"
        )
        self.service_id = service_id
        self.stack = list(stack)


class ManifestError(DependencyError):
    """Raised when a package manifest or configuration file cannot be loaded."""
