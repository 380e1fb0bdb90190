"""Hierarchical resolution of per-service configuration.

The configuration tree is partitioned into three zones:

    namespace.<prefix>     applied to every service id starting with ``prefix``
    package.<id>           reusable fragments pulled in through ``depends``
    preference.<serviceId> how to build one service

Namespace and package fragments are shaped like the root tree itself: merging one
copies its ``preference``/``package``/``namespace`` entries (minus its own
``depends``) into the root. Each fragment is merged at most once; the
``___merged`` marker on its path records that.

Resolving a service runs, in order: namespace merge, preference lookup, dependency
merge, reference resolution, ``di`` overlay and class defaulting. The resolved
preference is written back into the tree so later lookups see the finished result.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from prefab.domain import (
    DEFAULT_PACKAGE_PRIORITY,
    EffectiveConfig,
    MAX_REFERENCE_HOPS,
    MERGED_MARKER,
    NODE_CLASS,
    NODE_DEPENDS,
    NODE_DI,
    NODE_NAMESPACE,
    NODE_PACKAGE,
    NODE_PREFERENCE,
    NODE_PRIORITY,
    NODE_REFERENCE,
)
from prefab.errors import (
    CircularPackageDependencyError,
    ConfigurationError,
    MissingConfigPathError,
    UnresolvedReferenceError,
)
from prefab.store import ConfigStore, copy_tree, deep_merge, to_path

__all__ = ["ConfigurationResolver", "namespace_prefixes", "ordered_dependencies"]

logger = logging.getLogger(__name__)

_NAMESPACE_SEPARATOR = re.compile(r"[.\\]")


def namespace_prefixes(service_id: str) -> list[str]:
    """Split a service id into successively longer namespace prefixes.

    Both ``.`` and ``\\`` separate segments, and the full id is the last prefix.

    Example:
        >>> namespace_prefixes("app.mail.Mailer")
        ['app', 'app.mail', 'app.mail.Mailer']
        >>> namespace_prefixes("Foo\\\\Bar")
        ['Foo', 'Foo\\\\Bar']
    """
    service_id = service_id.lstrip(".\\")
    prefixes = []
    for match in _NAMESPACE_SEPARATOR.finditer(service_id):
        prefix = service_id[: match.start()]
        if prefix and (not prefixes or prefixes[-1] != prefix):
            prefixes.append(prefix)
    if service_id and (not prefixes or prefixes[-1] != service_id):
        prefixes.append(service_id)
    return prefixes


def ordered_dependencies(depends: Any, owner: str) -> list[str]:
    """Return the package ids of a ``depends`` node in merge order.

    Entries are sorted by ascending ``priority``. A missing priority counts as
    ``DEFAULT_PACKAGE_PRIORITY`` and ties keep their input order.

    Args:
        depends: A mapping of package id to ``{"priority": int}`` (or None), or a
            list of package ids.
        owner: Describes the fragment declaring the dependencies, for error messages.

    Raises:
        ConfigurationError: If the node or a priority has the wrong type.
    """
    if not depends:
        return []
    if isinstance(depends, (list, tuple)):
        return [str(package) for package in depends]
    if not isinstance(depends, Mapping):
        raise ConfigurationError(
            f"'{NODE_DEPENDS}' of {owner} must be a mapping, got {type(depends).__name__}"
        )

    def priority_of(item: tuple[str, Any]) -> int:
        package, options = item
        priority = (options or {}).get(NODE_PRIORITY, DEFAULT_PACKAGE_PRIORITY)
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ConfigurationError(
                f"Priority of dependency '{package}' in {owner} must be an integer, "
                f"got {priority!r}"
            )
        return priority

    return [package for package, _ in sorted(depends.items(), key=priority_of)]


class ConfigurationResolver:
    """Resolve effective configurations against a configuration tree.

    By default ``resolve`` is transactional: it works on a copy of the tree and only
    adopts the copy when resolution succeeds, so a failure leaves no partial merge
    behind. A caller that owns a private tree and discards it on failure, such as a
    construction session, passes ``transactional=False`` to merge in place.

    Attributes:
        store: The tree holding every merge made by successful resolutions.
        transactional: Whether each ``resolve`` call works on a copy.
    """

    def __init__(self, store: ConfigStore, transactional: bool = True):
        self.store = store
        self.transactional = transactional

    def resolve(self, service_id: str) -> EffectiveConfig:
        """Resolve the effective configuration for ``service_id``.

        Args:
            service_id: The identifier of the requested service.

        Returns:
            A detached :class:`EffectiveConfig`.

        Raises:
            CircularPackageDependencyError: If packages depend on each other in a cycle.
            MissingConfigPathError: If a depended-on package does not exist.
            UnresolvedReferenceError: If a ``reference`` is missing, empty or cyclic.
            ConfigurationError: If a node has the wrong shape.
        """
        if not self.transactional:
            return _ResolutionPass(self.store).run(service_id)

        working = self.store.copy()
        effective = _ResolutionPass(working).run(service_id)
        self.store = working
        return effective


class _ResolutionPass:
    """One resolution over a working tree, carrying the active package stack."""

    def __init__(self, store: ConfigStore):
        self._store = store
        self._stack: list[str] = []

    def run(self, service_id: str) -> EffectiveConfig:
        self._merge_namespaces(service_id)

        preference_path = (NODE_PREFERENCE, service_id)
        if not self._store.has(preference_path):
            logger.debug("No preference for %s, using it as the class name", service_id)
            self._store.set(preference_path, {NODE_CLASS: service_id})
            return EffectiveConfig(service_id, {NODE_CLASS: service_id})

        preference = self._preference_view(service_id)
        self._merge_dependencies(preference, f"preference '{service_id}'")

        preference = self._preference_view(service_id)
        self._merge_reference(preference, service_id)
        self._merge_sub_di(preference, service_id)

        preference = self._preference_view(service_id)
        if not preference.has(NODE_CLASS):
            preference.set(NODE_CLASS, service_id)

        return EffectiveConfig(service_id, preference.as_dict())

    def _preference_view(self, service_id: str) -> ConfigStore:
        path = (NODE_PREFERENCE, service_id)
        value = self._store.get(path)
        if value is None:
            return self._store.from_path(path, create=True)
        if isinstance(value, (str, type)):
            # shorthand: "preference": {"app.Mailer": "app.smtp.SmtpMailer"}
            self._store.set(path, {NODE_CLASS: value})
        elif not isinstance(value, dict):
            raise ConfigurationError(
                f"Preference for service '{service_id}' must be a mapping, "
                f"got {type(value).__name__}"
            )
        return self._store.from_path(path)

    def _merge_namespaces(self, service_id: str) -> None:
        for prefix in namespace_prefixes(service_id):
            path = (NODE_NAMESPACE, prefix)
            node = self._store.get(path)
            if node is None:
                continue
            if not isinstance(node, dict):
                raise ConfigurationError(
                    f"Namespace '{prefix}' must be a mapping, got {type(node).__name__}"
                )
            if node.get(MERGED_MARKER):
                continue

            logger.debug("Merging namespace %s for service %s", prefix, service_id)
            fragment = self._store.from_path(path)
            self._merge_dependencies(fragment, f"namespace '{prefix}'")
            self._merge_fragment(fragment)
            self._store.set(path + (MERGED_MARKER,), True)

    def _merge_dependencies(self, fragment: ConfigStore, owner: str) -> None:
        for package in ordered_dependencies(fragment.get(NODE_DEPENDS), owner):
            if package in self._stack:
                raise CircularPackageDependencyError(package, self._stack)

            package_path = (NODE_PACKAGE, package)
            if not self._store.has(package_path):
                raise MissingConfigPathError(package_path, f"required by {owner}")
            if self._store.has(package_path + (MERGED_MARKER,)):
                continue

            package_node = self._store.get(package_path)
            if package_node is None:
                package_node = {}
                self._store.set(package_path, package_node)
            elif not isinstance(package_node, dict):
                raise ConfigurationError(
                    f"Package '{package}' must be a mapping, "
                    f"got {type(package_node).__name__}"
                )

            self._stack.append(package)
            try:
                package_fragment = self._store.from_path(package_path)
                self._merge_dependencies(package_fragment, f"package '{package}'")
                logger.debug("Merging package %s required by %s", package, owner)
                self._merge_fragment(package_fragment)
                self._store.set(package_path + (MERGED_MARKER,), True)
            finally:
                self._stack.pop()

    def _merge_fragment(self, fragment: ConfigStore) -> None:
        data = fragment.as_dict()
        data.pop(NODE_DEPENDS, None)
        data.pop(MERGED_MARKER, None)
        self._store.merge(data)

    def _merge_reference(self, preference: ConfigStore, service_id: str) -> None:
        if not preference.has(NODE_REFERENCE):
            return

        referenced = self._follow_reference(preference.get(NODE_REFERENCE), service_id)
        preference.merge(referenced)
        preference.unset(NODE_REFERENCE)

    def _follow_reference(self, reference: Any, service_id: str) -> dict[str, Any]:
        visited: list[tuple[str, ...]] = []
        chain: list[dict[str, Any]] = []
        current = reference

        for _ in range(MAX_REFERENCE_HOPS):
            path = self._reference_path(current, service_id)
            if path in visited:
                raise UnresolvedReferenceError(
                    f"Circular reference for service '{service_id}': "
                    + " -> ".join(".".join(p) for p in [*visited, path])
                )
            visited.append(path)

            data = self._store.get(path)
            if isinstance(data, (str, type)):
                data = {NODE_CLASS: data}
            if not data:
                raise UnresolvedReferenceError(
                    f"Reference config is empty '{'.'.join(path)}' "
                    f"(service '{service_id}')"
                )
            if not isinstance(data, Mapping):
                raise UnresolvedReferenceError(
                    f"Reference '{'.'.join(path)}' of service '{service_id}' must "
                    f"point at a mapping, got {type(data).__name__}"
                )

            data = copy_tree(data)
            current = data.pop(NODE_REFERENCE, None)
            chain.append(data)
            logger.debug("Service %s follows reference %s", service_id, ".".join(path))
            if current is None:
                break
        else:
            raise UnresolvedReferenceError(
                f"Reference chain of service '{service_id}' exceeds "
                f"{MAX_REFERENCE_HOPS} hops"
            )

        # each referenced fragment is merged over the one that referred to it
        merged: dict[str, Any] = {}
        for data in chain:
            deep_merge(merged, data)
        return merged

    def _reference_path(self, reference: Any, service_id: str) -> tuple[str, ...]:
        if isinstance(reference, str):
            relative = (NODE_PREFERENCE, reference)
            if self._store.has(relative):
                return relative
        elif not isinstance(reference, (list, tuple)):
            raise UnresolvedReferenceError(
                f"Reference of service '{service_id}' must be a string or a list of "
                f"path segments, got {type(reference).__name__}"
            )

        absolute = to_path(reference)
        if not absolute or not self._store.has(absolute):
            raise UnresolvedReferenceError(
                f"Reference path not found '{'.'.join(absolute) or reference}' "
                f"(service '{service_id}')"
            )
        return absolute

    def _merge_sub_di(self, preference: ConfigStore, service_id: str) -> None:
        overlay = preference.get(NODE_DI)
        if not overlay:
            return
        if not isinstance(overlay, Mapping):
            raise ConfigurationError(
                f"'{NODE_DI}' of service '{service_id}' must be a mapping, "
                f"got {type(overlay).__name__}"
            )
        logger.debug("Merging di overlay of service %s into the root tree", service_id)
        self._store.merge(copy_tree(overlay))
