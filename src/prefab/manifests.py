"""Package manifests: turning installed packages into configuration fragments.

A package takes part in configuration by shipping a manifest file named
``prefab.yaml``, ``prefab.yml`` or ``prefab.json``::

    name: acme-mailer
    namespaces: [acme.mailer]
    requires: [acme-core, requests]
    di:
      preference:
        acme.mailer.Transport:
          class: acme.mailer.smtp.SmtpTransport
    include: [mailer.services.yaml]

Only manifests with a ``di`` node are compatible. For each compatible package
:func:`build_package_fragment` produces:

    namespace.<ns>.depends.<name> = {priority: 0}        for every owned namespace
    package.<name>.depends.<require> = {priority: 0}     for compatible requirements
    package.<name> <- the ``di`` node
    <root> <- every included file, relative to the manifest

Requesting any service under ``acme.mailer`` therefore merges the package, and
with it every compatible package it requires, in dependency order.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from prefab.domain import (
    DEFAULT_PACKAGE_PRIORITY,
    NODE_DEPENDS,
    NODE_DI,
    NODE_NAMESPACE,
    NODE_PACKAGE,
    NODE_PRIORITY,
)
from prefab.errors import ManifestError
from prefab.loader import read_document, read_tree
from prefab.store import ConfigStore

__all__ = [
    "MANIFEST_NAMES",
    "PackageManifest",
    "load_manifest",
    "discover_manifests",
    "build_package_fragment",
    "build_catalog_config",
]

logger = logging.getLogger(__name__)

MANIFEST_NAMES = ("prefab.yaml", "prefab.yml", "prefab.json")

_PACKAGE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class PackageManifest:
    """The parts of a package manifest the resolver cares about.

    Attributes:
        name: The package id, used as the ``package.<name>`` key.
        namespaces: Namespaces owned by the package.
        requires: Package ids this package depends on.
        fragment: The ``di`` node, or None when the package is not compatible.
        includes: Extra configuration files, relative to the manifest.
        path: Where the manifest was read from, if it came from a file.
    """

    name: str
    namespaces: list[str] = field(default_factory=list)
    requires: list[str] = field(default_factory=list)
    fragment: Optional[dict[str, Any]] = None
    includes: list[str] = field(default_factory=list)
    path: Optional[Path] = None

    @property
    def is_compatible(self) -> bool:
        return self.fragment is not None


def load_manifest(path: Union[str, Path]) -> PackageManifest:
    """Read a manifest file.

    Raises:
        ManifestError: If the file cannot be read or a field has the wrong type.
    """
    path = Path(path)
    document = read_document(path)

    name = document.get("name")
    if not isinstance(name, str) or not name:
        raise ManifestError(f"Manifest {path} must declare a package 'name'")

    fragment = document.get(NODE_DI)
    if fragment is not None and not isinstance(fragment, dict):
        raise ManifestError(
            f"'{NODE_DI}' of manifest {path} must be a mapping, "
            f"got {type(fragment).__name__}"
        )

    return PackageManifest(
        name,
        _string_list(document, "namespaces", path),
        _string_list(document, "requires", path),
        fragment,
        _string_list(document, "include", path),
        path,
    )


def _string_list(document: dict[str, Any], key: str, path: Path) -> list[str]:
    value = document.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ManifestError(f"'{key}' of manifest {path} must be a string or a list of strings")


def discover_manifests(root: Union[str, Path]) -> list[PackageManifest]:
    """Find the manifests of the packages installed under ``root``.

    Packages are the direct sub-directories of ``root``; a manifest in ``root``
    itself (the application's own) is read last. Incompatible manifests are
    skipped, and a later manifest replaces an earlier one with the same name.
    """
    root = Path(root)
    if not root.is_dir():
        raise ManifestError(f"Package directory not found: {root}")

    candidates = [
        path
        for directory in sorted(p for p in root.iterdir() if p.is_dir())
        for path in _manifest_in(directory)
    ]
    candidates.extend(_manifest_in(root))

    manifests: dict[str, PackageManifest] = {}
    for path in candidates:
        manifest = load_manifest(path)
        if not manifest.is_compatible:
            logger.warning("Skipping manifest %s: it has no '%s' node", path, NODE_DI)
            continue
        manifests[manifest.name] = manifest

    logger.info("Discovered %d package manifests under %s", len(manifests), root)
    return list(manifests.values())


def _manifest_in(directory: Path) -> list[Path]:
    return [directory / name for name in MANIFEST_NAMES if (directory / name).is_file()][:1]


def build_package_fragment(
    manifest: PackageManifest,
    is_compatible: Callable[[str], bool] = lambda name: True,
) -> dict[str, Any]:
    """Build the configuration fragment contributed by one package.

    Args:
        manifest: The package manifest.
        is_compatible: Decides which requirements become ``depends`` entries;
            requirements on packages without configuration are left out.

    Returns:
        A root-shaped configuration tree.
    """
    store = ConfigStore()
    package_path = (NODE_PACKAGE, manifest.name)
    if not manifest.is_compatible:
        return store.as_dict()

    for namespace in manifest.namespaces:
        store.merge_at(
            (NODE_NAMESPACE, namespace, NODE_DEPENDS),
            {manifest.name: {NODE_PRIORITY: DEFAULT_PACKAGE_PRIORITY}},
        )

    store.merge_at(package_path, {})
    for require in manifest.requires:
        if not is_compatible(require):
            continue
        store.merge_at(
            package_path + (NODE_DEPENDS, require),
            {NODE_PRIORITY: DEFAULT_PACKAGE_PRIORITY},
        )

    store.merge_at(package_path, manifest.fragment)

    for include in manifest.includes:
        base = manifest.path.parent if manifest.path else Path.cwd()
        include_path = base / include
        if not include_path.is_file():
            logger.warning(
                "Include %s of package %s not found at %s",
                include,
                manifest.name,
                include_path,
            )
            continue
        store.merge(read_tree(include_path))

    return store.as_dict()


def build_catalog_config(manifests: Iterable[PackageManifest]) -> ConfigStore:
    """Merge the fragments of every compatible package into one tree."""
    by_name = {manifest.name: manifest for manifest in manifests if manifest.is_compatible}

    def is_compatible(name: str) -> bool:
        return bool(_PACKAGE_NAME.match(name)) and name in by_name

    store = ConfigStore()
    for manifest in by_name.values():
        store.merge(build_package_fragment(manifest, is_compatible))
    return store
