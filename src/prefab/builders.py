"""High-level construction of configuration trees and service factories.

Configuration sources are layered lowest precedence first: package manifests,
then configuration files, then an in-memory mapping.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from prefab.container import Container
from prefab.factory import ServiceFactory
from prefab.loader import load_config
from prefab.manifests import build_catalog_config, discover_manifests
from prefab.store import ConfigStore


def make_config(
    config: Union[ConfigStore, Mapping[str, Any], None] = None,
    *,
    files: Iterable[Union[str, Path]] = (),
    manifest_root: Union[str, Path, None] = None,
) -> ConfigStore:
    """Assemble a configuration tree from every configuration source.

    Sources are layered lowest precedence first: package manifests found under
    ``manifest_root``, then ``files`` in order, then the in-memory ``config``.

    Args:
        config: An optional tree overriding everything else.
        files: YAML or JSON configuration files.
        manifest_root: An optional directory holding one package per sub-directory.

    Returns:
        The merged configuration tree.

    Raises:
        ManifestError: If a manifest or configuration file cannot be loaded.
    """
    store = ConfigStore()
    if manifest_root is not None:
        store.merge(build_catalog_config(discover_manifests(manifest_root)).data)
    store.merge(load_config(*files).data)
    if config is not None:
        store.merge(config.data if isinstance(config, ConfigStore) else config)
    return store


def make_factory(
    config: Union[ConfigStore, Mapping[str, Any], None] = None,
    *,
    files: Iterable[Union[str, Path]] = (),
    manifest_root: Union[str, Path, None] = None,
    container: Optional[Container] = None,
) -> ServiceFactory:
    """Construct a service factory over the merged configuration sources.

    Args:
        config: An optional tree overriding everything else.
        files: YAML or JSON configuration files.
        manifest_root: An optional directory holding one package per sub-directory.
        container: An optional container for shared and singleton instances.

    Returns:
        A factory ready to ``create`` services.

    Raises:
        ManifestError: If a manifest or configuration file cannot be loaded.
    """
    store = make_config(config, files=files, manifest_root=manifest_root)
    return ServiceFactory(store, container)
