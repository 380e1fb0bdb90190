"""Loading configuration trees from YAML and JSON files.

Supported formats:
    - YAML (``.yaml``, ``.yml``), read with ``yaml.safe_load``
    - JSON (``.json``)

An empty YAML file is an empty tree. The root of every file must be a mapping. A file
whose only top-level key is ``di`` holds the tree under that key; it is unwrapped
so the same document can live inside a larger application configuration::

    di:
      preference:
        app.mail.Mailer:
          class: app.smtp.SmtpMailer

Several files are layered left to right: later files override earlier ones key by
key, and lists are replaced rather than concatenated.
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from prefab.domain import NODE_DI
from prefab.errors import ManifestError
from prefab.store import ConfigStore

__all__ = ["read_document", "read_tree", "load_config"]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

YAML_SUFFIXES = {".yaml", ".yml"}
JSON_SUFFIXES = {".json"}


def read_document(path: PathLike) -> dict[str, Any]:
    """Read one YAML or JSON document and check that its root is a mapping.

    Args:
        path: The file to read.

    Returns:
        The parsed document; ``{}`` for an empty YAML file.

    Raises:
        ManifestError: If the file is missing, has an unsupported suffix, cannot be
            parsed or its root is not a mapping.
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in YAML_SUFFIXES | JSON_SUFFIXES:
        raise ManifestError(f"Unsupported configuration format: {path.suffix} ({path})")

    try:
        with path.open("r", encoding="utf-8") as stream:
            if suffix in YAML_SUFFIXES:
                data = yaml.safe_load(stream)
            else:
                data = json.load(stream)
    except (yaml.YAMLError, json.JSONDecodeError) as error:
        raise ManifestError(f"Unable to parse configuration file {path}: {error}") from error

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ManifestError(
            f"Configuration root must be a mapping, got {type(data).__name__} ({path})"
        )
    return data


def read_tree(path: PathLike) -> dict[str, Any]:
    """Read a configuration tree, unwrapping a document that only holds a ``di`` node."""
    document = read_document(path)
    if set(document) != {NODE_DI}:
        return document

    tree = document[NODE_DI] or {}
    if not isinstance(tree, dict):
        raise ManifestError(
            f"'{NODE_DI}' node must be a mapping, got {type(tree).__name__} ({path})"
        )
    return tree


def load_config(*paths: PathLike) -> ConfigStore:
    """Load and layer configuration files into a single :class:`ConfigStore`.

    Args:
        *paths: Files to load, lowest precedence first.

    Returns:
        The merged configuration tree.

    Raises:
        ManifestError: If any file cannot be loaded.
    """
    store = ConfigStore()
    for path in paths:
        store.merge(read_tree(path))
        logger.debug("Loaded configuration file %s", path)
    return store
