"""Path-keyed configuration store.

The store wraps a tree of nested dicts and addresses it by path. A path is either
a string, split on ``.``, or a sequence of segments used verbatim. Service
identifiers are dotted in Python, so code that builds paths around an identifier
always uses tuples::

    >>> store = ConfigStore({"preference": {"app.mail.Mailer": {"singleton": True}}})
    >>> store.get(("preference", "app.mail.Mailer", "singleton"))
    True
    >>> store.get("preference.app")  # the string form splits on every dot
    >>> store.has(("preference", "app.mail.Mailer"))
    True

Sub-views returned by :meth:`ConfigStore.from_path` share the underlying data with
the store they came from, so edits through a view are visible in the whole tree.

Merge policy:
    - mapping + mapping -> recursive merge by key
    - anything else -> the incoming value replaces the existing one (lists included)

Incoming values are copied structurally (mappings and lists only); leaves such as
class objects or pre-built instances are kept by reference.
"""

from collections.abc import Mapping
from typing import Any, Optional, Sequence, Union

__all__ = ["Path", "ConfigStore", "to_path", "copy_tree", "deep_merge"]

Path = Union[str, Sequence[str]]

_MISSING = object()


def to_path(path: Path) -> tuple[str, ...]:
    """Normalise a path into a tuple of segments.

    Args:
        path: A dotted string or a sequence of segments. The empty string and the
            empty sequence both address the root of the tree.

    Returns:
        The path as a tuple of strings.
    """
    if isinstance(path, str):
        return tuple(segment for segment in path.split(".") if segment)
    return tuple(str(segment) for segment in path)


def copy_tree(value: Any) -> Any:
    """Copy mappings and lists recursively, leaving every other value shared."""
    if isinstance(value, Mapping):
        return {key: copy_tree(item) for key, item in value.items()}
    if isinstance(value, list):
        return [copy_tree(item) for item in value]
    return value


def deep_merge(target: dict[str, Any], fragment: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``fragment`` into ``target`` in place and return ``target``.

    Args:
        target: The tree receiving the values.
        fragment: The values to merge; it is never mutated or aliased.

    Returns:
        ``target``, for chaining.
    """
    for key, incoming in fragment.items():
        existing = target.get(key, _MISSING)
        if isinstance(existing, dict) and isinstance(incoming, Mapping):
            deep_merge(existing, incoming)
        else:
            target[key] = copy_tree(incoming)
    return target


class ConfigStore:
    """A mutable tree of configuration values addressed by path.

    Attributes:
        data: The dict the store reads and writes. For a sub-view this is the nested
            dict inside the parent tree.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self.data: dict[str, Any] = copy_tree(data) if data is not None else {}

    @classmethod
    def _view(cls, node: dict[str, Any]) -> "ConfigStore":
        view = cls.__new__(cls)
        view.data = node
        return view

    def _lookup(self, path: Path) -> Any:
        node: Any = self.data
        for segment in to_path(path):
            if not isinstance(node, dict) or segment not in node:
                return _MISSING
            node = node[segment]
        return node

    def has(self, path: Path) -> bool:
        return self._lookup(path) is not _MISSING

    def __contains__(self, path: Path) -> bool:
        return self.has(path)

    def get(self, path: Path, default: Any = None) -> Any:
        """Return the value at ``path``, or ``default`` when it is absent.

        The returned value is the live object stored in the tree.
        """
        value = self._lookup(path)
        return default if value is _MISSING else value

    def set(self, path: Path, value: Any) -> None:
        """Store ``value`` at ``path``, creating intermediate mappings as needed.

        Raises:
            ValueError: If ``path`` addresses the root.
        """
        segments = to_path(path)
        if not segments:
            raise ValueError("Cannot replace the root of a configuration store")
        node = self._ensure(segments[:-1])
        node[segments[-1]] = copy_tree(value)

    def merge(self, fragment: Mapping[str, Any]) -> None:
        """Deep-merge ``fragment`` into the root of the tree."""
        deep_merge(self.data, fragment)

    def merge_at(self, path: Path, fragment: Mapping[str, Any]) -> None:
        """Deep-merge ``fragment`` into the mapping at ``path``, creating it if needed."""
        deep_merge(self._ensure(to_path(path)), fragment)

    def unset(self, path: Path) -> None:
        """Remove the value at ``path``. Missing paths are ignored."""
        segments = to_path(path)
        if not segments:
            self.data.clear()
            return
        parent = self._lookup(segments[:-1])
        if isinstance(parent, dict):
            parent.pop(segments[-1], None)

    def from_path(self, path: Path, create: bool = False) -> "ConfigStore":
        """Return a live view of the mapping at ``path``.

        Args:
            path: The path of the mapping to view.
            create: Create an empty mapping at ``path`` when it is absent.

        Raises:
            KeyError: If ``path`` is absent (and ``create`` is False) or does not
                address a mapping.
        """
        segments = to_path(path)
        if create:
            return self._view(self._ensure(segments))
        node = self._lookup(segments)
        if not isinstance(node, dict):
            raise KeyError(".".join(segments))
        return self._view(node)

    def as_dict(self) -> dict[str, Any]:
        """Return a structural copy of the tree."""
        return copy_tree(self.data)

    def copy(self) -> "ConfigStore":
        """Return an independent store holding a structural copy of the tree."""
        return ConfigStore(self.data)

    def _ensure(self, segments: tuple[str, ...]) -> dict[str, Any]:
        node = self.data
        for segment in segments:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        return node

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"ConfigStore({self.data!r})"
