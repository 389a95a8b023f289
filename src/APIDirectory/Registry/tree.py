"""Explicitly auto-vivifying nested mapping used for run-scoped bookkeeping."""

from __future__ import annotations

from typing import Any, Dict, Hashable, Iterable, Mapping, Optional

__all__ = ["Tree", "sort_tree"]


class Tree(dict):
    """A ``dict`` whose :meth:`child` accessor creates missing sub-trees.

    Plain item access never creates anything: ``tree["a"]`` still raises
    :class:`KeyError` for missing keys.  Callers that want nodes created on
    first access use :meth:`child` or :meth:`path`; callers that test for
    absence use :meth:`has`.
    """

    def child(self, key: Hashable) -> "Tree":
        """Return the sub-tree at ``key``, inserting an empty one if absent."""

        value = self.get(key)
        if isinstance(value, Tree):
            return value
        if isinstance(value, Mapping):
            value = Tree.from_mapping(value)
        elif value is None:
            value = Tree()
        else:
            raise TypeError(f"cannot descend into non-mapping value at {key!r}")
        self[key] = value
        return value

    def path(self, keys: Iterable[Hashable]) -> "Tree":
        """Descend through ``keys`` creating each level as needed."""

        node = self
        for key in keys:
            node = node.child(key)
        return node

    def has(self, key: Hashable) -> bool:
        return key in self

    def to_dict(self) -> Dict[Any, Any]:
        """Return a deep copy made of plain ``dict`` instances."""

        return _plain(self)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[Any, Any]]) -> "Tree":
        tree = cls()
        for key, value in (mapping or {}).items():
            tree[key] = cls.from_mapping(value) if isinstance(value, Mapping) else value
        return tree


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _sort_key(key: Any) -> tuple:
    return (not isinstance(key, str), str(key))


def sort_tree(value: Any) -> Any:
    """Recursively sort mapping keys, leaving list order untouched."""

    if isinstance(value, Mapping):
        return {key: sort_tree(value[key]) for key in sorted(value, key=_sort_key)}
    if isinstance(value, list):
        return [sort_tree(item) for item in value]
    return value
