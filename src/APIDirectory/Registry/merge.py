"""Field-precedence rules for registry entries and document patches."""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional

__all__ = ["merge_entry", "deep_overlay"]


def merge_entry(old: Optional[Mapping[str, Any]], new: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay ``new`` onto ``old`` one level deep.

    Keys present in ``new`` with a value other than ``None`` win.  Every other
    key of ``old`` survives untouched, so bookkeeping such as ``added``,
    ``statusCode`` or a previously recorded ``preferred`` flag is never lost
    when a document is re-ingested.

    Examples:
        >>> merge_entry({"added": "a", "hash": "1"}, {"hash": "2", "preferred": None})
        {'added': 'a', 'hash': '2'}
    """

    merged: Dict[str, Any] = dict(old or {})
    for key, value in new.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def deep_overlay(base: Any, patch: Any) -> Any:
    """Return ``base`` with ``patch`` applied recursively.

    Mappings recurse key by key, lists in ``patch`` replace lists in ``base``
    wholesale, and any other value in ``patch`` replaces the base value.
    Neither argument is mutated.

    Examples:
        >>> deep_overlay({"info": {"title": "a", "tags": [1]}}, {"info": {"tags": [2]}})
        {'info': {'title': 'a', 'tags': [2]}}
    """

    if isinstance(base, Mapping) and isinstance(patch, Mapping):
        result: Dict[Any, Any] = {key: copy.deepcopy(value) for key, value in base.items()}
        for key, value in patch.items():
            result[key] = deep_overlay(result[key], value) if key in result else copy.deepcopy(value)
        return result
    return copy.deepcopy(patch)
