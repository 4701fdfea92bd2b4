"""Comparator functions used for sorting and selecting records."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from nddb.objects import UNDEFINED, get_nested_value

Comparator = Callable[[Any, Any], int]


def compare_values(v1: Any, v2: Any) -> int:
    """Three-way compare two field values.

    UNDEFINED sorts after every defined value; two UNDEFINED values are
    equal. Values that cannot be ordered against each other compare equal.
    """
    if v1 is UNDEFINED and v2 is UNDEFINED:
        return 0
    if v1 is UNDEFINED:
        return 1
    if v2 is UNDEFINED:
        return -1
    try:
        if v1 > v2:
            return 1
        if v2 > v1:
            return -1
    except TypeError:
        return 0
    return 0


def default_comparator(path: str) -> Comparator:
    """Build the generic ascending comparator for a field path.

    The returned function compares two records by the value found at
    ``path`` in each of them.
    """

    def compare(o1: Any, o2: Any) -> int:
        if o1 is UNDEFINED and o2 is UNDEFINED:
            return 0
        if o1 is UNDEFINED:
            return 1
        if o2 is UNDEFINED:
            return -1
        return compare_values(get_nested_value(path, o1), get_nested_value(path, o2))

    compare.__name__ = f"compare_{path.replace('.', '_')}"
    return compare


def global_compare(o1: Any, o2: Any) -> int:
    """Fallback comparator for sorting whole records.

    Defined records come before UNDEFINED ones; any two defined records
    are considered equal, so a stable sort keeps their order.
    """
    if o1 is UNDEFINED and o2 is UNDEFINED:
        return 0
    if o2 is UNDEFINED:
        return -1
    if o1 is UNDEFINED:
        return 1
    return 0


class ComparatorRegistry:
    """Per-field comparator functions with a generic fallback."""

    def __init__(self, comparators: dict[str, Comparator] | None = None) -> None:
        self._comparators: dict[str, Comparator] = dict(comparators or {})

    def register(self, path: str, comparator: Comparator) -> None:
        """Register (or replace) the comparator for a field path."""
        self._comparators[path] = comparator

    def get(self, path: str) -> Comparator:
        """Return the registered comparator for path, or the generic one."""
        comparator = self._comparators.get(path)
        if comparator is not None:
            return comparator
        return default_comparator(path)

    def chain(self, paths: list[str]) -> Comparator:
        """Lexicographic comparator over several field paths."""
        comparators = [self.get(path) for path in paths]

        def compare(o1: Any, o2: Any) -> int:
            result = 0
            for comparator in comparators:
                result = comparator(o1, o2)
                if result != 0:
                    return result
            return result

        return compare

    def copy(self) -> ComparatorRegistry:
        return ComparatorRegistry(self._comparators)

    def as_dict(self) -> dict[str, Comparator]:
        return dict(self._comparators)

    def __contains__(self, path: object) -> bool:
        return path in self._comparators

    def __iter__(self) -> Iterator[str]:
        return iter(self._comparators)

    def __len__(self) -> int:
        return len(self._comparators)
