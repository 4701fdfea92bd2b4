"""Helpers for addressing fields of schema-less records by dotted path."""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, MutableMapping, Sequence
from typing import Any


class _Undefined:
    """Marker for a value that is not there at all (as opposed to ``None``)."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


def is_undefined(value: Any) -> bool:
    """Return True if value is the UNDEFINED marker."""
    return value is UNDEFINED


def is_record(value: Any) -> bool:
    """Return True if value can be stored in a collection.

    Strings, bytes, numbers, booleans, None and UNDEFINED are rejected;
    mappings, sequences and arbitrary objects are accepted.
    """
    if value is None or value is UNDEFINED:
        return False
    return not isinstance(value, (str, bytes, bytearray, int, float, complex))


def is_number(value: Any) -> bool:
    """Return True for int/float values usable in aggregations."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _child(obj: Any, key: str) -> Any:
    """Return one level of a record, or UNDEFINED."""
    if obj is None or obj is UNDEFINED:
        return UNDEFINED
    if isinstance(obj, Mapping):
        return obj.get(key, UNDEFINED)
    if isinstance(obj, Sequence) and not isinstance(obj, (str, bytes)):
        if key.lstrip("-").isdigit():
            pos = int(key)
            if 0 <= pos < len(obj):
                return obj[pos]
        return UNDEFINED
    if isinstance(obj, (str, bytes, int, float)):
        return UNDEFINED
    return getattr(obj, key, UNDEFINED)


def get_nested_value(path: str, obj: Any) -> Any:
    """Return the value at a dotted path, or UNDEFINED if any step is missing.

    >>> get_nested_value("b.a", {"a": 1, "b": {"a": 2}})
    2
    """
    value = obj
    for key in path.split("."):
        value = _child(value, key)
        if value is UNDEFINED:
            return UNDEFINED
    return value


def has_nested_property(path: str, obj: Any) -> bool:
    """Return True if the dotted path exists in obj (even if its value is None)."""
    return get_nested_value(path, obj) is not UNDEFINED


def set_nested_value(path: str, value: Any, obj: MutableMapping[str, Any] | None = None) -> dict[str, Any]:
    """Set the value at a dotted path, creating intermediate dicts.

    Args:
        path: Dotted path, e.g. ``"a.b.c"``.
        value: Value to store.
        obj: Target mapping. A new dict is created if omitted.

    Returns:
        The modified (or newly created) mapping.
    """
    if obj is None or not isinstance(obj, MutableMapping):
        obj = {}
    keys = path.split(".")
    target = obj
    for key in keys[:-1]:
        nxt = target.get(key)
        if not isinstance(nxt, MutableMapping):
            nxt = {}
            target[key] = nxt
        target = nxt
    target[keys[-1]] = value
    return obj  # type: ignore[return-value]


def delete_nested_key(path: str, obj: Any) -> bool:
    """Delete the key at a dotted path. Returns True if something was removed."""
    keys = path.split(".")
    parent = obj
    for key in keys[:-1]:
        parent = _child(parent, key)
        if parent is UNDEFINED:
            return False
    if isinstance(parent, MutableMapping) and keys[-1] in parent:
        del parent[keys[-1]]
        return True
    return False


def _as_list(paths: str | Sequence[str]) -> list[str]:
    if isinstance(paths, str):
        return [paths]
    return list(paths)


def subobj(obj: Any, select: str | Sequence[str] | None) -> dict[str, Any]:
    """Return a new dict holding only the selected (dotted) properties of obj."""
    out: dict[str, Any] = {}
    if not select:
        return out
    for path in _as_list(select):
        value = get_nested_value(path, obj)
        if value is not UNDEFINED:
            set_nested_value(path, value, out)
    return out


def skim(obj: Any, remove: str | Sequence[str] | None) -> Any:
    """Return a deep copy of obj with the given (dotted) properties removed."""
    out = copy.deepcopy(obj)
    if not remove:
        return out
    for path in _as_list(remove):
        delete_nested_key(path, out)
    return out


def split(obj: Any, key: str) -> list[Any]:
    """Split a record along an object-valued property.

    One copy of the record is produced per leaf value of ``obj[key]``;
    in each copy ``key`` holds only that leaf. Records that are not
    mappings are copied whole.

    >>> split({"a": 1, "b": {"c": 2, "d": 3}}, "b")
    [{'a': 1, 'b': {'c': 2}}, {'a': 1, 'b': {'d': 3}}]
    """
    if not isinstance(obj, Mapping):
        return [copy.deepcopy(obj)]
    if not key or not isinstance(obj.get(key), Mapping):
        return [copy.deepcopy(dict(obj))]

    model = copy.deepcopy(dict(obj))
    model[key] = {}
    out: list[dict[str, Any]] = []

    def _split_value(value: Mapping[str, Any]) -> None:
        for name, leaf in value.items():
            if isinstance(leaf, Mapping):
                _split_value(leaf)
            else:
                item = copy.deepcopy(model)
                item[key][name] = leaf
                out.append(item)

    _split_value(obj[key])
    return out


def equals(a: Any, b: Any) -> bool:
    """Deep equality; values that cannot be compared are unequal."""
    if a is b:
        return True
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


def in_array(needle: Any, haystack: Sequence[Any] | None) -> bool:
    """Return True if needle is deep-equal to any element of haystack."""
    if not haystack:
        return False
    return any(equals(needle, item) for item in haystack)


def distinct(items: Sequence[Any]) -> list[Any]:
    """Return a copy of items without deep-equal duplicates, keeping first occurrences."""
    out: list[Any] = []
    for item in items:
        if not in_array(item, out):
            out.append(item)
    return out


def obj_to_array(obj: Any, keyed: bool = False, level: int | None = None, _depth: int = 1) -> list[Any]:
    """Flatten a record into a list of values (or key, value pairs if keyed).

    Mappings are flattened ``level`` levels deep (all the way if None);
    deeper mappings are kept as values.

    >>> obj_to_array({"a": 1, "b": {"c": 2}}, keyed=True, level=1)
    ['a', 1, 'b', {'c': 2}]
    """
    if not isinstance(obj, Mapping):
        return [obj]
    out: list[Any] = []
    for key, value in obj.items():
        if keyed:
            out.append(key)
        if isinstance(value, Mapping) and (level is None or _depth < level):
            out.extend(obj_to_array(value, keyed, level, _depth + 1))
        else:
            out.append(value)
    return out


def mixin(target: Any, update: Mapping[str, Any]) -> Any:
    """Copy all top-level properties of update into target (in place)."""
    if isinstance(target, MutableMapping):
        target.update(update)
    else:
        for key, value in update.items():
            setattr(target, key, value)
    return target
