"""Configuration for collections."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

import voluptuous.error
from voluptuous import ALLOW_EXTRA, All, Any as AnyOf, Optional, Range, Schema

logger = logging.getLogger(__name__)

EVENTS = ("insert", "remove", "update")


class OptionsError(ValueError):
    """Raised when an options mapping does not match the expected format."""


def _callable(value: Any) -> Any:
    if not callable(value):
        raise voluptuous.error.Invalid("expected a callable")
    return value


def _callable_map(value: Any) -> Any:
    if not isinstance(value, Mapping):
        raise voluptuous.error.Invalid("expected a mapping of name to callable")
    for name, func in value.items():
        if not isinstance(name, str) or not callable(func):
            raise voluptuous.error.Invalid(f"invalid entry for '{name}': expected a callable")
    return dict(value)


def _hooks(value: Any) -> Any:
    if not isinstance(value, Mapping):
        raise voluptuous.error.Invalid("expected a mapping of event to listeners")
    out: dict[str, list[Callable[..., Any]]] = {}
    for event, listeners in value.items():
        if event not in EVENTS:
            raise voluptuous.error.Invalid(f"unknown event '{event}'")
        if callable(listeners):
            listeners = [listeners]
        for listener in listeners:
            _callable(listener)
        out[event] = list(listeners)
    return out


UPDATE_SCHEMA = Schema({
    Optional("indexes"): bool,
    Optional("sort"): bool,
    Optional("pointer"): bool,
})

# The single-letter keys are accepted as aliases of the long ones.
OPTIONS_SCHEMA = Schema({
    Optional("update"): UPDATE_SCHEMA,
    Optional("operators"): _callable_map,
    Optional("global_compare"): _callable,
    Optional("comparators"): _callable_map,
    Optional("C"): _callable_map,
    Optional("indexes"): _callable_map,
    Optional("I"): _callable_map,
    Optional("hashes"): _callable_map,
    Optional("H"): _callable_map,
    Optional("views"): _callable_map,
    Optional("V"): _callable_map,
    Optional("tags"): AnyOf(None, dict),
    Optional("hooks"): _hooks,
    Optional("cursor"): All(int, Range(min=0)),
    Optional("nddb_pointer"): All(int, Range(min=0)),
}, extra=ALLOW_EXTRA)

_ALIASES = {
    "C": "comparators",
    "I": "indexes",
    "H": "hashes",
    "V": "views",
    "nddb_pointer": "cursor",
}


@dataclass
class UpdatePolicy:
    """What a collection refreshes automatically after it changes.

    Attributes:
        indexes: Keep indexes, hashes and views in sync on every insert
            and remove.
        sort: Re-sort with the default criterion after every change.
        pointer: Move the cursor to the last item after every change.
    """

    indexes: bool = True
    sort: bool = False
    pointer: bool = False

    def merge(self, **overrides: bool) -> UpdatePolicy:
        return replace(self, **overrides)


@dataclass
class CollectionOptions:
    """Settings a collection is built from, and that its breeds inherit."""

    update: UpdatePolicy = field(default_factory=UpdatePolicy)
    operators: dict[str, Callable[..., Any]] = field(default_factory=dict)
    global_compare: Callable[[Any, Any], int] | None = None
    comparators: dict[str, Callable[[Any, Any], int]] = field(default_factory=dict)
    indexes: dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    hashes: dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    views: dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    tags: dict[str, Any] = field(default_factory=dict)
    hooks: dict[str, list[Callable[..., Any]]] = field(default_factory=dict)
    cursor: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CollectionOptions:
        """Validate an options mapping and build CollectionOptions from it.

        Args:
            data: Mapping with any of the keys of this class (``C``, ``I``,
                ``H``, ``V`` and ``nddb_pointer`` are accepted as aliases).
                Unknown keys are kept in ``extra``.

        Raises:
            OptionsError: If a known key has a value of the wrong shape.
        """
        if data is None:
            return cls()
        try:
            validated = OPTIONS_SCHEMA(dict(data))
        except voluptuous.error.MultipleInvalid as e:
            logger.debug(f"Invalid collection options: {e}")
            raise OptionsError(f"Invalid collection options at {e.path}: {e.msg}") from e

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in validated.items():
            key = _ALIASES.get(key, key)
            if key == "update":
                kwargs["update"] = UpdatePolicy(**value)
            elif key == "tags":
                kwargs["tags"] = dict(value or {})
            elif key in known and key != "extra":
                kwargs[key] = value
            else:
                extra[key] = value
        kwargs["extra"] = extra
        return cls(**kwargs)

    def copy(self) -> CollectionOptions:
        """Copy the containers so that the copy shares no mutable state."""
        return CollectionOptions(
            update=replace(self.update),
            operators=dict(self.operators),
            global_compare=self.global_compare,
            comparators=dict(self.comparators),
            indexes=dict(self.indexes),
            hashes=dict(self.hashes),
            views=dict(self.views),
            tags=dict(self.tags),
            hooks={event: list(listeners) for event, listeners in self.hooks.items()},
            cursor=self.cursor,
            extra=dict(self.extra),
        )
