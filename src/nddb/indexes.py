"""Indexes, hashes and views kept in sync with a collection's items."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from nddb.objects import UNDEFINED, mixin

if TYPE_CHECKING:
    from nddb.collection import Collection

logger = logging.getLogger(__name__)

Extractor = Callable[[Any], Any]

# Lookups that fail on a record missing the field mean "skip this record".
_MISSING_FIELD_ERRORS = (KeyError, IndexError, AttributeError, TypeError)


def extract(func: Extractor, record: Any) -> Any:
    """Apply an extractor; missing fields and None map to UNDEFINED."""
    try:
        value = func(record)
    except _MISSING_FIELD_ERRORS as e:
        logger.debug(f"Extractor {getattr(func, '__name__', func)!r} skipped a record: {e!r}")
        return UNDEFINED
    return UNDEFINED if value is None else value


def _is_hashable(key: Any) -> bool:
    try:
        hash(key)
    except TypeError:
        logger.debug(f"Skipped a record with unhashable key {key!r}")
        return False
    return True


class Index:
    """Unique-key lookup into a collection.

    Maps each key returned by the index function to the position of the
    record in the collection. A repeated key points to the record inserted
    last.
    """

    def __init__(self, name: str, collection: Collection) -> None:
        self.name = name
        self.collection = collection
        self.resolve: dict[Any, int] = {}

    def _add(self, key: Any, position: int) -> None:
        self.resolve[key] = position

    def _remove(self, key: Any) -> None:
        self.resolve.pop(key, None)

    def size(self) -> int:
        """Return the number of keys in the index."""
        return len(self.resolve)

    def get(self, key: Any) -> Any:
        """Return the record stored under key, or False if there is none."""
        position = self.resolve.get(key)
        if position is None or position >= len(self.collection.items):
            return False
        return self.collection.items[position]

    def pop(self, key: Any) -> Any:
        """Remove the record stored under key from the collection and return it.

        Returns False if the key is not in the index. Positions of the
        remaining records shift, so all structures are rebuilt.
        """
        position = self.resolve.get(key)
        if position is None or position >= len(self.collection.items):
            return False
        record = self.collection.items.pop(position)
        del self.resolve[key]
        self.collection.emit("remove", record)
        self.collection.rebuild_indexes()
        self.collection._auto_update(indexes=False)
        return record

    def update(self, key: Any, update: Mapping[str, Any]) -> Any:
        """Merge fields into the record stored under key and return it.

        Returns False if the key is not in the index.
        """
        position = self.resolve.get(key)
        if position is None or position >= len(self.collection.items):
            return False
        record = self.collection.items[position]
        mixin(record, update)
        self.collection.emit("update", record)
        self.collection._auto_update()
        return record

    def get_all_keys(self) -> list[Any]:
        """Return all keys in the index."""
        return list(self.resolve)

    def get_all_key_elements(self) -> dict[Any, Any]:
        """Return a dict of key to record for every indexed record."""
        items = self.collection.items
        return {key: items[position] for key, position in self.resolve.items()}

    def __contains__(self, key: object) -> bool:
        return key in self.resolve

    def __len__(self) -> int:
        return len(self.resolve)

    def __repr__(self) -> str:
        return f"Index({self.name!r}, size={len(self.resolve)})"


class IndexEngine:
    """Registrations and materialized contents of indexes, hashes and views.

    The registrations (name -> function) are carried over when a collection
    is bred; the materialized structures belong to one collection only.
    """

    def __init__(
        self,
        collection: Collection,
        indexes: dict[str, Extractor] | None = None,
        hashes: dict[str, Extractor] | None = None,
        views: dict[str, Extractor] | None = None,
    ) -> None:
        self.collection = collection
        self.index_funcs: dict[str, Extractor] = dict(indexes or {})
        self.hash_funcs: dict[str, Extractor] = dict(hashes or {})
        self.view_funcs: dict[str, Extractor] = dict(views or {})
        self.indexes: dict[str, Index] = {}
        self.hashes: dict[str, dict[Any, Collection]] = {}
        self.views: dict[str, Collection] = {}
        self.reset()

    # Registration

    def names(self) -> set[str]:
        return set(self.index_funcs) | set(self.hash_funcs) | set(self.view_funcs)

    def add_index(self, name: str, func: Extractor) -> None:
        self.index_funcs[name] = func
        self.indexes[name] = Index(name, self.collection)

    def add_hash(self, name: str, func: Extractor) -> None:
        self.hash_funcs[name] = func
        self.hashes[name] = {}

    def add_view(self, name: str, func: Extractor) -> None:
        self.view_funcs[name] = func
        self.views[name] = self.collection._spawn()

    # Maintenance

    def reset(self, indexes: bool = True, hashes: bool = True, views: bool = True) -> None:
        """Empty the selected structures, keeping their registrations."""
        if indexes:
            self.indexes = {name: Index(name, self.collection) for name in self.index_funcs}
        if hashes:
            self.hashes = {name: {} for name in self.hash_funcs}
        if views:
            self.views = {name: self.collection._spawn() for name in self.view_funcs}

    def rebuild(self, items: list[Any]) -> None:
        """Reset all structures and re-apply every function to every item.

        One pass over the items, calling only the kinds of structure that
        have registrations.
        """
        has_i, has_h, has_v = bool(self.index_funcs), bool(self.hash_funcs), bool(self.view_funcs)
        if not (has_i or has_h or has_v):
            return
        self.reset(indexes=has_i, hashes=has_h, views=has_v)

        steps: list[Callable[[Any, int], None]] = []
        if has_i:
            steps.append(self.index_it)
        if has_h:
            steps.append(lambda record, position: self.hash_it(record))
        if has_v:
            steps.append(lambda record, position: self.view_it(record))

        for position, record in enumerate(items):
            for step in steps:
                step(record, position)

    def index_it(self, record: Any, position: int) -> None:
        if not self.index_funcs:
            return
        for name, func in self.index_funcs.items():
            key = extract(func, record)
            if key is UNDEFINED or not _is_hashable(key):
                continue
            index = self.indexes.get(name)
            if index is None:
                index = self.indexes[name] = Index(name, self.collection)
            index._add(key, position)

    def hash_it(self, record: Any) -> None:
        if not self.hash_funcs:
            return
        for name, func in self.hash_funcs.items():
            key = extract(func, record)
            if key is UNDEFINED or not _is_hashable(key):
                continue
            buckets = self.hashes.setdefault(name, {})
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = self.collection._spawn()
            bucket.insert(record)

    def view_it(self, record: Any) -> None:
        if not self.view_funcs:
            return
        for name, func in self.view_funcs.items():
            if extract(func, record) is UNDEFINED:
                continue
            view = self.views.get(name)
            if view is None:
                view = self.views[name] = self.collection._spawn()
            view.insert(record)

    def add_record(self, record: Any, position: int) -> None:
        """Reflect one newly appended record in every structure."""
        self.index_it(record, position)
        self.hash_it(record)
        self.view_it(record)
