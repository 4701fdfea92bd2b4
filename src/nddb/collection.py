"""In-memory collection of schema-less records with a chainable query builder."""

from __future__ import annotations

import copy
import functools
import logging
import math
import random
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from nddb.comparators import Comparator, ComparatorRegistry
from nddb.comparators import global_compare as default_global_compare
from nddb.indexes import Extractor, Index, IndexEngine
from nddb.objects import (
    UNDEFINED,
    distinct,
    equals,
    get_nested_value,
    has_nested_property,
    in_array,
    is_number,
    is_record,
    mixin,
    obj_to_array,
    set_nested_value,
    skim,
    split,
    subobj,
)
from nddb.options import EVENTS, CollectionOptions
from nddb.query import (
    AND,
    COMPARISON_OPERATORS,
    EXISTS,
    OR,
    RANGE_OPERATORS,
    Condition,
    OperatorFactory,
    QueryBuilder,
)
from nddb.storage import (
    FileStorage,
    StorageBackend,
    decode_records,
    detect_format,
    encode_csv,
    encode_ndjson,
    encode_records,
    iter_csv_rows,
)

_parser = None


def _get_parser() -> Any:
    """Return the shared text query parser, creating it on first use."""
    global _parser
    if _parser is None:
        from nddb.parsing.query_parser import QueryParser

        _parser = QueryParser()
    return _parser


class Collection:
    """An ordered collection of records.

    Records are any non-primitive values: dicts, lists or objects. Fields
    are addressed by dotted paths (``"a.b.c"``). Queries, filters and most
    set operations return a new collection (a *breed*) that shares the
    configuration of this one but owns its own items.

    Example:
        >>> c = Collection([{"a": 1}, {"a": 2}, {"a": 3}])
        >>> c.select("a", ">", 1).execute().fetch()
        [{'a': 2}, {'a': 3}]
    """

    def __init__(
        self,
        items: Iterable[Any] | None = None,
        options: CollectionOptions | Mapping[str, Any] | None = None,
        *,
        logger: logging.Logger | None = None,
        storage: StorageBackend | None = None,
        factory: Callable[..., Collection] | None = None,
    ) -> None:
        """Create a collection.

        Args:
            items: Initial records, imported with ``import_db``.
            options: A CollectionOptions, or a plain mapping validated by
                ``CollectionOptions.from_dict``.
            logger: Logger used for soft failures. Defaults to this
                module's logger.
            storage: Backend used by ``save`` and ``load``. Defaults to
                the local filesystem.
            factory: Called to create breeds and nested collections.
                Defaults to the class of this collection.

        Raises:
            OptionsError: If ``options`` is a mapping of the wrong shape.
        """
        if isinstance(options, CollectionOptions):
            opts = options.copy()
        else:
            opts = CollectionOptions.from_dict(options)

        self.options = opts
        self.log = logger if logger is not None else logging.getLogger(__name__)
        self.storage: StorageBackend | None = storage if storage is not None else FileStorage()
        self.factory: Callable[..., Collection] = factory if factory is not None else type(self)

        self.items: list[Any] = []
        self.tags: dict[str, Any] = dict(opts.tags)
        self.hooks: dict[str, list[Callable[..., Any]]] = {event: [] for event in EVENTS}
        for event, listeners in opts.hooks.items():
            self.hooks[event].extend(listeners)
        self.cursor = opts.cursor
        self.update_policy = opts.update

        self.query = QueryBuilder(opts.operators)
        self.comparators = ComparatorRegistry(opts.comparators)
        self.global_compare: Comparator = opts.global_compare or default_global_compare

        self.engine = IndexEngine(self, opts.indexes, opts.hashes, opts.views)

        if items is not None:
            self.import_db(items)

    # Breeding

    def _spawn(self) -> Collection:
        """Create an empty collection with no configuration (hash buckets, views)."""
        return self.factory(None, None, logger=self.log, storage=self.storage, factory=self.factory)

    def clone_settings(self) -> CollectionOptions:
        """Return a copy of the configuration that a breed starts from.

        Function registrations, tags, hooks and the update policy are
        carried over; materialized indexes and the cursor are not.
        """
        return CollectionOptions(
            update=self.update_policy.merge(),
            operators=dict(self.query.operators),
            global_compare=self.global_compare,
            comparators=self.comparators.as_dict(),
            indexes=dict(self.engine.index_funcs),
            hashes=dict(self.engine.hash_funcs),
            views=dict(self.engine.view_funcs),
            tags=dict(self.tags),
            hooks={event: list(listeners) for event, listeners in self.hooks.items()},
            extra=dict(self.options.extra),
        )

    def breed(self, items: Iterable[Any] | None = None) -> Collection:
        """Return a new collection with this configuration and the given items.

        Args:
            items: Records of the new collection. Defaults to the records
                of this one (the list is copied, records are shared).
        """
        source = self.items if items is None else items
        return self.factory(
            list(source),
            self.clone_settings(),
            logger=self.log,
            storage=self.storage,
            factory=self.factory,
        )

    # Insertion and removal

    def _insert(self, record: Any, update_indexes: bool) -> bool:
        if not is_record(record):
            return False
        self.items.append(record)
        if update_indexes:
            self.engine.add_record(record, len(self.items) - 1)
        self.emit("insert", record)
        return True

    def insert(self, record: Any) -> None:
        """Append a record.

        Strings, numbers, booleans, None and UNDEFINED are ignored.
        """
        self._insert(record, self.update_policy.indexes)
        self._auto_update(indexes=False)

    def import_db(self, records: Iterable[Any] | None) -> None:
        """Insert many records, refreshing indexes once at the end.

        Raises:
            TypeError: If records is not an iterable of records.
        """
        if records is None:
            return
        if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
            raise TypeError(f"import_db expects a list of records, got {type(records).__name__}")
        for record in records:
            self._insert(record, False)
        self._auto_update()

    def _auto_update(self, **overrides: bool) -> None:
        """Apply the update policy after a change, with per-call overrides."""
        policy = self.update_policy.merge(**overrides)
        if policy.pointer:
            self.cursor = len(self.items) - 1
        if policy.sort:
            self.sort()
        if policy.indexes:
            self.rebuild_indexes()

    def remove(self) -> Collection:
        """Remove every record, emitting ``remove`` with the removed list."""
        removed = self.items
        self.emit("remove", removed)
        self.items = []
        self._auto_update()
        return self

    def clear(self, confirm: bool = False) -> bool:
        """Destroy records, tags, the pending query and structure contents.

        Registrations of indexes, hashes, views and comparators survive.
        Nothing happens unless ``confirm`` is True.
        """
        if not confirm:
            self.log.warning("Do you really want to clear the current collection? Pass confirm=True.")
            return False
        self.items = []
        self.tags = {}
        self.query.reset()
        self.cursor = 0
        self.engine.reset()
        return True

    # Events

    def on(self, event: str, func: Callable[..., Any]) -> bool:
        """Register a listener for ``insert``, ``remove`` or ``update``.

        Raises:
            TypeError: If func is not callable.
        """
        if not callable(func):
            raise TypeError(f"Listener for '{event}' must be callable, got {type(func).__name__}")
        if event not in self.hooks:
            self.log.error(f"Unknown event '{event}'. Expected one of: {', '.join(EVENTS)}")
            return False
        self.hooks[event].append(func)
        return True

    def off(self, event: str, func: Callable[..., Any] | None = None) -> bool:
        """Remove one listener, or all listeners of an event if func is None."""
        listeners = self.hooks.get(event)
        if not listeners:
            return False
        if func is None:
            self.hooks[event] = []
            return True
        for i, listener in enumerate(listeners):
            if listener == func:
                del listeners[i]
                return True
        return False

    def emit(self, event: str, payload: Any = None) -> None:
        """Call every listener of event with payload."""
        for listener in list(self.hooks.get(event, ())):
            listener(payload)

    # Ordering

    def _resolve_criterion(self, criterion: Any) -> Comparator:
        if criterion is None:
            return self.global_compare
        if callable(criterion):
            return criterion
        if isinstance(criterion, (list, tuple)):
            return self.comparators.chain(list(criterion))
        if isinstance(criterion, str):
            return self.comparators.get(criterion)
        raise TypeError(f"Cannot sort by {type(criterion).__name__}")

    def sort(self, criterion: str | Sequence[str] | Comparator | None = None) -> Collection:
        """Sort the records in place (stable).

        Args:
            criterion: None for the global comparator, a field path, a list
                of field paths compared in order, or a comparator function
                ``(a, b) -> -1 | 0 | 1``.
        """
        comparator = self._resolve_criterion(criterion)
        self.items.sort(key=functools.cmp_to_key(comparator))
        if self.update_policy.indexes:
            self.rebuild_indexes()
        return self

    def reverse(self) -> Collection:
        """Reverse the records in place."""
        self.items.reverse()
        if self.update_policy.indexes:
            self.rebuild_indexes()
        return self

    def shuffle(self) -> Collection:
        """Shuffle the records in place."""
        random.shuffle(self.items)
        if self.update_policy.indexes:
            self.rebuild_indexes()
        return self

    # Iteration and transformation

    def filter(self, predicate: Callable[[Any], Any]) -> Collection:
        """Return a breed holding the records for which predicate is truthy."""
        return self.breed([item for item in self.items if predicate(item)])

    def each(self, func: Callable[..., Any], *args: Any) -> None:
        """Call ``func(record, *args)`` for every record."""
        for item in list(self.items):
            func(item, *args)

    for_each = each

    def map(self, func: Callable[..., Any], *args: Any) -> list[Any]:
        """Return the results of ``func(record, *args)``, without None/UNDEFINED ones."""
        out = []
        for item in list(self.items):
            result = func(item, *args)
            if result is not None and result is not UNDEFINED:
                out.append(result)
        return out

    def limit(self, n: int) -> Collection:
        """Return a breed with the first n records (or the last -n if n < 0).

        ``limit(0)`` returns an empty breed.
        """
        if n == 0:
            return self.breed([])
        if n > 0:
            return self.breed(self.items[:n])
        return self.breed(self.items[n:])

    def exists(self, record: Any) -> bool:
        """Return True if a deep-equal record is in the collection."""
        return in_array(record, self.items)

    def distinct(self) -> Collection:
        """Return a breed without deep-equal duplicates."""
        return self.breed(distinct(self.items))

    def update(self, partial: Mapping[str, Any]) -> Collection:
        """Merge the fields of partial into every record, emitting ``update`` for each."""
        for item in self.items:
            mixin(item, partial)
            self.emit("update", item)
        self._auto_update()
        return self

    # Aggregations

    def _numbers(self, path: str) -> list[int | float]:
        out = []
        for item in self.items:
            value = get_nested_value(path, item)
            if is_number(value):
                out.append(value)
        return out

    def count(self, path: str | None = None) -> int:
        """Count the records that have path, or all records if path is None."""
        if path is None:
            return len(self.items)
        return sum(1 for item in self.items if has_nested_property(path, item))

    def sum(self, path: str | None = None) -> int | float | bool:
        """Sum the numeric values at path. False if there are none."""
        if path is None:
            return False
        values = self._numbers(path)
        if not values:
            return False
        return sum(values)

    def mean(self, path: str | None = None) -> int | float | bool:
        """Average of the numeric values at path. 0 if there are none."""
        if path is None:
            return False
        values = self._numbers(path)
        if not values:
            return 0
        return sum(values) / len(values)

    def stddev(self, path: str | None = None) -> float | bool:
        """Population standard deviation of the numeric values at path."""
        if path is None:
            return False
        values = self._numbers(path)
        if not values:
            return False
        mean = sum(values) / len(values)
        return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))

    def min(self, path: str | None = None) -> int | float | bool:
        if path is None:
            return False
        values = self._numbers(path)
        return min(values) if values else False

    def max(self, path: str | None = None) -> int | float | bool:
        if path is None:
            return False
        values = self._numbers(path)
        return max(values) if values else False

    # Cursor

    def get(self, pos: int) -> Any:
        """Return the record at pos, or False if pos is out of range."""
        if isinstance(pos, bool) or not isinstance(pos, int):
            return False
        if pos < 0 or pos >= len(self.items):
            return False
        return self.items[pos]

    def current(self) -> Any:
        """Return the record under the cursor, or False."""
        return self.get(self.cursor)

    def next(self) -> Any:
        """Advance the cursor and return the record there, or False at the end."""
        item = self.get(self.cursor + 1)
        if item is False:
            return False
        self.cursor += 1
        return item

    def previous(self) -> Any:
        """Move the cursor back and return the record there, or False at the start."""
        item = self.get(self.cursor - 1)
        if item is False:
            return False
        self.cursor -= 1
        return item

    def _fetch_for_cursor(self, path: str | None) -> list[Any]:
        if path is None:
            return self.fetch()
        return self.fetch_values(path)[path]

    def first(self, path: str | None = None) -> Any:
        """Move the cursor to the start and return the first record (or value at path)."""
        values = self._fetch_for_cursor(path)
        if not values:
            return UNDEFINED
        self.cursor = 0
        return values[0]

    def last(self, path: str | None = None) -> Any:
        """Move the cursor to the end and return the last record (or value at path)."""
        values = self._fetch_for_cursor(path)
        if not values:
            return UNDEFINED
        self.cursor = len(values) - 1
        return values[-1]

    # Tags

    def tag(self, name: str, ref: Any = UNDEFINED) -> Any:
        """Bind a name to a record.

        Args:
            name: Tag name.
            ref: A position in the collection, a record, or omitted to
                tag the record under the cursor.

        Returns:
            The tagged record, or False if the position is invalid.
        """
        if name is None:
            self.log.error("Cannot register an empty tag")
            return False
        if ref is UNDEFINED:
            record = self.current()
            if record is False:
                self.log.error(f"No record under the cursor ({self.cursor}) to tag as '{name}'")
                return False
        elif isinstance(ref, int) and not isinstance(ref, bool):
            if ref < 0 or ref >= len(self.items):
                self.log.error(f"Invalid position {ref} for tag '{name}'")
                return False
            record = self.items[ref]
        else:
            record = ref
        self.tags[name] = record
        return record

    def resolve_tag(self, name: str) -> Any:
        """Return the record bound to name, or UNDEFINED if there is no such tag."""
        return self.tags.get(name, UNDEFINED)

    # Queries

    def _analyze_query(self, d: Any, op: Any, value: Any) -> Condition | None:
        """Validate a condition and shape its value for the comparator."""
        if not isinstance(d, str) or not d:
            self.log.warning(f"Malformed query: {d!r} {op!r} {value!r}")
            return None

        if op is UNDEFINED:
            if value is not UNDEFINED:
                self.log.warning(f"Malformed query: {d!r} {op!r} {value!r}")
                return None
            return Condition(d, EXISTS)

        if op == "=":
            op = "=="
        if op not in self.query.operators:
            self.log.warning(f"Query error. Invalid operator detected: {op!r}")
            return None

        if op in RANGE_OPERATORS:
            if not isinstance(value, (list, tuple)):
                self.log.warning(f"Range queries need a list as value: {d!r} {op!r} {value!r}")
                return None
            if op in ("><", "<>"):
                if len(value) != 2:
                    self.log.warning(f"Range queries need exactly two bounds: {d!r} {op!r} {value!r}")
                    return None
                value = [set_nested_value(d, value[0]), set_nested_value(d, value[1])]
            else:
                value = list(value)
        elif op in COMPARISON_OPERATORS:
            if value is UNDEFINED:
                self.log.warning(f"Malformed query: {d!r} {op!r} (missing value)")
                return None
            value = set_nested_value(d, value)

        return Condition(d, op, value)

    def _add_condition(self, type: str, d: Any, op: Any, value: Any) -> Collection | bool:
        condition = self._analyze_query(d, op, value)
        if condition is None:
            return False
        self.query.add_condition(type, condition, self.get_comparator(d))
        return self

    def select(self, d: Any = UNDEFINED, op: Any = UNDEFINED, value: Any = UNDEFINED) -> Collection | bool:
        """Start a new query with one condition.

        Without arguments the pending query is cleared and the collection
        returned unchanged. Returns False if the condition is malformed.

        Args:
            d: Field path.
            op: Operator (``=``, ``==``, ``>``, ``>=``, ``<``, ``<=``, ``><``,
                ``<>``, ``in``, ``!in`` or a custom one). Omit to test that
                the field exists.
            value: Right-hand side; a two-item list for ``><``/``<>``, a
                list for ``in``/``!in``.
        """
        self.query.reset()
        if d is UNDEFINED:
            return self
        return self._add_condition(AND, d, op, value)

    def and_(self, d: Any, op: Any = UNDEFINED, value: Any = UNDEFINED) -> Collection | bool:
        """Append a condition joined with AND."""
        return self._add_condition(AND, d, op, value)

    def or_(self, d: Any, op: Any = UNDEFINED, value: Any = UNDEFINED) -> Collection | bool:
        """Append a condition joined with OR."""
        return self._add_condition(OR, d, op, value)

    def execute(self) -> Collection:
        """Apply the pending query and return the matching records as a breed.

        The pending query is kept, so calling execute again is allowed.
        """
        return self.filter(self.query.get())

    def selexec(self, d: Any = UNDEFINED, op: Any = UNDEFINED, value: Any = UNDEFINED) -> Collection | bool:
        """Shortcut for ``select(d, op, value).execute()``."""
        selected = self.select(d, op, value)
        if selected is False:
            return False
        return self.execute()

    def register_operator(self, op: str, factory: OperatorFactory) -> None:
        """Register a custom query operator (see ``QueryBuilder.register_operator``)."""
        self.query.register_operator(op, factory)

    def where(self, expression: str) -> Collection | bool:
        """Set the pending query from a text expression.

        Example:
            >>> c.where('age > 18 and country in ["it", "de"]').execute()

        Returns False (after logging a warning) if the expression does not
        parse or one of its conditions is malformed.
        """
        try:
            clauses = _get_parser().parse(expression)
        except SyntaxError as e:
            self.log.warning(f"Malformed query '{expression}': {e}")
            return False

        self.query.reset()
        for clause in clauses:
            op = UNDEFINED if clause.operator is None else clause.operator
            value = UNDEFINED if clause.operator is None else clause.value
            if self._add_condition(clause.connective, clause.field, op, value) is False:
                self.query.reset()
                return False
        return self

    def find(self, expression: str) -> Collection:
        """Run a text query and return the matches (an empty breed on error)."""
        if self.where(expression) is False:
            return self.breed([])
        return self.execute()

    # Set operations

    def _other_items(self, other: Collection | Sequence[Any] | None) -> list[Any] | None:
        if other is None:
            return None
        if isinstance(other, Collection):
            return other.items
        return list(other)

    def diff(self, other: Collection | Sequence[Any] | None) -> Collection:
        """Return a breed of the records not deep-equal to any record of other."""
        items = self._other_items(other)
        if not items:
            return self
        return self.breed([item for item in self.items if not in_array(item, items)])

    def intersect(self, other: Collection | Sequence[Any] | None) -> Collection:
        """Return a breed of the records deep-equal to some record of other."""
        items = self._other_items(other)
        if not items:
            return self
        return self.breed([item for item in self.items if in_array(item, items)])

    def _join(
        self,
        key1: str,
        key2: str,
        comparator: Callable[[Any, Any], bool],
        pos: str,
        select: str | Sequence[str] | None,
    ) -> Collection:
        if not key1 or not key2:
            return self.breed([])
        out = []
        for i, record in enumerate(self.items):
            foreign_key = get_nested_value(key1, record)
            if foreign_key is UNDEFINED:
                continue
            for other in self.items[i + 1:]:
                key = get_nested_value(key2, other)
                if key is UNDEFINED or not comparator(foreign_key, key):
                    continue
                joined = copy.deepcopy(record)
                mixin(joined, {pos: subobj(other, select) if select else other})
                out.append(joined)
        return self.breed(out)

    def join(
        self, key1: str, key2: str, pos: str = "joined", select: str | Sequence[str] | None = None
    ) -> Collection:
        """Self-join records whose key1 equals the key2 of a later record.

        Each match yields a copy of the first record with the second one
        (or only its ``select`` fields) stored under ``pos``.
        """
        return self._join(key1, key2, equals, pos, select)

    def concat(
        self, key1: str, key2: str, pos: str = "joined", select: str | Sequence[str] | None = None
    ) -> Collection:
        """Like ``join`` but every pair with both keys defined matches."""
        return self._join(key1, key2, lambda a, b: True, pos, select)

    def split(self, key: str) -> Collection:
        """Return a breed with every record split along the object field key."""
        out: list[Any] = []
        for item in self.items:
            out.extend(split(item, key))
        return self.breed(out)

    def skim(self, paths: str | Sequence[str] | None) -> Collection:
        """Return a breed of copies with the given fields removed.

        Records left with no fields are dropped.
        """
        if not paths:
            return self
        return self.breed(self.map(lambda e: skim(e, paths) or None))

    def keep(self, paths: str | Sequence[str] | None) -> Collection:
        """Return a breed of copies holding only the given fields.

        Records left with no fields are dropped.
        """
        if not paths:
            return self.breed([])
        return self.breed(self.map(lambda e: subobj(e, paths) or None))

    def group_by(self, path: str | None) -> list[Any]:
        """Return one breed per distinct value at path, in first-seen order.

        Records without the field are skipped. Without a path the list of
        records is returned.
        """
        if not path:
            return self.items
        groups: list[Any] = []
        out: list[Collection] = []
        for item in self.items:
            value = get_nested_value(path, item)
            if value is UNDEFINED or in_array(value, groups):
                continue
            groups.append(value)
            out.append(self.filter(lambda elem, v=value: equals(get_nested_value(path, elem), v)))
        return out

    # Fetching

    def fetch(self) -> list[Any]:
        """Return a list with all records."""
        return list(self.items)

    def fetch_sub_obj(self, paths: str | Sequence[str] | None) -> list[dict[str, Any]]:
        """Return a list with the selected fields of every record; records without any are skipped."""
        if not paths:
            return []
        out = []
        for item in self.items:
            obj = subobj(item, paths)
            if obj:
                out.append(obj)
        return out

    def fetch_values(self, paths: str | Sequence[str] | None = None) -> dict[str, list[Any]]:
        """Return a dict mapping each field to the list of its defined values.

        Args:
            paths: A field path, a list of paths, or None for all top-level
                fields of every record.
        """
        out: dict[str, list[Any]] = {}
        if paths is None:
            for item in self.items:
                if isinstance(item, Mapping):
                    for key, value in item.items():
                        out.setdefault(key, []).append(value)
            return out

        path_list = [paths] if isinstance(paths, str) else list(paths)
        for path in path_list:
            out[path] = []
        for item in self.items:
            for path in path_list:
                value = get_nested_value(path, item)
                if value is not UNDEFINED:
                    out[path].append(value)
        return out

    def _fetch_array(self, key: str | Sequence[str] | None, keyed: bool) -> list[list[Any]]:
        out = []
        for item in self.items:
            if not key:
                out.append(obj_to_array(item, keyed))
            elif isinstance(key, str):
                value = get_nested_value(key, item)
                if value is UNDEFINED:
                    continue
                if keyed:
                    out.append(key.split(".") + obj_to_array(value, keyed=True))
                else:
                    out.append(obj_to_array(value))
            else:
                obj = subobj(item, key)
                if obj:
                    out.append(obj_to_array(obj, keyed))
        return out

    def fetch_array(self, key: str | Sequence[str] | None = None) -> list[list[Any]]:
        """Return every record (or the given fields) flattened into a list of values.

        >>> Collection([{"a": 1, "b": {"c": 2}}]).fetch_array()
        [[1, 2]]
        """
        return self._fetch_array(key, False)

    def fetch_key_array(self, key: str | Sequence[str] | None = None) -> list[list[Any]]:
        """Like ``fetch_array`` with every value preceded by its key."""
        return self._fetch_array(key, True)

    # Indexes, hashes, views and comparators

    def is_reserved_word(self, name: str) -> bool:
        """Return True if name is an attribute or method of the collection."""
        return hasattr(self, name)

    def _is_valid_structure(self, kind: str, name: Any, func: Any) -> bool:
        if not isinstance(name, str) or not name:
            self.log.error(f"Invalid {kind} name: {name!r}")
            return False
        if not callable(func):
            self.log.error(f"Cannot register {kind} '{name}': function missing or not callable")
            return False
        if self.is_reserved_word(name):
            self.log.error(f"Cannot register {kind} '{name}': name is reserved")
            return False
        taken = {
            "index": set(self.engine.hash_funcs) | set(self.engine.view_funcs),
            "hash": set(self.engine.index_funcs) | set(self.engine.view_funcs),
            "view": set(self.engine.index_funcs) | set(self.engine.hash_funcs),
        }[kind]
        if name in taken:
            self.log.error(f"Cannot register {kind} '{name}': name already in use")
            return False
        return True

    def index(self, name: str, func: Extractor) -> bool:
        """Register a unique-key index.

        ``func(record)`` returns the key of a record, or None/UNDEFINED to
        leave the record out.
        """
        if not self._is_valid_structure("index", name, func):
            return False
        self.engine.add_index(name, func)
        if self.items:
            self.rebuild_indexes()
        return True

    def hash(self, name: str, func: Extractor) -> bool:
        """Register a hash, grouping records into one nested collection per key."""
        if not self._is_valid_structure("hash", name, func):
            return False
        self.engine.add_hash(name, func)
        if self.items:
            self.rebuild_indexes()
        return True

    def view(self, name: str, func: Extractor) -> bool:
        """Register a view: a nested collection of the records func returns a value for."""
        if not self._is_valid_structure("view", name, func):
            return False
        self.engine.add_view(name, func)
        if self.items:
            self.rebuild_indexes()
        return True

    def get_index(self, name: str) -> Index | None:
        return self.engine.indexes.get(name)

    def get_hash(self, name: str) -> dict[Any, Collection] | None:
        return self.engine.hashes.get(name)

    def get_view(self, name: str) -> Collection | None:
        return self.engine.views.get(name)

    def rebuild_indexes(self) -> None:
        """Rebuild indexes, hashes and views from the current records."""
        self.engine.rebuild(self.items)

    def reset_indexes(self, indexes: bool = True, hashes: bool = True, views: bool = True) -> None:
        """Empty the selected structures without touching their registrations."""
        self.engine.reset(indexes=indexes, hashes=hashes, views=views)

    def comparator(self, path: str, func: Comparator) -> bool:
        """Register the comparator used for path in sorts and queries."""
        if not isinstance(path, str) or not path or not callable(func):
            self.log.error(f"Cannot register comparator for {path!r}: invalid path or function")
            return False
        self.comparators.register(path, func)
        return True

    def get_comparator(self, path: str) -> Comparator:
        return self.comparators.get(path)

    # Persistence

    def stringify(self, compress: bool = True) -> str:
        """Serialize the records to a JSON array (4-space indent unless compress)."""
        return encode_records(self.items, compress)

    def _check_target(self, action: str, target: Any) -> bool:
        if target is not None and not isinstance(target, (str, Path)):
            raise TypeError(f"Cannot {action} to target of type {type(target).__name__}")
        if not target:
            self.log.error(f"You must specify a valid target to {action}")
            return False
        if self.storage is None:
            self.log.error(f"Cannot {action}: no storage backend available")
            return False
        return True

    def save(self, target: str | Path, callback: Callable[[], Any] | None = None, compress: bool = False) -> bool:
        """Write the records to the storage backend.

        The format follows the target's extension: ``.ndjson``/``.jsonl``,
        ``.csv``, otherwise a JSON array.

        Returns:
            True on success. False (with a logged error) if the target is
            empty, there is no backend, or the backend fails.
        """
        if not self._check_target("save", target):
            return False
        fmt = detect_format(target)
        if fmt == "ndjson":
            data = encode_ndjson(self.items)
        elif fmt == "csv":
            data = encode_csv(self.items)
        else:
            data = self.stringify(compress)
        try:
            self.storage.write(str(target), data)  # type: ignore[union-attr]
        except OSError as e:
            self.log.error(f"Error saving collection to '{target}': {e}")
            return False
        if callback is not None:
            callback()
        return True

    def _read(self, target: str | Path) -> str | None:
        try:
            return self.storage.read(str(target))  # type: ignore[union-attr]
        except (OSError, KeyError) as e:
            self.log.error(f"Error loading collection from '{target}': {e!r}")
            return None

    def load(
        self,
        target: str | Path,
        callback: Callable[[], Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        """Read records from the storage backend and import them.

        ``$ref`` markers written by ``save`` are turned back into references.
        CSV targets are delegated to ``load_csv`` with options.

        Returns:
            True on success, False (with a logged error) otherwise.
        """
        if not self._check_target("load", target):
            return False
        fmt = detect_format(target)
        if fmt == "csv":
            return self.load_csv(target, callback, options)
        text = self._read(target)
        if text is None:
            return False
        try:
            records = decode_records(text, fmt, options)
        except ValueError as e:
            self.log.error(f"Cannot decode '{target}' as {fmt}: {e}")
            return False
        self.import_db(records)
        if callback is not None:
            callback()
        return True

    def load_csv(
        self,
        target: str | Path,
        callback: Callable[[], Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        """Insert one record per CSV row.

        Args:
            target: File (or key) to read.
            callback: Called after all rows are inserted.
            options: ``columns_from_header``, ``column_names``, ``delimiter``.
        """
        if not self._check_target("load", target):
            return False
        text = self._read(target)
        if text is None:
            return False
        for row in iter_csv_rows(text, options):
            self.insert(row)
        if callback is not None:
            callback()
        return True

    # Dunder methods

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self.items))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self.items)} items)"

    def __str__(self) -> str:
        return "".join(f"{item}\n" for item in self.items)
