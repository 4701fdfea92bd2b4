"""nddb - An in-memory indexed collection of schema-less records."""

from nddb.collection import Collection
from nddb.comparators import ComparatorRegistry, default_comparator, global_compare
from nddb.cycle import decycle, retrocycle
from nddb.indexes import Index, IndexEngine
from nddb.objects import UNDEFINED, get_nested_value, set_nested_value
from nddb.options import CollectionOptions, OptionsError, UpdatePolicy
from nddb.query import AND, OR, Condition, QueryBuilder
from nddb.registry import CollectionRegistry
from nddb.storage import FileStorage, KeyValueStorage

__all__ = [
    # Main API
    "Collection",
    "CollectionRegistry",
    "UNDEFINED",
    # Configuration
    "CollectionOptions",
    "UpdatePolicy",
    "OptionsError",
    # Queries and comparators
    "AND",
    "OR",
    "Condition",
    "QueryBuilder",
    "ComparatorRegistry",
    "default_comparator",
    "global_compare",
    # Structures
    "Index",
    "IndexEngine",
    # Persistence
    "FileStorage",
    "KeyValueStorage",
    "decycle",
    "retrocycle",
    # Field paths
    "get_nested_value",
    "set_nested_value",
]

__version__ = "0.1.0"
